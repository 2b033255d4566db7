"""DTOs for backup statistics and policy runs."""

from datetime import datetime

from pydantic import BaseModel, Field


class BackupStats(BaseModel):
    """Aggregate view over backup records."""

    total_backups: int = 0
    verified_backups: int = 0
    failed_backups: int = Field(default=0, description="Backups not (yet) verified")
    total_size_bytes: int = 0
    last_backup_time: datetime | None = None
    redundancy_level: float = Field(
        default=0.0,
        description="Backups per distinct rendition represented",
    )


class PolicyRunResult(BaseModel):
    """Outcome of evaluating one backup policy."""

    policy_id: str
    policy_name: str
    renditions_checked: int = 0
    backups_created: int = 0
    errors: list[str] = Field(default_factory=list)


class CleanupResult(BaseModel):
    """Outcome of one retention cleanup pass."""

    retention_days: int
    examined: int = 0
    deleted: int = 0
    kept_for_redundancy: int = 0
