"""Storage server, rendition and backup domain models."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class StorageServer(BaseModel):
    """An internal storage server (the ``internal_servers`` record).

    Each server is backed by one blob bucket; ``storage_path`` is the root
    prefix every path on that server starts with.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    bucket: str
    storage_path: str = ""
    priority: int = 0
    is_active: bool = True
    used_storage_gb: float = Field(default=0.0, ge=0)
    total_storage_gb: float = Field(default=0.0, ge=0)

    @property
    def available_storage_gb(self) -> float:
        return max(self.total_storage_gb - self.used_storage_gb, 0.0)

    def join(self, *parts: str) -> str:
        """Build a path under this server's storage root."""
        segments = [self.storage_path.strip("/"), *(p.strip("/") for p in parts)]
        return "/".join(s for s in segments if s)


class VideoQualityRendition(BaseModel):
    """One transcoded quality tier of a source asset."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    video_file_id: str
    server_id: str
    quality: str
    file_path: str
    file_size_bytes: int = Field(default=0, ge=0)
    bitrate_kbps: int | None = None
    codec: str | None = None
    container_format: str | None = None
    is_ready: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class BackupType(str, Enum):
    """How a backup came to exist."""

    AUTO = "auto"
    MANUAL = "manual"


class BackupRecord(BaseModel):
    """One physical replica of a rendition on a backup server."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    video_quality_id: str
    backup_server_id: str
    backup_path: str
    backup_size_bytes: int = Field(ge=0)
    checksum: str
    backup_type: BackupType = BackupType.AUTO
    is_verified: bool = False
    verification_error: str | None = None
    verify_after: datetime | None = Field(
        default=None,
        description="Earliest time the scheduled verification may run",
    )
    last_verified_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class BackupFrequency(str, Enum):
    """Declared replication cadence of a policy."""

    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class BackupPolicy(BaseModel):
    """A named replication rule evaluated by the reconciliation loop."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    description: str = ""
    backup_frequency: BackupFrequency = BackupFrequency.DAILY
    retention_days: int = Field(default=90, ge=1)
    min_backup_copies: int = Field(default=2, ge=1)
    backup_servers: list[str] = Field(
        default_factory=list,
        description="IDs of servers allowed to hold replicas; empty means any active server",
    )
    quality_filter: list[str] = Field(
        default_factory=list,
        description="Qualities the policy covers; empty means all",
    )
    is_active: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ActivityLogEntry(BaseModel):
    """An audit entry in the ``video_activity_log`` collection."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    video_quality_id: str
    activity_type: str
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
