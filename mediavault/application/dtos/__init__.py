"""Data Transfer Objects for application layer."""

from mediavault.application.dtos.backup import BackupStats, CleanupResult, PolicyRunResult
from mediavault.application.dtos.processing import ProcessingStatus

__all__ = [
    # Processing DTOs
    "ProcessingStatus",
    # Backup DTOs
    "BackupStats",
    "PolicyRunResult",
    "CleanupResult",
]
