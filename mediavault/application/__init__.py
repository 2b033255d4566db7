"""Application layer - use cases and orchestration.

This layer contains:
- Services: upload retry supervision, the processing job pipeline,
  the backup policy engine and the background scheduler
- DTOs: aggregates returned across the service boundary
"""

from mediavault.application.dtos import (
    BackupStats,
    CleanupResult,
    PolicyRunResult,
    ProcessingStatus,
)
from mediavault.application.services import (
    BackgroundScheduler,
    UploadRetryManager,
    VideoBackupService,
    VideoProcessingService,
    classify_upload_error,
)

__all__ = [
    # DTOs
    "BackupStats",
    "CleanupResult",
    "PolicyRunResult",
    "ProcessingStatus",
    # Services
    "BackgroundScheduler",
    "UploadRetryManager",
    "VideoBackupService",
    "VideoProcessingService",
    "classify_upload_error",
]
