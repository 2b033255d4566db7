"""Domain models."""

from mediavault.domain.models.processing_job import JobKind, JobStatus, ProcessingJob
from mediavault.domain.models.storage import (
    ActivityLogEntry,
    BackupFrequency,
    BackupPolicy,
    BackupRecord,
    BackupType,
    StorageServer,
    VideoQualityRendition,
)
from mediavault.domain.models.timestamps import to_iso, utc_now
from mediavault.domain.models.upload import (
    AssetProcessingStatus,
    ChunkUploadResult,
    ContentAsset,
    UploadError,
    UploadErrorKind,
    UploadErrorMessage,
    UploadRetryStats,
    UploadSession,
    UploadSessionStatus,
    UploadStatus,
)

__all__ = [
    # Upload
    "ContentAsset",
    "UploadStatus",
    "AssetProcessingStatus",
    "UploadSession",
    "UploadSessionStatus",
    "UploadError",
    "UploadErrorKind",
    "UploadErrorMessage",
    "ChunkUploadResult",
    "UploadRetryStats",
    # Processing
    "ProcessingJob",
    "JobKind",
    "JobStatus",
    # Storage
    "StorageServer",
    "VideoQualityRendition",
    "BackupRecord",
    "BackupType",
    "BackupPolicy",
    "BackupFrequency",
    "ActivityLogEntry",
    # Timestamps
    "utc_now",
    "to_iso",
]
