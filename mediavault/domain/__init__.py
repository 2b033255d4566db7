"""Domain layer - business models and logic."""

from mediavault.domain.exceptions import (
    BackupNotFoundException,
    BackupOperationException,
    ChunkUploadException,
    DomainException,
    FileTooLargeException,
    IncompleteUploadException,
    InvalidJobTransitionException,
    NoActiveServersException,
    ProcessingJobNotFoundException,
    RenditionNotFoundException,
    ServerUnavailableException,
    SourceAssetNotFoundException,
    TranscodingException,
    UnsupportedFormatException,
    UnsupportedJobKindException,
    UnverifiedBackupException,
    UploadSessionExpiredException,
    UploadSessionNotFoundException,
)
from mediavault.domain.models import (
    ActivityLogEntry,
    AssetProcessingStatus,
    BackupFrequency,
    BackupPolicy,
    BackupRecord,
    BackupType,
    ChunkUploadResult,
    ContentAsset,
    JobKind,
    JobStatus,
    ProcessingJob,
    StorageServer,
    UploadError,
    UploadErrorKind,
    UploadErrorMessage,
    UploadRetryStats,
    UploadSession,
    UploadSessionStatus,
    UploadStatus,
    VideoQualityRendition,
)
from mediavault.domain.value_objects import (
    QUALITY_PRESETS,
    RetryConfig,
    TranscodingPreset,
    get_preset,
)

__all__ = [
    # Exceptions
    "DomainException",
    "UploadSessionNotFoundException",
    "UploadSessionExpiredException",
    "ChunkUploadException",
    "FileTooLargeException",
    "UnsupportedFormatException",
    "IncompleteUploadException",
    "SourceAssetNotFoundException",
    "NoActiveServersException",
    "ProcessingJobNotFoundException",
    "UnsupportedJobKindException",
    "TranscodingException",
    "RenditionNotFoundException",
    "ServerUnavailableException",
    "BackupNotFoundException",
    "UnverifiedBackupException",
    "BackupOperationException",
    "InvalidJobTransitionException",
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
    # Value Objects
    "TranscodingPreset",
    "QUALITY_PRESETS",
    "get_preset",
    "RetryConfig",
]
