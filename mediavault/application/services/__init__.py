"""Application services for uploads, processing and backups."""

from mediavault.application.services.backup import VideoBackupService
from mediavault.application.services.processing import VideoProcessingService
from mediavault.application.services.scheduler import BackgroundScheduler
from mediavault.application.services.upload_errors import (
    classify_upload_error,
    extract_error_details,
    get_retry_delay,
    get_upload_error_message,
    log_upload_error,
    should_retry_upload,
)
from mediavault.application.services.upload_retry import UploadRetryManager

__all__ = [
    "BackgroundScheduler",
    "UploadRetryManager",
    "VideoBackupService",
    "VideoProcessingService",
    "classify_upload_error",
    "extract_error_details",
    "get_retry_delay",
    "get_upload_error_message",
    "log_upload_error",
    "should_retry_upload",
]
