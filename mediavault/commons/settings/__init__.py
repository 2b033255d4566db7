"""Settings management module."""

from mediavault.commons.settings.loader import (
    SettingsLoader,
    get_settings,
    reset_settings,
)
from mediavault.commons.settings.models import (
    AppSettings,
    BackupSettings,
    BlobStorageSettings,
    BucketSettings,
    DocumentCollectionSettings,
    DocumentDBSettings,
    ProcessingSettings,
    RetrySettings,
    Settings,
    TelemetrySettings,
    UploadSettings,
)

__all__ = [
    # Loader
    "SettingsLoader",
    "get_settings",
    "reset_settings",
    # Main settings
    "Settings",
    "AppSettings",
    # Storage
    "BlobStorageSettings",
    "BucketSettings",
    "DocumentDBSettings",
    "DocumentCollectionSettings",
    # Pipeline
    "UploadSettings",
    "RetrySettings",
    "ProcessingSettings",
    "BackupSettings",
    # Telemetry
    "TelemetrySettings",
]
