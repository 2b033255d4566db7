"""Pydantic settings models for application configuration."""

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseModel):
    """Application-level settings."""

    name: str = "mediavault"
    version: str = "0.1.0"
    environment: Literal["dev", "staging", "prod"] = "dev"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class BucketSettings(BaseModel):
    """Bucket name configuration."""

    sources: str = "mv-sources"
    uploads: str = "mv-uploads"
    thumbnails: str = "mv-thumbnails"


class BlobStorageSettings(BaseModel):
    """Blob storage settings (MinIO/S3)."""

    provider: Literal["minio", "s3"] = "minio"
    endpoint: str = "localhost:9000"
    access_key: str = ""
    secret_key: str = ""
    use_ssl: bool = False
    region: str = "us-east-1"
    buckets: BucketSettings = Field(default_factory=BucketSettings)


class DocumentCollectionSettings(BaseModel):
    """Document DB collection names."""

    content_assets: str = "video_files"
    renditions: str = "video_qualities"
    processing_jobs: str = "video_processing_jobs"
    backups: str = "video_backups"
    backup_policies: str = "backup_policies"
    storage_servers: str = "internal_servers"
    activity_log: str = "video_activity_log"
    upload_sessions: str = "upload_sessions"


class DocumentDBSettings(BaseModel):
    """Document database settings (MongoDB)."""

    provider: Literal["mongodb"] = "mongodb"
    host: str = "localhost"
    port: int = 27017
    username: str = ""
    password: str = ""
    database: str = "mediavault"
    auth_source: str = "admin"
    collections: DocumentCollectionSettings = Field(
        default_factory=DocumentCollectionSettings
    )


class RetrySettings(BaseModel):
    """Chunk upload retry configuration."""

    max_retries: int = Field(default=3, ge=0, le=20)
    base_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=30000, ge=0)
    exponential_backoff: bool = True


class UploadSettings(BaseModel):
    """Resumable upload settings."""

    chunk_size_bytes: int = Field(default=1024 * 1024, ge=1)
    max_file_size_bytes: int = 10 * 1024 * 1024 * 1024  # 10 GB
    session_ttl_hours: int = Field(default=24, ge=1)
    refresh_grace_minutes: int = Field(default=30, ge=0)
    supported_mime_types: list[str] = Field(
        default_factory=lambda: [
            "video/mp4",
            "video/avi",
            "video/mkv",
            "video/mov",
            "video/wmv",
            "video/webm",
        ]
    )
    retry: RetrySettings = Field(default_factory=RetrySettings)


class ProcessingSettings(BaseModel):
    """Transcoding pipeline settings."""

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    batch_size: int = Field(default=5, ge=1, le=100)
    quality_ladder: list[str] = Field(
        default_factory=lambda: ["360p", "480p", "720p", "1080p"]
    )
    thumbnail_count: int = Field(default=10, ge=1, le=100)
    thumbnail_width: int = 320
    thumbnail_height: int = 180
    transcode_timeout_seconds: int | None = 6 * 3600
    queue_poll_interval_seconds: int = Field(default=30, ge=1)


class BackupSettings(BaseModel):
    """Backup policy engine settings."""

    default_retention_days: int = Field(default=90, ge=1)
    min_backup_copies: int = Field(default=2, ge=1)
    verification_delay_hours: int = Field(default=24, ge=0)
    policy_interval_minutes: int = Field(default=60, ge=1)
    cleanup_interval_hours: int = Field(default=24, ge=1)
    verification_interval_minutes: int = Field(default=60, ge=1)


class TelemetrySettings(BaseModel):
    """Logging settings."""

    log_format: Literal["json", "text"] = "json"
    log_level: str = "INFO"


class Settings(BaseSettings):
    """Root settings container with environment loading."""

    app: AppSettings = Field(default_factory=AppSettings)
    blob_storage: BlobStorageSettings = Field(default_factory=BlobStorageSettings)
    document_db: DocumentDBSettings = Field(default_factory=DocumentDBSettings)
    upload: UploadSettings = Field(default_factory=UploadSettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    backup: BackupSettings = Field(default_factory=BackupSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MEDIAVAULT__",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )
