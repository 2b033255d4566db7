"""Source asset and resumable upload domain models."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Self
from uuid import uuid4

from pydantic import BaseModel, Field


class UploadStatus(str, Enum):
    """Transfer state of a source asset."""

    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AssetProcessingStatus(str, Enum):
    """Processing state of a source asset."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ContentAsset(BaseModel):
    """An uploaded source video (the ``video_files`` record).

    Owns its renditions, processing jobs and upload sessions.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    content_id: str | None = Field(default=None, description="Owning content item")
    episode_id: str | None = Field(default=None, description="Owning episode")
    original_filename: str
    file_size_bytes: int = Field(ge=0)
    mime_type: str
    duration_seconds: float | None = Field(default=None, ge=0)
    upload_status: UploadStatus = UploadStatus.UPLOADING
    processing_status: AssetProcessingStatus = AssetProcessingStatus.PENDING
    blob_path: str | None = Field(
        default=None,
        description="Path of the assembled source file in the sources bucket",
    )
    thumbnail_paths: list[str] = Field(default_factory=list)
    analysis: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def source_blob_path(self) -> str:
        """Where the assembled source lives, defaulting to {id}/{filename}."""
        return self.blob_path or f"{self.id}/{self.original_filename}"


class UploadSessionStatus(str, Enum):
    """Lifecycle of a resumable upload session."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class UploadSession(BaseModel):
    """A resumable chunked upload of one source asset."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    video_file_id: str
    chunk_size: int = Field(gt=0)
    total_chunks: int = Field(ge=0)
    uploaded_chunk_indexes: list[int] = Field(default_factory=list)
    upload_progress: float = Field(default=0.0, ge=0, le=100)
    session_token: str
    status: UploadSessionStatus = UploadSessionStatus.ACTIVE
    expires_at: datetime
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def uploaded_chunks(self) -> int:
        return len(set(self.uploaded_chunk_indexes))

    @property
    def is_complete(self) -> bool:
        return self.uploaded_chunks >= self.total_chunks

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the validity window has passed."""
        return (now or datetime.now(UTC)) >= self.expires_at

    def missing_chunks(self) -> list[int]:
        """Chunk indexes not yet received, in ascending order."""
        received = set(self.uploaded_chunk_indexes)
        return [i for i in range(self.total_chunks) if i not in received]

    def resume_point(self) -> int:
        """First chunk index not yet received (total_chunks when complete)."""
        missing = self.missing_chunks()
        return missing[0] if missing else self.total_chunks

    def refreshed(self, expires_at: datetime) -> Self:
        return self.model_copy(update={"expires_at": expires_at})


class UploadErrorKind(str, Enum):
    """Closed taxonomy of chunk upload failures."""

    SESSION_EXPIRED = "session_expired"
    CHUNK_FAILED = "chunk_failed"
    NETWORK_ERROR = "network_error"
    STORAGE_FULL = "storage_full"
    FILE_TOO_LARGE = "file_too_large"
    UNSUPPORTED_FORMAT = "unsupported_format"
    UNKNOWN = "unknown"


class UploadError(BaseModel):
    """A classified upload failure."""

    kind: UploadErrorKind
    message: str = Field(description="Short user-facing message")
    details: str = Field(default="", description="Raw failure text")
    retryable: bool
    chunk_number: int | None = None
    session_id: str | None = None


class UploadErrorMessage(BaseModel):
    """User-facing rendering of an UploadError."""

    title: str
    description: str
    action: str | None = None


class ChunkUploadResult(BaseModel):
    """Outcome of one supervised chunk transfer attempt."""

    success: bool
    error: str | None = None
    error_kind: UploadErrorKind | None = None
    should_retry: bool = False
    retry_after_ms: int | None = Field(default=None, ge=0)


class UploadRetryStats(BaseModel):
    """Aggregate retry counters of one upload."""

    total_retries: int = 0
    chunks_with_retries: int = 0
    average_retries_per_chunk: float = 0.0
