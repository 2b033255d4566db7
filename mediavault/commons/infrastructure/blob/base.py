"""Abstract base class for blob storage operations."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO


@dataclass
class BlobMetadata:
    """Metadata for a stored blob."""

    path: str
    size_bytes: int
    content_type: str
    created_at: datetime
    etag: str


@dataclass
class HealthStatus:
    """Health check result."""

    healthy: bool
    latency_ms: float
    message: str | None = None
    details: dict[str, str] | None = None


class BlobNotFoundError(Exception):
    """Raised when a blob is not found."""

    def __init__(self, bucket: str, path: str) -> None:
        self.bucket = bucket
        self.path = path
        super().__init__(f"Blob not found: {bucket}/{path}")


class BlobStorageBase(ABC):
    """Abstract base class for blob storage operations.

    Every storage server in the fleet is addressed as a bucket plus a
    path prefix, so replica copies and restores are plain blob copies.
    """

    @abstractmethod
    async def upload(
        self,
        bucket: str,
        path: str,
        data: BinaryIO | bytes,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> BlobMetadata:
        """Upload bytes or a file-like object.

        Args:
            bucket: Target bucket name.
            path: Path within the bucket.
            data: File-like object or bytes to upload.
            content_type: MIME type of the content.
            metadata: Optional key-value metadata.

        Returns:
            Metadata of the uploaded blob.
        """

    @abstractmethod
    async def upload_file(
        self,
        bucket: str,
        path: str,
        local_path: Path,
        content_type: str = "application/octet-stream",
    ) -> BlobMetadata:
        """Upload a local file without loading it into memory.

        Args:
            bucket: Target bucket name.
            path: Path within the bucket.
            local_path: File on the local filesystem.
            content_type: MIME type of the content.

        Returns:
            Metadata of the uploaded blob.
        """

    @abstractmethod
    async def download(self, bucket: str, path: str) -> bytes:
        """Download a blob into memory.

        Raises:
            BlobNotFoundError: If blob doesn't exist.
        """

    @abstractmethod
    def download_stream(
        self,
        bucket: str,
        path: str,
        chunk_size: int = 1024 * 1024,
    ) -> AsyncIterator[bytes]:
        """Stream a blob in chunks.

        Raises:
            BlobNotFoundError: If blob doesn't exist.
        """
        ...

    @abstractmethod
    async def download_to_file(
        self,
        bucket: str,
        path: str,
        local_path: Path,
    ) -> None:
        """Download a blob to a local file.

        Raises:
            BlobNotFoundError: If blob doesn't exist.
        """

    @abstractmethod
    async def copy(
        self,
        source_bucket: str,
        source_path: str,
        target_bucket: str,
        target_path: str,
    ) -> BlobMetadata:
        """Server-side copy of one blob to another location.

        Args:
            source_bucket: Bucket holding the original.
            source_path: Path of the original.
            target_bucket: Destination bucket.
            target_path: Destination path.

        Returns:
            Metadata of the new copy.

        Raises:
            BlobNotFoundError: If the source doesn't exist.
        """

    @abstractmethod
    async def delete(self, bucket: str, path: str) -> bool:
        """Delete a blob.

        Returns:
            True if deleted, False if it didn't exist.
        """

    @abstractmethod
    async def exists(self, bucket: str, path: str) -> bool:
        """Check if a blob exists."""

    @abstractmethod
    async def get_metadata(self, bucket: str, path: str) -> BlobMetadata:
        """Get blob metadata without downloading.

        Raises:
            BlobNotFoundError: If blob doesn't exist.
        """

    @abstractmethod
    async def create_bucket(self, bucket: str) -> bool:
        """Create a bucket.

        Returns:
            True if created, False if it already existed.
        """

    @abstractmethod
    async def health_check(self) -> HealthStatus:
        """Check service health."""
