"""Blob storage abstractions and implementations."""

from mediavault.commons.infrastructure.blob.base import (
    BlobMetadata,
    BlobNotFoundError,
    BlobStorageBase,
    HealthStatus,
)
from mediavault.commons.infrastructure.blob.minio_provider import MinioBlobStorage

__all__ = [
    # Base classes
    "BlobMetadata",
    "BlobStorageBase",
    "HealthStatus",
    # Implementations
    "MinioBlobStorage",
    # Exceptions
    "BlobNotFoundError",
]
