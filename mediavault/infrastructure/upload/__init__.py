"""Resumable upload session orchestration."""

from mediavault.infrastructure.upload.base import (
    ChunkProgressCallback,
    UploadSessionOrchestratorBase,
)
from mediavault.infrastructure.upload.session_service import (
    UploadSessionService,
    chunk_blob_path,
)

__all__ = [
    "UploadSessionOrchestratorBase",
    "ChunkProgressCallback",
    "UploadSessionService",
    "chunk_blob_path",
]
