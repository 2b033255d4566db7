"""Abstract base class for the resumable upload session orchestrator."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

ChunkProgressCallback = Callable[[float], Awaitable[None] | None]


class UploadSessionOrchestratorBase(ABC):
    """Owns chunk transfer and the session lifecycle.

    The retry manager drives uploads through this boundary only, so any
    transport (blob storage, HTTP, a test double) can sit behind it.
    """

    @abstractmethod
    async def upload_chunk(
        self,
        session_id: str,
        chunk_index: int,
        data: bytes,
        progress_callback: ChunkProgressCallback | None = None,
    ) -> bool:
        """Store one chunk of an upload.

        Args:
            session_id: Upload session ID.
            chunk_index: Zero-based chunk index.
            data: Chunk payload.
            progress_callback: Called with the session's overall percent.

        Returns:
            True when the chunk was durably received.

        Raises:
            UploadSessionExpiredException: If the session has expired.
            ChunkUploadException: If the chunk could not be stored.
        """

    @abstractmethod
    async def resume_upload(self, session_id: str) -> int:
        """Return the first chunk index not yet received."""

    @abstractmethod
    async def validate_and_refresh_session(self, session_id: str) -> None:
        """Extend a live session's validity window.

        Raises:
            UploadSessionNotFoundException: If the session does not exist.
            UploadSessionExpiredException: If the session can no longer be
                refreshed.
        """
