"""Per-session chunk retry supervision."""

import asyncio
import threading
from collections.abc import Awaitable, Callable, Sequence

from mediavault.application.services.upload_errors import (
    classify_upload_error,
    get_retry_delay,
    log_upload_error,
    should_retry_upload,
)
from mediavault.commons.telemetry import get_logger
from mediavault.domain.exceptions import ChunkUploadException, UploadSessionExpiredException
from mediavault.domain.models.upload import (
    ChunkUploadResult,
    UploadError,
    UploadErrorKind,
    UploadRetryStats,
)
from mediavault.domain.value_objects import RetryConfig
from mediavault.infrastructure.upload.base import (
    ChunkProgressCallback,
    UploadSessionOrchestratorBase,
)


class UploadRetryManager:
    """Tracks retry attempts per chunk for one upload session.

    Create one manager per upload and pass it to whatever drives the
    transfer; counters are never shared across sessions. The counter map
    is guarded by a lock so chunks uploaded in parallel (tasks or threads)
    never race on an entry.
    """

    def __init__(
        self,
        orchestrator: UploadSessionOrchestratorBase,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize retry manager.

        Args:
            orchestrator: Upload session orchestrator performing transfers.
            config: Retry policy. Defaults to 3 retries, 1s base, 30s cap.
            sleep: Awaitable used by upload_file to wait between attempts.
        """
        self._orchestrator = orchestrator
        self._config = config or RetryConfig()
        self._sleep = sleep
        self._retry_counts: dict[int, int] = {}
        self._lock = threading.Lock()
        self._logger = get_logger(__name__)

    @property
    def config(self) -> RetryConfig:
        return self._config

    # =========================================================================
    # Chunk transfer
    # =========================================================================

    async def upload_chunk_with_retry(
        self,
        session_id: str,
        chunk_index: int,
        data: bytes,
        on_progress: ChunkProgressCallback | None = None,
    ) -> ChunkUploadResult:
        """Attempt one chunk transfer and decide what happens on failure.

        Does not sleep or loop itself; a retryable failure returns
        ``should_retry=True`` with the delay the caller should wait.
        """
        current = self.get_retry_count(chunk_index)

        try:
            ok = await self._orchestrator.upload_chunk(
                session_id, chunk_index, data, on_progress
            )
            if not ok:
                raise ChunkUploadException(session_id, chunk_index, "upload returned false")
        except Exception as e:
            error = classify_upload_error(e, chunk_number=chunk_index, session_id=session_id)
            log_upload_error(
                error,
                session_id,
                {
                    "chunk_index": chunk_index,
                    "retry_count": current,
                    "max_retries": self._config.max_retries,
                },
            )
            return self._on_failure(chunk_index, current, error)

        with self._lock:
            self._retry_counts.pop(chunk_index, None)
        return ChunkUploadResult(success=True)

    def _on_failure(
        self, chunk_index: int, current: int, error: UploadError
    ) -> ChunkUploadResult:
        if should_retry_upload(error, current, self._config.max_retries):
            attempt = current + 1
            with self._lock:
                self._retry_counts[chunk_index] = attempt
            return ChunkUploadResult(
                success=False,
                error=error.message,
                error_kind=error.kind,
                should_retry=True,
                retry_after_ms=self.calculate_retry_delay(error, attempt),
            )

        with self._lock:
            self._retry_counts.pop(chunk_index, None)
        return ChunkUploadResult(
            success=False,
            error=error.message,
            error_kind=error.kind,
            should_retry=False,
        )

    def calculate_retry_delay(self, error: UploadError, attempt: int) -> int:
        """Delay in milliseconds before retry number ``attempt`` (1-based).

        The kind-specific delay is scaled by ``2**(attempt-1)`` in
        exponential mode; linear mode ignores the kind and uses
        ``base * attempt``. Both are capped at ``max_delay_ms``.
        """
        if self._config.exponential_backoff:
            delay = get_retry_delay(error, attempt - 1, self._config.base_delay_ms)
            return min(delay * 2 ** (attempt - 1), self._config.max_delay_ms)
        return min(self._config.base_delay_ms * attempt, self._config.max_delay_ms)

    async def upload_file(
        self,
        session_id: str,
        chunks: Sequence[bytes],
        on_progress: ChunkProgressCallback | None = None,
    ) -> None:
        """Upload every chunk from the resume point, retrying as allowed.

        Raises:
            UploadSessionExpiredException: If the session cannot be validated.
            ChunkUploadException: When a chunk fails terminally.
        """
        if not await self.validate_session(session_id):
            raise UploadSessionExpiredException(session_id)

        start = await self.find_resume_point(session_id, len(chunks))
        self._logger.info(
            "Uploading chunks",
            extra={"session_id": session_id, "resume_point": start, "total_chunks": len(chunks)},
        )

        for index in range(start, len(chunks)):
            while True:
                result = await self.upload_chunk_with_retry(
                    session_id, index, chunks[index], on_progress
                )
                if result.success:
                    break
                if not result.should_retry:
                    raise ChunkUploadException(session_id, index, result.error or "unknown error")

                if result.error_kind == UploadErrorKind.SESSION_EXPIRED:
                    if not await self.validate_session(session_id):
                        raise UploadSessionExpiredException(session_id)
                await self._sleep((result.retry_after_ms or 0) / 1000)

    # =========================================================================
    # Session helpers
    # =========================================================================

    async def find_resume_point(self, session_id: str, total_chunks: int) -> int:
        """First chunk to send, or 0 when the orchestrator cannot tell."""
        try:
            point = await self._orchestrator.resume_upload(session_id)
        except Exception:
            self._logger.warning(
                "Could not determine resume point, restarting from 0",
                exc_info=True,
                extra={"session_id": session_id},
            )
            return 0
        return max(0, min(point, total_chunks))

    async def validate_session(self, session_id: str) -> bool:
        """Validate and refresh the session; any failure means invalid."""
        try:
            await self._orchestrator.validate_and_refresh_session(session_id)
        except Exception:
            self._logger.warning(
                "Session validation failed",
                exc_info=True,
                extra={"session_id": session_id},
            )
            return False
        return True

    # =========================================================================
    # Accessors
    # =========================================================================

    def get_retry_count(self, chunk_index: int) -> int:
        with self._lock:
            return self._retry_counts.get(chunk_index, 0)

    def has_exceeded_max_retries(self, chunk_index: int) -> bool:
        return self.get_retry_count(chunk_index) >= self._config.max_retries

    def get_chunks_to_retry(self) -> list[int]:
        """Chunk indexes with outstanding retries, ascending."""
        with self._lock:
            return sorted(self._retry_counts)

    def reset_chunk_retry(self, chunk_index: int) -> None:
        with self._lock:
            self._retry_counts.pop(chunk_index, None)

    def reset_all_retries(self) -> None:
        with self._lock:
            self._retry_counts.clear()

    def get_upload_stats(self) -> UploadRetryStats:
        """Total retries, chunks that needed them, and the average per such chunk."""
        with self._lock:
            counts = list(self._retry_counts.values())
        total = sum(counts)
        chunks = len(counts)
        return UploadRetryStats(
            total_retries=total,
            chunks_with_retries=chunks,
            average_retries_per_chunk=total / chunks if chunks else 0.0,
        )
