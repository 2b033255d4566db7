"""Unit tests for UploadRetryManager."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from mediavault.application.services.upload_retry import UploadRetryManager
from mediavault.domain.exceptions import (
    ChunkUploadException,
    FileTooLargeException,
    UploadSessionExpiredException,
)
from mediavault.domain.models.upload import UploadError, UploadErrorKind
from mediavault.domain.value_objects import RetryConfig
from mediavault.infrastructure.upload.base import UploadSessionOrchestratorBase

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def orchestrator():
    """Orchestrator double that accepts every chunk."""
    mock = AsyncMock(spec=UploadSessionOrchestratorBase)
    mock.upload_chunk.return_value = True
    mock.resume_upload.return_value = 0
    mock.validate_and_refresh_session.return_value = None
    return mock


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def manager(orchestrator, sleep):
    return UploadRetryManager(orchestrator, RetryConfig(), sleep=sleep)


def _error(kind: UploadErrorKind) -> UploadError:
    return UploadError(kind=kind, message="m", retryable=True)


# =============================================================================
# Tests
# =============================================================================


class TestUploadChunkWithRetry:
    """Tests for a single supervised chunk attempt."""

    async def test_success_clears_counter(self, manager, orchestrator):
        orchestrator.upload_chunk.side_effect = [ConnectionError("connection reset"), True]

        first = await manager.upload_chunk_with_retry("s1", 0, b"data")
        assert first.success is False
        assert manager.get_retry_count(0) == 1

        second = await manager.upload_chunk_with_retry("s1", 0, b"data")
        assert second.success is True
        assert manager.get_retry_count(0) == 0

    async def test_network_error_is_retried_with_delay(self, manager, orchestrator):
        orchestrator.upload_chunk.side_effect = ConnectionError("network unreachable")

        result = await manager.upload_chunk_with_retry("s1", 3, b"data")

        assert result.success is False
        assert result.should_retry is True
        assert result.error_kind == UploadErrorKind.NETWORK_ERROR
        assert result.retry_after_ms == 2000
        assert manager.get_retry_count(3) == 1

    async def test_file_too_large_is_never_retried(self, manager, orchestrator):
        orchestrator.upload_chunk.side_effect = FileTooLargeException(20, 10)

        result = await manager.upload_chunk_with_retry("s1", 0, b"data")

        assert result.should_retry is False
        assert result.error_kind == UploadErrorKind.FILE_TOO_LARGE
        assert result.retry_after_ms is None
        assert manager.get_retry_count(0) == 0

    async def test_false_return_counts_as_chunk_failure(self, manager, orchestrator):
        orchestrator.upload_chunk.return_value = False

        result = await manager.upload_chunk_with_retry("s1", 0, b"data")

        assert result.error_kind == UploadErrorKind.CHUNK_FAILED
        assert result.should_retry is True

    async def test_gives_up_after_max_retries(self, manager, orchestrator):
        orchestrator.upload_chunk.side_effect = ConnectionError("network down")

        results = [await manager.upload_chunk_with_retry("s1", 1, b"x") for _ in range(4)]

        assert [r.should_retry for r in results] == [True, True, True, False]
        assert manager.get_retry_count(1) == 0

    async def test_passes_progress_callback_through(self, manager, orchestrator):
        callback = AsyncMock()
        await manager.upload_chunk_with_retry("s1", 2, b"x", callback)
        orchestrator.upload_chunk.assert_awaited_once_with("s1", 2, b"x", callback)


class TestConcurrentChunks:
    """Tests for chunks of one session uploaded in parallel."""

    async def test_counters_stay_per_chunk(self, manager, orchestrator):
        failing = {1, 3, 5, 7}

        async def upload_chunk(session_id, chunk_index, data, on_progress=None):
            await asyncio.sleep(0)
            if chunk_index in failing:
                raise ConnectionError("connection reset")
            return True

        orchestrator.upload_chunk.side_effect = upload_chunk

        first = await asyncio.gather(
            *(manager.upload_chunk_with_retry("s1", i, b"data") for i in range(8))
        )
        assert [r.success for r in first] == [i not in failing for i in range(8)]
        assert manager.get_chunks_to_retry() == [1, 3, 5, 7]

        failing.difference_update({5, 7})
        second = await asyncio.gather(
            *(manager.upload_chunk_with_retry("s1", i, b"data") for i in (1, 3, 5, 7))
        )

        assert [r.success for r in second] == [False, False, True, True]
        assert [r.retry_after_ms for r in second[:2]] == [8000, 8000]
        assert manager.get_chunks_to_retry() == [1, 3]
        assert manager.get_retry_count(1) == manager.get_retry_count(3) == 2
        stats = manager.get_upload_stats()
        assert stats.total_retries == 4
        assert stats.chunks_with_retries == 2
        assert stats.average_retries_per_chunk == 2.0


class TestCalculateRetryDelay:
    """Tests for backoff computation."""

    @pytest.mark.parametrize(
        "kind",
        [
            UploadErrorKind.SESSION_EXPIRED,
            UploadErrorKind.CHUNK_FAILED,
            UploadErrorKind.NETWORK_ERROR,
        ],
    )
    def test_monotonic_and_capped(self, manager, kind):
        delays = [manager.calculate_retry_delay(_error(kind), n) for n in range(1, 8)]
        assert delays == sorted(delays)
        assert all(d <= manager.config.max_delay_ms for d in delays)
        assert delays[-1] == manager.config.max_delay_ms

    def test_exponential_values(self, manager):
        network = _error(UploadErrorKind.NETWORK_ERROR)
        assert [manager.calculate_retry_delay(network, n) for n in (1, 2, 3)] == [
            2000,
            8000,
            24000,
        ]
        chunk = _error(UploadErrorKind.CHUNK_FAILED)
        assert [manager.calculate_retry_delay(chunk, n) for n in (1, 2, 3)] == [
            1000,
            4000,
            16000,
        ]

    def test_linear_mode(self, orchestrator):
        manager = UploadRetryManager(
            orchestrator,
            RetryConfig(base_delay_ms=500, max_delay_ms=1200, exponential_backoff=False),
        )
        network = _error(UploadErrorKind.NETWORK_ERROR)
        assert [manager.calculate_retry_delay(network, n) for n in (1, 2, 3)] == [
            500,
            1000,
            1200,
        ]


class TestUploadFile:
    """Tests for the full-file upload loop."""

    async def test_uploads_from_resume_point(self, manager, orchestrator):
        orchestrator.resume_upload.return_value = 2
        chunks = [b"a", b"b", b"c", b"d", b"e"]

        await manager.upload_file("s1", chunks)

        sent = [c.args[1] for c in orchestrator.upload_chunk.await_args_list]
        assert sent == [2, 3, 4]

    async def test_five_chunks_with_one_transient_failure(self, manager, orchestrator, sleep):
        calls: list[int] = []

        async def upload(session_id, index, data, callback=None):
            calls.append(index)
            if index == 2 and calls.count(2) == 1:
                raise ConnectionError("connection reset by peer")
            return True

        orchestrator.upload_chunk.side_effect = upload

        await manager.upload_file("s1", [b"0", b"1", b"2", b"3", b"4"])

        assert calls == [0, 1, 2, 2, 3, 4]
        sleep.assert_awaited_once_with(2.0)
        assert manager.get_chunks_to_retry() == []

    async def test_terminal_failure_raises(self, manager, orchestrator):
        orchestrator.upload_chunk.side_effect = [True, FileTooLargeException(20, 10)]

        with pytest.raises(ChunkUploadException) as exc_info:
            await manager.upload_file("s1", [b"0", b"1", b"2"])

        assert exc_info.value.chunk_index == 1
        assert orchestrator.upload_chunk.await_count == 2

    async def test_exhausted_retries_raise(self, manager, orchestrator, sleep):
        orchestrator.upload_chunk.side_effect = ConnectionError("network down")

        with pytest.raises(ChunkUploadException):
            await manager.upload_file("s1", [b"0"])

        assert orchestrator.upload_chunk.await_count == 4
        assert sleep.await_count == 3

    async def test_invalid_session_is_rejected_up_front(self, manager, orchestrator):
        orchestrator.validate_and_refresh_session.side_effect = UploadSessionExpiredException(
            "s1"
        )

        with pytest.raises(UploadSessionExpiredException):
            await manager.upload_file("s1", [b"0"])

        orchestrator.upload_chunk.assert_not_awaited()

    async def test_expired_session_is_refreshed_before_retry(self, manager, orchestrator):
        orchestrator.upload_chunk.side_effect = [UploadSessionExpiredException("s1"), True]

        await manager.upload_file("s1", [b"0"])

        # Once up front, once after the expiry.
        assert orchestrator.validate_and_refresh_session.await_count == 2


class TestSessionHelpers:
    """Tests for resume point and session validation."""

    async def test_resume_point_is_zero_on_error(self, manager, orchestrator):
        orchestrator.resume_upload.side_effect = RuntimeError("status unavailable")
        assert await manager.find_resume_point("s1", 10) == 0

    async def test_resume_point_is_clamped(self, manager, orchestrator):
        orchestrator.resume_upload.return_value = 12
        assert await manager.find_resume_point("s1", 10) == 10

    async def test_validate_session(self, manager, orchestrator):
        assert await manager.validate_session("s1") is True
        orchestrator.validate_and_refresh_session.side_effect = RuntimeError("gone")
        assert await manager.validate_session("s1") is False


class TestAccessors:
    """Tests for retry bookkeeping accessors."""

    async def test_stats_and_resets(self, manager, orchestrator):
        orchestrator.upload_chunk.side_effect = ConnectionError("network down")
        await manager.upload_chunk_with_retry("s1", 0, b"x")
        await manager.upload_chunk_with_retry("s1", 0, b"x")
        await manager.upload_chunk_with_retry("s1", 4, b"x")

        stats = manager.get_upload_stats()
        assert stats.total_retries == 3
        assert stats.chunks_with_retries == 2
        assert stats.average_retries_per_chunk == 1.5
        assert manager.get_chunks_to_retry() == [0, 4]

        manager.reset_chunk_retry(0)
        assert manager.get_chunks_to_retry() == [4]

        manager.reset_all_retries()
        assert manager.get_upload_stats().total_retries == 0

    async def test_has_exceeded_max_retries(self, orchestrator):
        manager = UploadRetryManager(orchestrator, RetryConfig(max_retries=1))
        orchestrator.upload_chunk.side_effect = ConnectionError("network down")

        await manager.upload_chunk_with_retry("s1", 0, b"x")

        assert manager.has_exceeded_max_retries(0) is True
