"""Unit tests for BackgroundScheduler."""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from mediavault.application.services.scheduler import (
    JOB_CLEANUP,
    JOB_EXECUTE_POLICIES,
    JOB_PROCESS_QUEUE,
    JOB_VERIFY,
    BackgroundScheduler,
)
from mediavault.commons.settings.models import BackupSettings, ProcessingSettings
from mediavault.commons.telemetry import get_correlation_id, get_log_context, set_log_context


@pytest.fixture
def apscheduler():
    mock = MagicMock(spec=AsyncIOScheduler)
    mock.running = False
    mock.get_jobs.return_value = []
    return mock


@pytest.fixture
def processing():
    return MagicMock(process_job_queue=AsyncMock(return_value=0))


@pytest.fixture
def backup():
    return MagicMock(
        execute_backup_policies=AsyncMock(return_value=[]),
        cleanup_old_backups=AsyncMock(),
        verify_due_backups=AsyncMock(return_value=0),
    )


@pytest.fixture
def scheduler(apscheduler, processing, backup):
    return BackgroundScheduler(
        processing_service=processing,
        backup_service=backup,
        processing_settings=ProcessingSettings(queue_poll_interval_seconds=15),
        backup_settings=BackupSettings(
            policy_interval_minutes=30,
            cleanup_interval_hours=12,
            verification_interval_minutes=45,
        ),
        scheduler=apscheduler,
    )


def _jobs(apscheduler) -> dict:
    return {c.kwargs["id"]: c for c in apscheduler.add_job.call_args_list}


class TestStart:
    """Tests for registering the periodic loops."""

    def test_registers_all_loops(self, scheduler, apscheduler):
        scheduler.start_automatic_backup_system()

        jobs = _jobs(apscheduler)
        assert set(jobs) == {JOB_EXECUTE_POLICIES, JOB_CLEANUP, JOB_VERIFY, JOB_PROCESS_QUEUE}
        apscheduler.start.assert_called_once()

    def test_intervals_follow_settings(self, scheduler, apscheduler):
        scheduler.start_automatic_backup_system()

        jobs = _jobs(apscheduler)
        intervals = {
            job_id: call.kwargs["trigger"].interval.total_seconds()
            for job_id, call in jobs.items()
        }
        assert intervals == {
            JOB_EXECUTE_POLICIES: 1800,
            JOB_CLEANUP: 43200,
            JOB_VERIFY: 2700,
            JOB_PROCESS_QUEUE: 15,
        }

    def test_jobs_never_overlap(self, scheduler, apscheduler):
        scheduler.start_automatic_backup_system()

        for call in apscheduler.add_job.call_args_list:
            assert call.kwargs["max_instances"] == 1
            assert call.kwargs["coalesce"] is True
            assert call.kwargs["replace_existing"] is True

    def test_without_queue(self, scheduler, apscheduler):
        scheduler.start_automatic_backup_system(include_queue=False)

        assert JOB_PROCESS_QUEUE not in _jobs(apscheduler)

    def test_start_is_idempotent(self, scheduler, apscheduler):
        apscheduler.running = True

        scheduler.start_automatic_backup_system()

        apscheduler.add_job.assert_not_called()
        apscheduler.start.assert_not_called()

    def test_shutdown(self, scheduler, apscheduler):
        scheduler.shutdown()
        apscheduler.shutdown.assert_not_called()

        apscheduler.running = True
        scheduler.shutdown(wait=True)
        apscheduler.shutdown.assert_called_once_with(wait=True)


class TestTick:
    """Tests for a single loop iteration."""

    async def test_runs_registered_function(self, scheduler, apscheduler, backup):
        scheduler.start_automatic_backup_system()
        call = _jobs(apscheduler)[JOB_VERIFY]

        await call.args[0](*call.kwargs["args"])

        backup.verify_due_backups.assert_awaited_once()

    async def test_failure_is_logged_not_raised(self, scheduler, caplog):
        failing = AsyncMock(side_effect=RuntimeError("mongo down"))

        with caplog.at_level(logging.ERROR):
            await scheduler._tick(JOB_CLEANUP, failing)

        record = caplog.records[-1]
        assert record.getMessage() == "Scheduled job failed"
        assert record.scheduled_job == JOB_CLEANUP

    async def test_each_run_gets_fresh_correlation_id(self, scheduler):
        seen: list[tuple[str | None, dict]] = []

        async def capture():
            seen.append((get_correlation_id(), get_log_context()))
            set_log_context(job_id="left-over")

        await scheduler._tick(JOB_PROCESS_QUEUE, capture)
        await scheduler._tick(JOB_PROCESS_QUEUE, capture)

        (first_id, first_ctx), (second_id, second_ctx) = seen
        assert first_id and second_id
        assert first_id != second_id
        assert first_ctx == second_ctx == {}
