"""Periodic background loops driving the processing queue and backup engine."""

from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mediavault.application.services.backup import VideoBackupService
from mediavault.application.services.processing import VideoProcessingService
from mediavault.commons.settings.models import BackupSettings, ProcessingSettings
from mediavault.commons.telemetry import clear_log_context, get_logger, set_correlation_id

JOB_PROCESS_QUEUE = "process-job-queue"
JOB_EXECUTE_POLICIES = "execute-backup-policies"
JOB_CLEANUP = "cleanup-old-backups"
JOB_VERIFY = "verify-due-backups"


class BackgroundScheduler:
    """Runs the queue drain and the backup loops on fixed intervals.

    Every job is registered with ``max_instances=1`` and ``coalesce=True``,
    so a slow tick is never overlapped by the next one and missed ticks
    collapse into a single run.
    """

    def __init__(
        self,
        processing_service: VideoProcessingService,
        backup_service: VideoBackupService,
        processing_settings: ProcessingSettings,
        backup_settings: BackupSettings,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._processing = processing_service
        self._backup = backup_service
        self._processing_settings = processing_settings
        self._backup_settings = backup_settings
        self._scheduler = scheduler or AsyncIOScheduler()
        self._logger = get_logger(__name__)

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def start_automatic_backup_system(self, include_queue: bool = True) -> None:
        """Register the periodic loops and start the scheduler.

        Args:
            include_queue: Also drain the processing job queue on an interval.
        """
        if self.running:
            self._logger.info("Scheduler already running")
            return

        settings = self._backup_settings
        self._add(
            JOB_EXECUTE_POLICIES,
            self._backup.execute_backup_policies,
            timedelta(minutes=settings.policy_interval_minutes),
        )
        self._add(
            JOB_CLEANUP,
            self._backup.cleanup_old_backups,
            timedelta(hours=settings.cleanup_interval_hours),
        )
        self._add(
            JOB_VERIFY,
            self._backup.verify_due_backups,
            timedelta(minutes=settings.verification_interval_minutes),
        )
        if include_queue:
            self._add(
                JOB_PROCESS_QUEUE,
                self._processing.process_job_queue,
                timedelta(seconds=self._processing_settings.queue_poll_interval_seconds),
            )

        self._scheduler.start()
        self._logger.info(
            "Automatic backup system started",
            extra={"jobs": [job.id for job in self._scheduler.get_jobs()]},
        )

    def shutdown(self, wait: bool = False) -> None:
        if not self.running:
            return
        self._scheduler.shutdown(wait=wait)
        self._logger.info("Scheduler stopped")

    def _add(
        self,
        job_id: str,
        func: Callable[[], Awaitable[Any]],
        interval: timedelta,
    ) -> None:
        self._scheduler.add_job(
            self._tick,
            trigger=IntervalTrigger(seconds=int(interval.total_seconds())),
            args=[job_id, func],
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    async def _tick(self, job_id: str, func: Callable[[], Awaitable[Any]]) -> None:
        """Run one loop iteration; failures are logged and the loop keeps going."""
        set_correlation_id()
        clear_log_context()
        try:
            await func()
        except Exception:
            self._logger.error(
                "Scheduled job failed",
                exc_info=True,
                extra={"scheduled_job": job_id},
            )
