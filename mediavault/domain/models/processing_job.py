"""Processing job domain model and its status state machine."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Self
from uuid import uuid4

from pydantic import BaseModel, Field

from mediavault.domain.exceptions import InvalidJobTransitionException


class JobKind(str, Enum):
    """Kinds of asynchronous processing work."""

    TRANSCODE = "transcode"
    THUMBNAIL = "thumbnail"
    BACKUP = "backup"
    ANALYZE = "analyze"


class JobStatus(str, Enum):
    """Lifecycle status of a processing job.

    pending -> processing -> completed, or pending/processing -> failed.
    completed and failed are terminal.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


class ProcessingJob(BaseModel):
    """One unit of work for a source asset.

    Jobs are never deleted; failed jobs stay as an audit trail and are
    re-run by enqueueing a fresh copy.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    video_file_id: str = Field(description="Source asset this job works on")
    job_type: str = Field(description="JobKind value; unknown kinds fail at dispatch")
    target_quality: str | None = None
    target_server_id: str | None = None
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    error_message: str | None = None
    result: dict[str, Any] | None = None
    retry_of: str | None = Field(default=None, description="Failed job this one re-runs")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def _check(self, target: JobStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidJobTransitionException(self.id, self.status.value, target.value)

    def mark_processing(self) -> Self:
        self._check(JobStatus.PROCESSING)
        return self.model_copy(
            update={"status": JobStatus.PROCESSING, "started_at": datetime.now(UTC)}
        )

    def mark_completed(self, result: dict[str, Any] | None = None) -> Self:
        self._check(JobStatus.COMPLETED)
        return self.model_copy(
            update={
                "status": JobStatus.COMPLETED,
                "progress": 100,
                "completed_at": datetime.now(UTC),
                "result": result,
            }
        )

    def mark_failed(self, error_message: str) -> Self:
        self._check(JobStatus.FAILED)
        return self.model_copy(
            update={
                "status": JobStatus.FAILED,
                "error_message": error_message,
                "completed_at": datetime.now(UTC),
            }
        )

    def requeued(self) -> Self:
        """A fresh pending copy of this job for a manual re-run."""
        return self.model_copy(
            update={
                "id": str(uuid4()),
                "status": JobStatus.PENDING,
                "progress": 0,
                "error_message": None,
                "result": None,
                "retry_of": self.id,
                "created_at": datetime.now(UTC),
                "started_at": None,
                "completed_at": None,
            }
        )
