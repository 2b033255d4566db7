"""DTOs for processing pipeline status."""

from pydantic import BaseModel, Field

from mediavault.domain.models.processing_job import ProcessingJob


class ProcessingStatus(BaseModel):
    """Job counts and completion of one source asset."""

    video_file_id: str
    total: int = 0
    completed: int = 0
    failed: int = 0
    processing: int = 0
    pending: int = 0
    superseded: int = Field(
        default=0,
        description="Failed jobs that a later manual retry replaced",
    )
    progress: float = Field(
        default=0.0,
        ge=0,
        le=100,
        description="Completed jobs as a percentage of all non-superseded jobs",
    )
    jobs: list[ProcessingJob] = Field(default_factory=list)

    @property
    def is_finished(self) -> bool:
        return (
            self.total > self.superseded
            and self.completed + self.failed + self.superseded == self.total
        )
