from datetime import UTC, datetime
from enum import StrEnum
from typing import ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(UTC)


class JobStatus(StrEnum):
    queued = "queued"
    running = "running"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.completed, JobStatus.failed)


class JobRecord(BaseModel):
    """Immutable snapshot of a conversion job."""

    job_id: str
    status: JobStatus = JobStatus.queued
    progress: int = Field(0, ge=0, le=100)

    input_ref: str
    output_ref: str | None = None
    error_message: str | None = None

    input_file: str | None = None
    output_file: str

    created_at: datetime = Field(default_factory=utcnow)
    terminated_at: datetime | None = None

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def validate_state(self) -> Self:
        completed = self.status == JobStatus.completed
        failed = self.status == JobStatus.failed

        if (self.output_ref is not None) != completed:
            raise ValueError("output_ref must be set if and only if the job is completed")
        if (self.error_message is not None) != failed:
            raise ValueError("error_message must be set if and only if the job failed")
        if completed and self.progress != 100:
            raise ValueError("a completed job must report progress 100")
        if (self.terminated_at is not None) != self.status.is_terminal:
            raise ValueError("terminated_at must be set if and only if the job is terminal")
        return self

    def evolve(self, **changes: object) -> "JobRecord":
        """Return a validated copy with `changes` applied."""
        return JobRecord.model_validate({**self.model_dump(), **changes})


class JobStatusResponse(BaseModel):
    job_id: str
    status: JobStatus
    progress: int
    error_message: str | None = None
    input_file: str | None = None
    output_file: str

    @classmethod
    def from_record(cls, record: JobRecord) -> "JobStatusResponse":
        return cls(
            job_id=record.job_id,
            status=record.status,
            progress=record.progress,
            error_message=record.error_message,
            input_file=record.input_file,
            output_file=record.output_file,
        )


class JobCreatedResponse(BaseModel):
    job_id: str
    status: JobStatus
