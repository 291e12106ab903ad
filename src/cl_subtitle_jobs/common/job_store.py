"""JobStore Protocol - interface for job state."""

from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from .schema_job_record import JobRecord


@runtime_checkable
class JobStore(Protocol):
    """Protocol for the authoritative job registry.

    Implementations must serialize mutations and hand out immutable
    snapshots only. None of the operations may block on I/O.
    """

    def create(
        self,
        input_ref: str,
        *,
        output_file: str,
        input_file: str | None = None,
    ) -> str:
        """Register a new queued job.

        Returns:
            The freshly allocated job_id
        """
        ...

    def get(self, job_id: str) -> JobRecord:
        """Get a snapshot of a job.

        Raises:
            JobNotFound: If the id is unknown
        """
        ...

    def list_jobs(self) -> list[JobRecord]:
        """Snapshot of every known job."""
        ...

    def mark_running(self, job_id: str) -> bool:
        """Move a queued job to running.

        Returns:
            True if the job changed, False if it was not queued
        """
        ...

    def update_progress(self, job_id: str, percent: float) -> bool:
        """Record engine progress.

        Progress is clamped to [0, 100] and never decreases. A queued job
        becomes running. NaN and infinite values are ignored.

        Returns:
            True if the job was updated, False if it is already terminal
            or the value was ignored
        """
        ...

    def complete(self, job_id: str, output_ref: str) -> JobRecord:
        """Transition to completed.

        Raises:
            InvalidTransition: If the job is already terminal
        """
        ...

    def fail(self, job_id: str, reason: str) -> JobRecord:
        """Transition to failed.

        Raises:
            InvalidTransition: If the job is already terminal
        """
        ...

    def evict_terminated(
        self,
        older_than: timedelta,
        *,
        now: datetime | None = None,
    ) -> list[JobRecord]:
        """Drop terminal jobs that terminated before `now - older_than`.

        Returns:
            The evicted records
        """
        ...
