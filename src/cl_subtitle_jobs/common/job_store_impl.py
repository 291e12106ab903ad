from __future__ import annotations

import math
import threading
from datetime import datetime, timedelta
from typing import override
from uuid import uuid4

from loguru import logger

from .errors import InvalidTransition, JobNotFound
from .job_store import JobStore
from .schema_job_record import JobRecord, JobStatus, utcnow


class InMemoryJobStore(JobStore):
    """
    In-process implementation of JobStore.

    Records are frozen pydantic models. Every mutation validates a new record
    and swaps it into the map under the lock, so readers observe either the
    previous or the next snapshot and never a partial update.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, JobRecord] = {}
        self._lock: threading.Lock = threading.Lock()

    def _require(self, job_id: str) -> JobRecord:
        # Caller must hold self._lock
        record = self._jobs.get(job_id)
        if record is None:
            raise JobNotFound(job_id)
        return record

    # ------------------------------------------------------------------
    # Creation / reads
    # ------------------------------------------------------------------

    @override
    def create(
        self,
        input_ref: str,
        *,
        output_file: str,
        input_file: str | None = None,
    ) -> str:
        with self._lock:
            job_id = uuid4().hex
            while job_id in self._jobs:
                job_id = uuid4().hex
            self._jobs[job_id] = JobRecord(
                job_id=job_id,
                input_ref=input_ref,
                input_file=input_file,
                output_file=output_file,
            )
        logger.info(f"Job {job_id} queued for {input_file or input_ref}")
        return job_id

    @override
    def get(self, job_id: str) -> JobRecord:
        with self._lock:
            return self._require(job_id)

    @override
    def list_jobs(self) -> list[JobRecord]:
        with self._lock:
            return list(self._jobs.values())

    # ------------------------------------------------------------------
    # Non-terminal updates
    # ------------------------------------------------------------------

    @override
    def mark_running(self, job_id: str) -> bool:
        with self._lock:
            record = self._require(job_id)
            if record.status != JobStatus.queued:
                return False
            self._jobs[job_id] = record.evolve(status=JobStatus.running)
        logger.info(f"Job {job_id} running")
        return True

    @override
    def update_progress(self, job_id: str, percent: float) -> bool:
        with self._lock:
            record = self._require(job_id)
            if record.status.is_terminal:
                return False
            if not math.isfinite(percent):
                logger.warning(f"Job {job_id}: ignoring progress value {percent}")
                return False

            clamped = max(0, min(100, int(round(percent))))
            self._jobs[job_id] = record.evolve(
                status=JobStatus.running,
                progress=max(record.progress, clamped),
            )
        return True

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    @override
    def complete(self, job_id: str, output_ref: str) -> JobRecord:
        with self._lock:
            record = self._require(job_id)
            if record.status.is_terminal:
                raise InvalidTransition(job_id, record.status, JobStatus.completed)
            updated = record.evolve(
                status=JobStatus.completed,
                progress=100,
                output_ref=output_ref,
                terminated_at=utcnow(),
            )
            self._jobs[job_id] = updated
        logger.info(f"Job {job_id} completed: {output_ref}")
        return updated

    @override
    def fail(self, job_id: str, reason: str) -> JobRecord:
        with self._lock:
            record = self._require(job_id)
            if record.status.is_terminal:
                raise InvalidTransition(job_id, record.status, JobStatus.failed)
            updated = record.evolve(
                status=JobStatus.failed,
                error_message=reason or "unknown error",
                terminated_at=utcnow(),
            )
            self._jobs[job_id] = updated
        logger.info(f"Job {job_id} failed: {updated.error_message}")
        return updated

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    @override
    def evict_terminated(
        self,
        older_than: timedelta,
        *,
        now: datetime | None = None,
    ) -> list[JobRecord]:
        cutoff = (now or utcnow()) - older_than
        with self._lock:
            expired = [
                record
                for record in self._jobs.values()
                if record.terminated_at is not None and record.terminated_at <= cutoff
            ]
            for record in expired:
                del self._jobs[record.job_id]
        if expired:
            logger.info(f"Evicted {len(expired)} terminated job(s)")
        return expired
