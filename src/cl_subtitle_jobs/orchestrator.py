"""JobOrchestrator - public operations on conversion jobs."""

import re
from collections.abc import Iterable
from datetime import datetime, timedelta
from pathlib import Path

import aiofiles
from loguru import logger

from .common.errors import (
    ArtifactNotFound,
    JobNotFound,
    NotReady,
    UnsafeArtifactPath,
    UnsupportedMediaType,
)
from .common.file_storage_impl import safe_filename
from .common.job_storage import BlobStorage, FileLike
from .common.job_store import JobStore
from .common.schema_job_record import JobRecord, JobStatus, JobStatusResponse
from .engine.runner import TranscodeRunner
from .utils.media_types import (
    DEFAULT_ALLOWED_TYPES,
    SNIFF_BYTES,
    is_supported,
    normalize_mime,
    sniff_mime,
)

_JOB_ID = re.compile(r"[0-9a-f]{32}")

OUTPUT_SUFFIX = ".srt"


class JobOrchestrator:
    """Submit, query and resolve conversion jobs.

    Composes a JobStore, a BlobStorage and a TranscodeRunner. Submission
    validates and persists the upload, registers the job and starts the
    engine; it never waits for the conversion itself.
    """

    def __init__(
        self,
        store: JobStore,
        storage: BlobStorage,
        runner: TranscodeRunner,
        *,
        allowed_content_types: Iterable[str] = DEFAULT_ALLOWED_TYPES,
        max_upload_bytes: int | None = None,
        retention: timedelta | None = None,
    ):
        self.store: JobStore = store
        self.storage: BlobStorage = storage
        self.runner: TranscodeRunner = runner
        self.allowed_content_types: tuple[str, ...] = tuple(
            normalize_mime(t) for t in allowed_content_types
        )
        self.max_upload_bytes: int | None = max_upload_bytes
        self.retention: timedelta | None = retention

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    async def submit(
        self,
        file: FileLike,
        content_type: str | None,
        filename: str | None = None,
    ) -> str:
        """Register a conversion job for an upload.

        Raises:
            UnsupportedMediaType: Content type not allowed (no job created)
            UploadTooLarge: Upload exceeds `max_upload_bytes` (no job created)
            StorageWriteFailed: Upload could not be stored (no job created)

        Returns:
            The job_id. The job is queued or running, or already failed if the
            engine could not be started.
        """
        declared = normalize_mime(content_type)
        if declared and not is_supported(declared, self.allowed_content_types):
            raise UnsupportedMediaType(content_type, self.allowed_content_types)

        saved = await self.storage.put(file, filename, max_bytes=self.max_upload_bytes)

        if not declared:
            try:
                sniffed = await self._sniff(saved.ref)
            except Exception as exc:
                logger.error(f"Content type detection failed for {saved.ref}: {exc}")
                _ = self.storage.delete(saved.ref)
                raise
            if not is_supported(sniffed, self.allowed_content_types):
                _ = self.storage.delete(saved.ref)
                raise UnsupportedMediaType(sniffed, self.allowed_content_types)

        output_file = Path(safe_filename(filename, "subtitles")).stem + OUTPUT_SUFFIX
        job_id = self.store.create(saved.ref, input_file=filename, output_file=output_file)

        try:
            output_ref = self.storage.allocate_output(job_id, output_file)
        except (OSError, UnsafeArtifactPath) as exc:
            logger.error(f"Job {job_id}: output could not be allocated: {exc}")
            _ = self.store.fail(job_id, f"output could not be allocated: {exc}")
            _ = self.storage.delete(saved.ref)
            return job_id

        _ = await self.runner.run(job_id, saved.ref, output_ref)
        return job_id

    async def _sniff(self, ref: str) -> str:
        async with aiofiles.open(self.storage.resolve_path(ref), "rb") as f:
            head = await f.read(SNIFF_BYTES)
        return sniff_mime(head)

    # ------------------------------------------------------------------
    # Query / resolve
    # ------------------------------------------------------------------

    def _get(self, job_id: str) -> JobRecord:
        if not _JOB_ID.fullmatch(job_id):
            raise JobNotFound(job_id)
        return self.store.get(job_id)

    def query(self, job_id: str) -> JobStatusResponse:
        """Current status of a job.

        Raises:
            JobNotFound: Unknown or malformed job id
        """
        return JobStatusResponse.from_record(self._get(job_id))

    def resolve_artifact(self, job_id: str) -> Path:
        """Absolute path of a completed job's output.

        The path is verified to exist and to lie inside the output root.

        Raises:
            JobNotFound: Unknown or malformed job id
            NotReady: Job is not completed (including failed jobs)
            UnsafeArtifactPath: Stored reference escapes the output root
            ArtifactNotFound: Output file no longer exists
        """
        return self._resolve(self._get(job_id))

    def resolve_download(self, job_id: str) -> tuple[Path, str]:
        """Output path and download filename of a completed job.

        Both come from the same record snapshot. Raises as `resolve_artifact`.
        """
        record = self._get(job_id)
        path = self._resolve(record)
        return path, record.output_file

    def _resolve(self, record: JobRecord) -> Path:
        if record.status != JobStatus.completed or record.output_ref is None:
            raise NotReady(record.job_id, record.status)

        path = self.storage.resolve_output(record.output_ref)
        if not path.is_file():
            raise ArtifactNotFound(record.job_id, record.output_ref)
        return path

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def purge_expired(self, now: datetime | None = None) -> int:
        """Evict terminated jobs older than the retention period.

        Returns:
            Number of evicted jobs
        """
        if self.retention is None:
            return 0

        evicted = self.store.evict_terminated(self.retention, now=now)
        for record in evicted:
            if record.output_ref is not None:
                _ = self.storage.delete(record.output_ref)
        return len(evicted)
