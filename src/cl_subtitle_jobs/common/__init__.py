"""Common module - protocols, schemas, errors and storage."""

from .file_storage_impl import LocalFileStorage
from .job_storage import BlobStorage
from .job_store import JobStore
from .job_store_impl import InMemoryJobStore
from .schema_job_record import JobRecord, JobStatus

__all__ = [
    "JobRecord",
    "JobStatus",
    "JobStore",
    "InMemoryJobStore",
    "BlobStorage",
    "LocalFileStorage",
]
