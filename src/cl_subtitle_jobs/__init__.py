"""cl_subtitle_jobs - asynchronous subtitle conversion jobs."""

from .app import create_app, create_orchestrator
from .common.errors import (
    ArtifactNotFound,
    ConversionError,
    EngineFailure,
    EngineStartError,
    InvalidTransition,
    JobNotFound,
    NotReady,
    StorageWriteFailed,
    UnsafeArtifactPath,
    UnsupportedMediaType,
    UploadTooLarge,
)
from .common.file_storage_impl import LocalFileStorage
from .common.job_storage import AsyncFileLike, BlobStorage, FileLike, SavedJobFile
from .common.job_store import JobStore
from .common.job_store_impl import InMemoryJobStore
from .common.schema_job_record import (
    JobCreatedResponse,
    JobRecord,
    JobStatus,
    JobStatusResponse,
)
from .config import ConverterConfig
from .engine import (
    EngineHandle,
    EngineListener,
    FFmpegSubtitleEngine,
    TranscodeRunner,
    TranscodingEngine,
)
from .orchestrator import JobOrchestrator

__version__ = "0.1.0"

__all__ = [
    "JobRecord",
    "JobStatus",
    "JobStatusResponse",
    "JobCreatedResponse",
    "JobStore",
    "InMemoryJobStore",
    "BlobStorage",
    "LocalFileStorage",
    "AsyncFileLike",
    "FileLike",
    "SavedJobFile",
    "TranscodingEngine",
    "EngineListener",
    "EngineHandle",
    "FFmpegSubtitleEngine",
    "TranscodeRunner",
    "JobOrchestrator",
    "ConverterConfig",
    "create_app",
    "create_orchestrator",
    "ConversionError",
    "UnsupportedMediaType",
    "UploadTooLarge",
    "StorageWriteFailed",
    "JobNotFound",
    "ArtifactNotFound",
    "NotReady",
    "UnsafeArtifactPath",
    "InvalidTransition",
    "EngineFailure",
    "EngineStartError",
    "__version__",
]
