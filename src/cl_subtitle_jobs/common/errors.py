"""Error taxonomy for conversion jobs.

Validation errors (`UnsupportedMediaType`, `UploadTooLarge`,
`StorageWriteFailed`) are raised synchronously from submission and leave no
job behind. Everything that happens after a job exists is recorded on the job
itself; pollers only ever see `JobNotFound`, `NotReady` or `UnsafeArtifactPath`.
"""


class ConversionError(Exception):
    """Base class for conversion job errors."""


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class UnsupportedMediaType(ConversionError):
    def __init__(self, content_type: str | None, allowed: tuple[str, ...] = ()):
        self.content_type: str | None = content_type
        self.allowed: tuple[str, ...] = allowed
        detail = f" (allowed: {', '.join(allowed)})" if allowed else ""
        super().__init__(f"Unsupported media type '{content_type}'{detail}")


class UploadTooLarge(ConversionError):
    def __init__(self, limit: int):
        self.limit: int = limit
        super().__init__(f"Upload exceeds the {limit} byte limit")


class StorageWriteFailed(ConversionError):
    """Input could not be persisted."""


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


class JobNotFound(ConversionError):
    def __init__(self, job_id: str, message: str | None = None):
        self.job_id: str = job_id
        super().__init__(message or f"Job '{job_id}' not found")


class ArtifactNotFound(JobNotFound):
    def __init__(self, job_id: str, ref: str):
        self.ref: str = ref
        super().__init__(job_id, f"Output '{ref}' of job '{job_id}' no longer exists")


class NotReady(ConversionError):
    def __init__(self, job_id: str, status: str):
        self.job_id: str = job_id
        self.status: str = status
        super().__init__(f"Job '{job_id}' is {status}, output not available")


class UnsafeArtifactPath(ConversionError, ValueError):
    def __init__(self, ref: str):
        self.ref: str = ref
        super().__init__(f"Invalid artifact path '{ref}' (path traversal detected)")


# ---------------------------------------------------------------------------
# State machine / engine
# ---------------------------------------------------------------------------


class InvalidTransition(ConversionError):
    """Attempted to move a job out of a terminal state."""

    def __init__(self, job_id: str, status: str, target: str):
        self.job_id: str = job_id
        self.status: str = status
        self.target: str = target
        super().__init__(f"Job '{job_id}' is already {status}, cannot become {target}")


class EngineFailure(ConversionError):
    """The transcoding engine reported a failure."""


class EngineStartError(EngineFailure):
    """The transcoding engine could not be started."""
