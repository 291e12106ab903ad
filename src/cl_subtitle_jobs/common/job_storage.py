"""
BlobStorage Protocol - interface for upload and output file storage.

Design goals:
- Storage is the single authority over paths
- Callers hold opaque references, never absolute paths
- Support filesystem-bound tools (ffmpeg) through explicit resolution
- Every output reference resolves inside one output root
"""

from __future__ import annotations

from os import PathLike
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class SavedJobFile(BaseModel):
    """Metadata of a stored upload."""

    ref: str = Field(
        ...,
        description="Storage reference of the saved file",
    )
    size: int = Field(
        ...,
        ge=0,
        description="File size in bytes",
    )
    hash: str | None = Field(
        None,
        description="Optional content hash (SHA256)",
    )

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------------
# File-like abstractions
# ---------------------------------------------------------------------------


class AsyncFileLike(Protocol):
    """Minimal async file-like interface."""

    async def read(self, size: int = -1, /) -> bytes: ...


FileLike = AsyncFileLike | bytes | str | PathLike[str]


# ---------------------------------------------------------------------------
# Storage Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class BlobStorage(Protocol):
    """
    Protocol for durable upload/output storage.

    Implementations own:
    - storage root and the designated output root
    - naming of uploads (unique per call)
    - path traversal protection
    """

    async def put(
        self,
        file: FileLike,
        filename: str | None = None,
        *,
        max_bytes: int | None = None,
    ) -> SavedJobFile:
        """
        Persist an upload under a fresh, unique reference.

        Raises:
            StorageWriteFailed: If the bytes could not be written
            UploadTooLarge: If more than `max_bytes` were supplied
        """
        ...

    def allocate_output(self, job_id: str, filename: str) -> str:
        """
        Reserve an output reference owned by `job_id`.

        The parent directory exists when this returns; the caller (engine)
        writes the file.
        """
        ...

    def resolve_path(self, ref: str) -> Path:
        """Resolve any reference to an absolute path inside the storage root."""
        ...

    def resolve_output(self, ref: str) -> Path:
        """
        Resolve an output reference.

        Raises:
            UnsafeArtifactPath: If the normalised path leaves the output root
        """
        ...

    def exists(self, ref: str) -> bool: ...

    def delete(self, ref: str) -> bool:
        """
        Delete a stored file.

        Returns:
            True if removed (or already absent), False on failure.
        """
        ...
