from __future__ import annotations

import hashlib
import re
import shutil
from os import PathLike
from pathlib import Path, PurePosixPath
from typing import Final, override
from uuid import uuid4

import aiofiles
from loguru import logger

from .errors import StorageWriteFailed, UnsafeArtifactPath, UploadTooLarge
from .job_storage import BlobStorage, FileLike, SavedJobFile

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str | None, default: str = "upload") -> str:
    """Reduce a client supplied filename to a single safe path component."""
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name or default


class LocalFileStorage(BlobStorage):
    """
    Local filesystem implementation of BlobStorage.

    Layout:
        base_dir/
            uploads/
                <uuid>-<filename>
            output/
                <job_id>/
                    <filename>
    """

    UPLOADS: Final[str] = "uploads"
    OUTPUT: Final[str] = "output"

    _CHUNK_SIZE: Final[int] = 1024 * 1024  # 1 MB

    def __init__(self, base_dir: str | PathLike[str]):
        self._base_dir: Path = Path(base_dir).expanduser().resolve()
        self._uploads_dir: Path = self._base_dir / self.UPLOADS
        self._output_dir: Path = self._base_dir / self.OUTPUT
        self._uploads_dir.mkdir(parents=True, exist_ok=True)
        self._output_dir.mkdir(parents=True, exist_ok=True)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def output_root(self) -> Path:
        return self._output_dir

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _confine(self, root: Path, ref: str) -> Path:
        """
        Resolve a base-relative reference and require the result to lie
        strictly inside `root`. Prevents path traversal.
        """
        if not ref or "\x00" in ref or Path(ref).is_absolute():
            raise UnsafeArtifactPath(ref)

        resolved = (self._base_dir / ref).resolve()
        if root not in resolved.parents:
            raise UnsafeArtifactPath(ref)
        return resolved

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    @override
    async def put(
        self,
        file: FileLike,
        filename: str | None = None,
        *,
        max_bytes: int | None = None,
    ) -> SavedJobFile:
        if filename is None and isinstance(file, (str, PathLike)):
            filename = Path(file).name

        ref = f"{self.UPLOADS}/{uuid4().hex}-{safe_filename(filename)}"
        dst = self._base_dir / ref

        size = 0
        hasher = hashlib.sha256()

        try:
            # ----------------------------------------------------------
            # Case 1: bytes
            # ----------------------------------------------------------
            if isinstance(file, (bytes, bytearray)):
                if max_bytes is not None and len(file) > max_bytes:
                    raise UploadTooLarge(max_bytes)
                async with aiofiles.open(dst, "wb") as f:
                    _ = await f.write(file)
                size = len(file)
                hasher.update(file)

            # ----------------------------------------------------------
            # Case 2: filename / PathLike -> copy
            # ----------------------------------------------------------
            elif isinstance(file, (str, PathLike)):
                src = Path(file).expanduser().resolve()
                if not src.is_file():
                    raise FileNotFoundError(src)
                if max_bytes is not None and src.stat().st_size > max_bytes:
                    raise UploadTooLarge(max_bytes)

                _ = shutil.copyfile(src, dst)
                size = dst.stat().st_size

                with open(dst, "rb") as f:
                    for chunk in iter(lambda: f.read(self._CHUNK_SIZE), b""):
                        hasher.update(chunk)

            # ----------------------------------------------------------
            # Case 3: async file-like
            # ----------------------------------------------------------
            else:
                async with aiofiles.open(dst, "wb") as f:
                    while True:
                        chunk = await file.read(self._CHUNK_SIZE)
                        if not chunk:
                            break
                        size += len(chunk)
                        if max_bytes is not None and size > max_bytes:
                            raise UploadTooLarge(max_bytes)
                        _ = await f.write(chunk)
                        hasher.update(chunk)

        except UploadTooLarge:
            dst.unlink(missing_ok=True)
            raise
        except OSError as exc:
            dst.unlink(missing_ok=True)
            raise StorageWriteFailed(f"Failed to store upload '{filename}': {exc}") from exc

        logger.debug(f"Stored upload {ref} ({size} bytes)")
        return SavedJobFile(ref=ref, size=size, hash=hasher.hexdigest())

    @override
    def allocate_output(self, job_id: str, filename: str) -> str:
        ref = f"{self.OUTPUT}/{safe_filename(job_id)}/{safe_filename(filename, 'output')}"
        path = self.resolve_output(ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        return ref

    # ------------------------------------------------------------------
    # Reading / resolving
    # ------------------------------------------------------------------

    @override
    def resolve_path(self, ref: str) -> Path:
        return self._confine(self._base_dir, ref)

    @override
    def resolve_output(self, ref: str) -> Path:
        return self._confine(self._output_dir, ref)

    @override
    def exists(self, ref: str) -> bool:
        try:
            return self.resolve_path(ref).is_file()
        except UnsafeArtifactPath:
            return False

    @override
    def delete(self, ref: str) -> bool:
        try:
            path = self.resolve_path(ref)
            path.unlink(missing_ok=True)

            # Drop the per-job output directory once it is empty
            parent = path.parent
            if self._output_dir in parent.parents and not any(parent.iterdir()):
                parent.rmdir()
            return True
        except (OSError, UnsafeArtifactPath) as exc:
            logger.warning(f"Failed to delete {ref}: {exc}")
            return False
