import os
from collections.abc import Mapping
from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from .utils.media_types import DEFAULT_ALLOWED_TYPES

# --------------------------------------------------
# Environment variables
# --------------------------------------------------
ENV_STORAGE_DIR = "CL_SUBTITLE_STORAGE_DIR"
ENV_FFMPEG_PATH = "FFMPEG_PATH"
ENV_FFPROBE_PATH = "FFPROBE_PATH"
ENV_MAX_UPLOAD_MB = "CL_SUBTITLE_MAX_UPLOAD_MB"
ENV_ALLOWED_TYPES = "CL_SUBTITLE_ALLOWED_TYPES"
ENV_JOB_TIMEOUT = "CL_SUBTITLE_JOB_TIMEOUT"
ENV_RETENTION = "CL_SUBTITLE_RETENTION"
ENV_SWEEP_INTERVAL = "CL_SUBTITLE_SWEEP_INTERVAL"


class ConverterConfig(BaseModel):
    """Runtime configuration of the conversion service."""

    storage_dir: Path = Field(Path("./media"), description="Root for uploads and outputs")
    ffmpeg_path: str = Field("ffmpeg", description="ffmpeg binary")
    ffprobe_path: str = Field("ffprobe", description="ffprobe binary")
    max_upload_mb: int = Field(500, gt=0, description="Upload size limit in MB")
    allowed_types: tuple[str, ...] = Field(
        DEFAULT_ALLOWED_TYPES, description="Accepted upload content types"
    )
    job_timeout_seconds: float | None = Field(
        None, gt=0, description="Fail jobs still converting after this many seconds"
    )
    retention_seconds: float | None = Field(
        None, gt=0, description="Forget terminated jobs after this many seconds"
    )
    sweep_interval_seconds: float = Field(60.0, gt=0, description="Retention sweep period")

    @field_validator("allowed_types")
    @classmethod
    def validate_allowed_types(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(v) == 0:
            raise ValueError("At least one content type must be allowed")
        return v

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def retention(self) -> timedelta | None:
        if self.retention_seconds is None:
            return None
        return timedelta(seconds=self.retention_seconds)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ConverterConfig":
        """Build configuration from environment variables.

        `FFMPEG_PATH` also locates `ffprobe` next to it unless
        `FFPROBE_PATH` is set.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        if env.get(ENV_STORAGE_DIR):
            values["storage_dir"] = env[ENV_STORAGE_DIR]

        ffmpeg_path = env.get(ENV_FFMPEG_PATH)
        if ffmpeg_path:
            values["ffmpeg_path"] = ffmpeg_path
            sibling = Path(ffmpeg_path).with_name("ffprobe")
            if sibling.exists():
                values["ffprobe_path"] = str(sibling)
        if env.get(ENV_FFPROBE_PATH):
            values["ffprobe_path"] = env[ENV_FFPROBE_PATH]

        if env.get(ENV_MAX_UPLOAD_MB):
            values["max_upload_mb"] = env[ENV_MAX_UPLOAD_MB]
        if env.get(ENV_ALLOWED_TYPES):
            values["allowed_types"] = tuple(
                t.strip() for t in env[ENV_ALLOWED_TYPES].split(",") if t.strip()
            )
        if env.get(ENV_JOB_TIMEOUT):
            values["job_timeout_seconds"] = env[ENV_JOB_TIMEOUT]
        if env.get(ENV_RETENTION):
            values["retention_seconds"] = env[ENV_RETENTION]
        if env.get(ENV_SWEEP_INTERVAL):
            values["sweep_interval_seconds"] = env[ENV_SWEEP_INTERVAL]

        return cls.model_validate(values)
