"""Engine layer - transcoding engines and the per-job runner."""

from .base import EngineHandle, EngineListener, TranscodingEngine
from .ffmpeg_engine import FFmpegSubtitleEngine
from .runner import TranscodeRunner

__all__ = [
    "TranscodingEngine",
    "EngineListener",
    "EngineHandle",
    "FFmpegSubtitleEngine",
    "TranscodeRunner",
]
