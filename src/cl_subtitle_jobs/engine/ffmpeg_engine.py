import asyncio
import os
from collections import deque
from collections.abc import Mapping
from pathlib import Path
from typing import override

from loguru import logger

from ..common.errors import EngineStartError
from .base import EngineHandle, EngineListener, TranscodingEngine

_STDERR_TAIL = 20


def parse_progress_block(block: Mapping[str, str], duration: float | None) -> float | None:
    """Convert one `-progress` block of ffmpeg into a percentage.

    ffmpeg reports `out_time_us` and, despite its name, `out_time_ms` in
    microseconds. Returns None when no percentage can be derived.
    """
    if block.get("progress") == "end":
        return 100.0

    if not duration or duration <= 0:
        return None

    for key in ("out_time_us", "out_time_ms"):
        raw = block.get(key)
        if raw is None:
            continue
        try:
            micros = int(raw)
        except ValueError:
            continue  # "N/A" before the first frame
        percent = micros / 1_000_000 / duration * 100
        return max(0.0, min(100.0, percent))

    return None


def failure_reason(stderr_lines: list[str], returncode: int | None) -> str:
    """Pick the most descriptive ffmpeg error line."""
    for line in reversed(stderr_lines):
        if line and not line.startswith("Conversion failed"):
            return line
    return f"ffmpeg exited with code {returncode}"


class FFmpegProcessHandle(EngineHandle):
    def __init__(self, process: asyncio.subprocess.Process, task: asyncio.Task[None]):
        self._process: asyncio.subprocess.Process = process
        self._task: asyncio.Task[None] = task

    @property
    @override
    def done(self) -> bool:
        return self._task.done()

    @override
    def cancel(self) -> None:
        if self._process.returncode is None:
            try:
                self._process.kill()
            except ProcessLookupError:
                pass
        _ = self._task.cancel()

    @override
    async def wait(self) -> None:
        _ = await asyncio.wait({self._task})


class FFmpegSubtitleEngine(TranscodingEngine):
    """Extract the first subtitle stream of a media file into SRT."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        subtitle_stream: int = 0,
    ) -> None:
        self.ffmpeg_path: str = ffmpeg_path
        self.ffprobe_path: str = ffprobe_path
        self.subtitle_stream: int = subtitle_stream

    def build_command(self, input_file: str, output_file: str) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-nostats",
            "-progress",
            "pipe:1",
            "-i",
            input_file,
            "-map",
            f"0:s:{self.subtitle_stream}",
            "-c:s",
            "srt",
            output_file,
        ]

    async def probe_duration(self, input_file: str) -> float | None:
        command = [
            self.ffprobe_path,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            input_file,
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, _ = await process.communicate()
        except OSError as exc:
            logger.warning(f"ffprobe unavailable, progress will not be reported: {exc}")
            return None

        if process.returncode != 0:
            return None
        try:
            return float(stdout.decode().strip())
        except ValueError:
            return None

    @override
    async def start(
        self,
        input_path: Path,
        output_path: Path,
        listener: EngineListener,
    ) -> EngineHandle:
        if not os.path.exists(input_path):
            raise EngineStartError("Input file does not exist")

        if not os.path.isdir(output_path.parent):
            raise EngineStartError("Output directory does not exist")

        duration = await self.probe_duration(str(input_path))
        command = self.build_command(str(input_path), str(output_path))

        logger.debug(" ".join(command))

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as exc:
            raise EngineStartError(f"Failed to start ffmpeg: {exc}") from exc

        listener.on_start()
        task = asyncio.create_task(self._monitor(process, duration, output_path, listener))
        return FFmpegProcessHandle(process, task)

    async def _monitor(
        self,
        process: asyncio.subprocess.Process,
        duration: float | None,
        output_path: Path,
        listener: EngineListener,
    ) -> None:
        assert process.stdout is not None
        assert process.stderr is not None
        stderr = process.stderr

        stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL)

        async def drain_stderr() -> None:
            async for raw in stderr:
                line = raw.decode(errors="replace").strip()
                if line:
                    stderr_tail.append(line)

        stderr_task = asyncio.create_task(drain_stderr())

        try:
            block: dict[str, str] = {}
            async for raw in process.stdout:
                key, sep, value = raw.decode(errors="replace").strip().partition("=")
                if not sep:
                    continue
                block[key] = value
                if key == "progress":
                    percent = parse_progress_block(block, duration)
                    if percent is not None:
                        listener.on_progress(percent)
                    block = {}

            returncode = await process.wait()
            await stderr_task
        except asyncio.CancelledError:
            _ = stderr_task.cancel()
            raise
        except Exception as exc:
            _ = stderr_task.cancel()
            listener.on_failure(f"ffmpeg monitoring failed: {exc}")
            return
        finally:
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                _ = await process.wait()

        if returncode != 0:
            reason = failure_reason(list(stderr_tail), returncode)
            logger.error(f"ffmpeg failed ({returncode}): {reason}")
            listener.on_failure(reason)
        elif not output_path.exists():
            listener.on_failure("ffmpeg produced no output")
        else:
            listener.on_success()
