"""Deterministic transcoding engines for tests.

ScriptedEngine replays timed events on the event loop; ManualEngine hands the
listener to the test so callbacks can be fired explicitly.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path

SAMPLE_SRT = "1\n00:00:01,000 --> 00:00:02,000\nHello there\n"


@dataclass(frozen=True)
class Event:
    kind: str  # progress | success | failure
    delay: float = 0.0
    percent: float = 0.0
    reason: str = ""


def progress(percent: float, delay: float = 0.0) -> Event:
    return Event("progress", delay=delay, percent=percent)


def success(delay: float = 0.0) -> Event:
    return Event("success", delay=delay)


def failure(reason: str, delay: float = 0.0) -> Event:
    return Event("failure", delay=delay, reason=reason)


class TaskHandle:
    def __init__(self, task: asyncio.Task[None]):
        self._task = task
        self.cancelled = False

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        self.cancelled = True
        self._task.cancel()

    async def wait(self) -> None:
        await asyncio.wait({self._task})


class ScriptedEngine:
    def __init__(
        self,
        events: list[Event],
        *,
        write_output: bool = True,
        start_error: Exception | None = None,
    ):
        self.events = events
        self.write_output = write_output
        self.start_error = start_error
        self.started: list[tuple[Path, Path]] = []

    async def start(self, input_path: Path, output_path: Path, listener) -> TaskHandle:
        if self.start_error is not None:
            raise self.start_error
        self.started.append((input_path, output_path))
        listener.on_start()
        return TaskHandle(asyncio.create_task(self._play(output_path, listener)))

    async def _play(self, output_path: Path, listener) -> None:
        for event in self.events:
            await asyncio.sleep(event.delay)
            if event.kind == "progress":
                listener.on_progress(event.percent)
            elif event.kind == "success":
                if self.write_output:
                    output_path.write_text(SAMPLE_SRT)
                listener.on_success()
            else:
                listener.on_failure(event.reason)


class ManualHandle:
    def __init__(self):
        self.cancelled = False
        self.finished = False

    @property
    def done(self) -> bool:
        return self.cancelled or self.finished

    def cancel(self) -> None:
        self.cancelled = True

    async def wait(self) -> None:
        while not self.done:
            await asyncio.sleep(0.01)


class ManualEngine:
    """Engine whose callbacks are driven by the test."""

    def __init__(self):
        self.listeners: dict[Path, object] = {}
        self.outputs: dict[Path, Path] = {}
        self.handles: list[ManualHandle] = []

    async def start(self, input_path: Path, output_path: Path, listener) -> ManualHandle:
        listener.on_start()
        self.listeners[input_path] = listener
        self.outputs[input_path] = output_path
        handle = ManualHandle()
        self.handles.append(handle)
        return handle

    @property
    def last(self):
        return list(self.listeners.values())[-1]

    @property
    def last_output(self) -> Path:
        return list(self.outputs.values())[-1]

    def succeed_last(self) -> None:
        self.last_output.write_text(SAMPLE_SRT)
        self.last.on_success()
        self.handles[-1].finished = True
