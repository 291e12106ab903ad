"""Test configuration and fixtures for cl_subtitle_jobs.

This module provides:
- Pytest configuration (markers, dependency checks)
- Function-scoped fixtures (temp storage, job store, engines, runner)
- Integration fixtures (orchestrator, API client factory)
"""

import shutil
import subprocess
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from cl_subtitle_jobs import (
    ConverterConfig,
    InMemoryJobStore,
    JobOrchestrator,
    LocalFileStorage,
    TranscodeRunner,
    create_app,
)
from tests.utils.engines import ManualEngine

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_runtest_setup(item):
    """Skip ffmpeg-backed tests when the binaries are missing."""
    if item.get_closest_marker("requires_ffmpeg") and not (
        shutil.which("ffmpeg") and shutil.which("ffprobe")
    ):
        pytest.skip(
            "FFmpeg not installed. "
            "Install: brew install ffmpeg (macOS) or apt-get install ffmpeg (Linux)"
        )


# ============================================================================
# Function-Scoped Fixtures (Run Per Test)
# ============================================================================


@pytest.fixture
def storage(tmp_path: Path) -> LocalFileStorage:
    """Provide file storage rooted in a temp directory."""
    return LocalFileStorage(base_dir=tmp_path / "media")


@pytest.fixture
def store() -> InMemoryJobStore:
    """Provide an empty in-memory job store."""
    return InMemoryJobStore()


@pytest.fixture
def manual_engine() -> ManualEngine:
    return ManualEngine()


@pytest.fixture
def make_orchestrator(store: InMemoryJobStore, storage: LocalFileStorage):
    """Factory building an orchestrator around a given engine."""

    def factory(engine, **kwargs) -> JobOrchestrator:
        timeout = kwargs.pop("timeout_seconds", None)
        runner = TranscodeRunner(store, storage, engine, timeout_seconds=timeout)
        return JobOrchestrator(store, storage, runner, **kwargs)

    return factory


@pytest.fixture
def make_client(tmp_path: Path):
    """Factory yielding a started TestClient around a given engine."""
    clients: list[TestClient] = []

    def factory(engine, **config) -> TestClient:
        app = create_app(
            ConverterConfig(storage_dir=tmp_path / "api_media", **config),
            engine=engine,
        )
        client = TestClient(app)
        _ = client.__enter__()
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.__exit__(None, None, None)


# ============================================================================
# Media Fixtures
# ============================================================================


def _run_ffmpeg(args: list[str]) -> None:
    _ = subprocess.run(
        ["ffmpeg", "-y", "-hide_banner", "-loglevel", "error", *args],
        check=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )


@pytest.fixture
def video_with_subtitles(tmp_path: Path) -> Path:
    """Generate a 2-second MP4 carrying a mov_text subtitle track."""
    srt = tmp_path / "source.srt"
    srt.write_text("1\n00:00:00,500 --> 00:00:01,500\nHello from ffmpeg\n")
    video = tmp_path / "with_subs.mp4"
    _run_ffmpeg(
        [
            "-f", "lavfi", "-i", "color=c=black:s=64x64:d=2",
            "-i", str(srt),
            "-c:v", "mpeg4",
            "-c:s", "mov_text",
            str(video),
        ]
    )
    return video


@pytest.fixture
def video_without_subtitles(tmp_path: Path) -> Path:
    """Generate a 1-second MP4 with no subtitle track."""
    video = tmp_path / "no_subs.mp4"
    _run_ffmpeg(
        [
            "-f", "lavfi", "-i", "color=c=black:s=64x64:d=1",
            "-c:v", "mpeg4",
            str(video),
        ]
    )
    return video
