"""Integration tests for JobOrchestrator: submit / query / resolve artifact.

Covers the polling scenarios end to end with scripted engines.
"""

import asyncio
from datetime import timedelta

import pytest

from cl_subtitle_jobs import (
    JobNotFound,
    JobStatus,
    NotReady,
    StorageWriteFailed,
    UnsafeArtifactPath,
    UnsupportedMediaType,
    UploadTooLarge,
)
from cl_subtitle_jobs.common.errors import EngineStartError
from tests.utils.engines import SAMPLE_SRT, ScriptedEngine, failure, progress, success

VIDEO = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64


# ============================================================================
# Submit
# ============================================================================


@pytest.mark.asyncio
async def test_submit_returns_before_conversion_finishes(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedEngine([progress(10), success(delay=5)]))

    job_id = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")

    status = orchestrator.query(job_id)
    assert status.status in (JobStatus.queued, JobStatus.running)
    assert status.output_file == "movie.srt"
    assert status.input_file == "movie.mp4"

    await orchestrator.runner.shutdown()


@pytest.mark.asyncio
async def test_scenario_a_polling_observes_monotonic_progress(make_orchestrator):
    engine = ScriptedEngine(
        [
            progress(0, delay=0.3),
            progress(50, delay=0.7),
            progress(100, delay=0.7),
            success(delay=0.3),
        ]
    )
    orchestrator = make_orchestrator(engine)
    job_id = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")

    observed = []
    for _ in range(60):
        status = orchestrator.query(job_id)
        observed.append(status)
        if status.status.is_terminal:
            break
        await asyncio.sleep(0.1)

    progresses = [s.progress for s in observed]
    assert progresses == sorted(progresses)
    assert max(progresses) <= 100
    assert all(not s.status.is_terminal for s in observed[:-1])
    assert observed[-1].status == JobStatus.completed
    assert observed[-1].progress == 100
    assert 50 in progresses


@pytest.mark.asyncio
async def test_scenario_b_engine_failure_is_reported(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedEngine([failure("unsupported codec")]))

    job_id = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")
    await orchestrator.runner.wait(job_id)

    status = orchestrator.query(job_id)
    assert status.status == JobStatus.failed
    assert status.error_message == "unsupported codec"


@pytest.mark.asyncio
async def test_scenario_c_unsupported_media_type_creates_nothing(make_orchestrator, store, storage):
    engine = ScriptedEngine([success()])
    orchestrator = make_orchestrator(engine)

    with pytest.raises(UnsupportedMediaType):
        _ = await orchestrator.submit(b"\x89PNG\r\n\x1a\n", "image/png", "cat.png")

    assert store.list_jobs() == []
    assert list((storage.base_dir / "uploads").iterdir()) == []
    assert engine.started == []


@pytest.mark.asyncio
async def test_content_type_parameters_are_ignored(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedEngine([success()]))

    job_id = await orchestrator.submit(VIDEO, "Video/MP4; codecs=avc1", "movie.mp4")
    await orchestrator.runner.wait(job_id)

    assert orchestrator.query(job_id).status == JobStatus.completed


@pytest.mark.asyncio
async def test_missing_content_type_is_sniffed(make_orchestrator, store, storage, monkeypatch):
    orchestrator = make_orchestrator(ScriptedEngine([success()]))

    monkeypatch.setattr("cl_subtitle_jobs.orchestrator.sniff_mime", lambda head: "text/plain")
    with pytest.raises(UnsupportedMediaType):
        _ = await orchestrator.submit(b"hello", None, "notes.txt")
    assert store.list_jobs() == []
    assert list((storage.base_dir / "uploads").iterdir()) == []

    monkeypatch.setattr("cl_subtitle_jobs.orchestrator.sniff_mime", lambda head: "video/mp4")
    job_id = await orchestrator.submit(VIDEO, None, "movie.mp4")
    await orchestrator.runner.wait(job_id)
    assert orchestrator.query(job_id).status == JobStatus.completed


@pytest.mark.asyncio
async def test_sniff_failure_removes_upload(make_orchestrator, store, storage, monkeypatch):
    orchestrator = make_orchestrator(ScriptedEngine([success()]))

    def broken_sniff(head: bytes) -> str:
        raise RuntimeError("magic database not found")

    monkeypatch.setattr("cl_subtitle_jobs.orchestrator.sniff_mime", broken_sniff)

    with pytest.raises(RuntimeError):
        _ = await orchestrator.submit(VIDEO, None, "movie.mp4")

    assert store.list_jobs() == []
    assert list((storage.base_dir / "uploads").iterdir()) == []


@pytest.mark.asyncio
async def test_oversized_upload_creates_no_job(make_orchestrator, store):
    orchestrator = make_orchestrator(ScriptedEngine([success()]), max_upload_bytes=16)

    with pytest.raises(UploadTooLarge):
        _ = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")

    assert store.list_jobs() == []


@pytest.mark.asyncio
async def test_storage_failure_creates_no_job(make_orchestrator, store, storage, monkeypatch):
    orchestrator = make_orchestrator(ScriptedEngine([success()]))

    async def broken_put(*args, **kwargs):
        raise StorageWriteFailed("disk full")

    monkeypatch.setattr(storage, "put", broken_put)

    with pytest.raises(StorageWriteFailed):
        _ = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")

    assert store.list_jobs() == []


@pytest.mark.asyncio
async def test_engine_start_failure_fails_job_synchronously(make_orchestrator):
    engine = ScriptedEngine([], start_error=EngineStartError("Failed to start ffmpeg"))
    orchestrator = make_orchestrator(engine)

    job_id = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")

    status = orchestrator.query(job_id)
    assert status.status == JobStatus.failed
    assert status.error_message == "Failed to start ffmpeg"


@pytest.mark.asyncio
async def test_jobs_never_share_output_paths(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedEngine([success()]))

    first = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")
    second = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")
    await orchestrator.runner.wait(first)
    await orchestrator.runner.wait(second)

    assert first != second
    assert orchestrator.resolve_artifact(first) != orchestrator.resolve_artifact(second)


# ============================================================================
# Query / resolve
# ============================================================================


def test_query_unknown_job(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedEngine([]))

    with pytest.raises(JobNotFound):
        _ = orchestrator.query("0123456789abcdef0123456789abcdef")
    with pytest.raises(JobNotFound):
        _ = orchestrator.query("not-a-job")


@pytest.mark.asyncio
async def test_resolve_artifact_of_completed_job(make_orchestrator, storage):
    orchestrator = make_orchestrator(ScriptedEngine([progress(50), success()]))

    job_id = await orchestrator.submit(VIDEO, "video/mp4", "holiday video.mp4")
    await orchestrator.runner.wait(job_id)

    path = orchestrator.resolve_artifact(job_id)
    assert path.name == "holiday_video.srt"
    assert path.read_text() == SAMPLE_SRT
    assert storage.output_root in path.parents
    # Idempotent
    assert orchestrator.resolve_artifact(job_id) == path


@pytest.mark.asyncio
async def test_resolve_download_reads_one_snapshot(make_orchestrator, store, monkeypatch):
    orchestrator = make_orchestrator(ScriptedEngine([success()]))
    job_id = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")
    await orchestrator.runner.wait(job_id)
    record = store.get(job_id)

    calls: list[str] = []

    def get_once(requested: str):
        calls.append(requested)
        if len(calls) > 1:
            raise JobNotFound(requested)
        return record

    monkeypatch.setattr(store, "get", get_once)

    path, filename = orchestrator.resolve_download(job_id)
    assert filename == "movie.srt"
    assert path.read_text() == SAMPLE_SRT
    assert calls == [job_id]


@pytest.mark.asyncio
async def test_scenario_d_resolve_running_job_is_not_ready(make_orchestrator, manual_engine):
    orchestrator = make_orchestrator(manual_engine)

    job_id = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")
    manual_engine.last.on_progress(40)

    with pytest.raises(NotReady):
        _ = orchestrator.resolve_artifact(job_id)


@pytest.mark.asyncio
async def test_resolve_failed_job_is_not_ready(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedEngine([failure("unsupported codec")]))

    job_id = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")
    await orchestrator.runner.wait(job_id)

    for _ in range(3):
        with pytest.raises(NotReady):
            _ = orchestrator.resolve_artifact(job_id)


@pytest.mark.asyncio
async def test_scenario_e_traversal_references_are_rejected(make_orchestrator, storage):
    orchestrator = make_orchestrator(ScriptedEngine([success()]))
    job_id = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")
    await orchestrator.runner.wait(job_id)

    with pytest.raises(JobNotFound):
        _ = orchestrator.resolve_artifact("../../etc/passwd")
    with pytest.raises(UnsafeArtifactPath):
        _ = storage.resolve_output("../../etc/passwd")
    with pytest.raises(UnsafeArtifactPath):
        _ = storage.resolve_output(f"output/{job_id}/../../../etc/passwd")


@pytest.mark.asyncio
async def test_missing_output_file_is_not_found(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedEngine([success()]))
    job_id = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")
    await orchestrator.runner.wait(job_id)

    orchestrator.resolve_artifact(job_id).unlink()

    with pytest.raises(JobNotFound):
        _ = orchestrator.resolve_artifact(job_id)


# ============================================================================
# Retention
# ============================================================================


@pytest.mark.asyncio
async def test_purge_expired_forgets_job_and_output(make_orchestrator, store):
    orchestrator = make_orchestrator(ScriptedEngine([success()]), retention=timedelta(minutes=5))
    job_id = await orchestrator.submit(VIDEO, "video/mp4", "movie.mp4")
    await orchestrator.runner.wait(job_id)
    path = orchestrator.resolve_artifact(job_id)
    terminated_at = store.get(job_id).terminated_at
    assert terminated_at is not None

    assert orchestrator.purge_expired(now=terminated_at) == 0
    assert orchestrator.purge_expired(now=terminated_at + timedelta(minutes=10)) == 1

    assert not path.exists()
    with pytest.raises(JobNotFound):
        _ = orchestrator.query(job_id)


def test_purge_without_retention_is_noop(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedEngine([]))
    assert orchestrator.purge_expired() == 0
