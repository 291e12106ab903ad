"""Application factory wiring storage, store, engine and routes."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from loguru import logger

from .common.file_storage_impl import LocalFileStorage
from .common.job_store_impl import InMemoryJobStore
from .config import ConverterConfig
from .engine.base import TranscodingEngine
from .engine.ffmpeg_engine import FFmpegSubtitleEngine
from .engine.runner import TranscodeRunner
from .orchestrator import JobOrchestrator
from .routes import create_router, register_exception_handlers

APP_NAME = "Subtitle Conversion API"


async def sweep_expired(orchestrator: JobOrchestrator, interval: float) -> None:
    """Periodically apply the retention policy."""
    while True:
        await asyncio.sleep(interval)
        try:
            _ = orchestrator.purge_expired()
        except Exception as exc:
            logger.error(f"Retention sweep failed: {exc}")


def create_orchestrator(
    config: ConverterConfig,
    engine: TranscodingEngine | None = None,
) -> JobOrchestrator:
    storage = LocalFileStorage(config.storage_dir)
    store = InMemoryJobStore()
    runner = TranscodeRunner(
        store,
        storage,
        engine or FFmpegSubtitleEngine(config.ffmpeg_path, config.ffprobe_path),
        timeout_seconds=config.job_timeout_seconds,
    )
    return JobOrchestrator(
        store,
        storage,
        runner,
        allowed_content_types=config.allowed_types,
        max_upload_bytes=config.max_upload_bytes,
        retention=config.retention,
    )


def create_app(
    config: ConverterConfig | None = None,
    *,
    engine: TranscodingEngine | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Service configuration. Defaults to `ConverterConfig.from_env()`.
        engine: Transcoding engine. Defaults to ffmpeg subtitle extraction.

    Example:
        import uvicorn
        from cl_subtitle_jobs import create_app

        uvicorn.run(create_app(), port=3000)
    """
    config = config or ConverterConfig.from_env()
    orchestrator = create_orchestrator(config, engine)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        sweeper: asyncio.Task[None] | None = None
        if orchestrator.retention is not None:
            sweeper = asyncio.create_task(
                sweep_expired(orchestrator, config.sweep_interval_seconds)
            )
        try:
            yield
        finally:
            if sweeper is not None:
                _ = sweeper.cancel()
                with suppress(asyncio.CancelledError):
                    await sweeper
            await orchestrator.runner.shutdown()

    app = FastAPI(title=APP_NAME, version="0.1.0", lifespan=lifespan)
    app.state.orchestrator = orchestrator

    app.include_router(create_router(orchestrator))
    register_exception_handlers(app)

    @app.get("/", tags=["health"])
    def health() -> dict[str, str | int]:
        return {
            "status": "ok",
            "service": APP_NAME,
            "active_jobs": len(orchestrator.runner.active_jobs()),
        }

    _ = health
    return app
