"""FastAPI routes for subtitle conversion jobs."""

from typing import Annotated

from fastapi import APIRouter, FastAPI, File, Request, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse
from loguru import logger

from .common.errors import (
    ConversionError,
    JobNotFound,
    NotReady,
    StorageWriteFailed,
    UnsafeArtifactPath,
    UnsupportedMediaType,
    UploadTooLarge,
)
from .common.schema_job_record import JobCreatedResponse, JobStatusResponse
from .orchestrator import JobOrchestrator

SUBRIP_MEDIA_TYPE = "application/x-subrip"

_STATUS_CODES: tuple[tuple[type[ConversionError], int], ...] = (
    (UnsupportedMediaType, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE),
    (UploadTooLarge, status.HTTP_413_CONTENT_TOO_LARGE),
    (StorageWriteFailed, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (JobNotFound, status.HTTP_404_NOT_FOUND),
    (NotReady, status.HTTP_409_CONFLICT),
    (UnsafeArtifactPath, status.HTTP_403_FORBIDDEN),
)


def status_code_for(exc: ConversionError) -> int:
    for error_type, code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def register_exception_handlers(app: FastAPI) -> None:
    """Translate ConversionError subclasses into JSON error responses."""

    async def handle_conversion_error(request: Request, exc: Exception) -> JSONResponse:
        code = status_code_for(exc) if isinstance(exc, ConversionError) else 500
        if code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=code, content={"error": str(exc)})

    app.add_exception_handler(ConversionError, handle_conversion_error)


def create_router(orchestrator: JobOrchestrator) -> APIRouter:
    """Create router with injected dependencies."""
    router = APIRouter(prefix="/api")

    @router.post("/convert", status_code=status.HTTP_202_ACCEPTED)
    async def convert(
        video: Annotated[UploadFile, File(description="Video file to convert")],
    ) -> JobCreatedResponse:
        """Upload a video and start extracting its subtitles."""
        job_id = await orchestrator.submit(video, video.content_type, video.filename)
        return JobCreatedResponse(job_id=job_id, status=orchestrator.query(job_id).status)

    @router.get("/status/{job_id}")
    def get_status(job_id: str) -> JobStatusResponse:
        return orchestrator.query(job_id)

    @router.get("/download/{job_id}")
    def download(job_id: str) -> FileResponse:
        path, output_file = orchestrator.resolve_download(job_id)
        return FileResponse(path, filename=output_file, media_type=SUBRIP_MEDIA_TYPE)

    _ = (convert, get_status, download)
    return router
