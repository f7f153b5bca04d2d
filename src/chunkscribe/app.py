"""
FastAPI application factory and main app configuration.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.errors import APIError
from .api.routers import callback, finalize, health, sessions, upload
from .api.utils.responses import fail
from .core.config import get_settings
from .core.container import Container, build_container
from .core.exceptions import ExternalServiceError
from .core.structured_logger import configure_logging
from .domain.errors import DomainError
from .middleware.performance_middleware import PerformanceMiddleware
from .middleware.request_id_middleware import RequestIDMiddleware
from .workers.transcription_worker import build_worker

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"SESSION_NOT_FOUND", "CHUNK_NOT_FOUND", "SEGMENT_NOT_FOUND"}
CONFLICT_CODES = {"CONCURRENCY_CONFLICT", "INVALID_CHUNK_TRANSITION", "SESSION_CLOSED", "DUPLICATE_SEGMENT"}


def _domain_status(exc: DomainError) -> int:
    if exc.error_code in NOT_FOUND_CODES:
        return 404
    if exc.error_code in CONFLICT_CODES:
        return 409
    if exc.error_code == "MALFORMED_RESULT":
        return 422
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    worker = None
    worker_task = None
    container: Container = app.state.container
    settings = container.settings

    logger.info(f"🚀 Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"📊 Environment: {settings.app_env}")
    logger.info(f"🗄️  Entity store backend: {settings.database.backend}")

    await container.startup()

    if settings.enable_transcription_worker:
        worker = build_worker(container)
        worker_task = asyncio.create_task(worker.run())
        logger.info("✅ Transcription worker started")
    else:
        logger.info("ℹ️  Transcription worker disabled (set ENABLE_TRANSCRIPTION_WORKER=true to enable)")

    yield

    logger.info(f"🛑 Shutting down {settings.app_name}")
    if worker_task:
        worker.stop()
        try:
            await asyncio.wait_for(worker_task, timeout=70.0)
        except asyncio.TimeoutError:
            worker_task.cancel()
        logger.info("✅ Transcription worker stopped")


def create_app(container: Optional[Container] = None) -> FastAPI:
    """Build the FastAPI app around a container (a fresh default one if omitted)."""
    settings = container.settings if container is not None else get_settings()
    configure_logging(settings.logging)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Chunked audio transcription pipeline with rolling segmentation and summarization",
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.container = container or build_container(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.allowed_origins,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allowed_methods,
        allow_headers=settings.cors.allowed_headers,
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )
    app.add_middleware(PerformanceMiddleware)
    # Outermost, so request_id is set before anything else logs
    app.add_middleware(RequestIDMiddleware)

    app.include_router(health.router)
    app.include_router(upload.router)
    app.include_router(callback.router)
    app.include_router(finalize.router)
    app.include_router(sessions.router)

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        status_code = _domain_status(exc)
        logger.warning(
            f"DomainError: {exc.error_code} ({status_code}) {exc.message}",
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        return JSONResponse(
            status_code=status_code,
            content=fail(request, exc.error_code or "DOMAIN_ERROR", exc.message, exc.details).model_dump(),
        )

    @app.exception_handler(ExternalServiceError)
    async def external_service_error_handler(request: Request, exc: ExternalServiceError):
        logger.error(
            f"ExternalServiceError: {exc.error_code} {exc.message}",
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        return JSONResponse(
            status_code=502,
            content=fail(request, exc.error_code or "EXTERNAL_SERVICE_ERROR", exc.message, exc.details).model_dump(),
        )

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        logger.error(
            f"APIError: {exc.code} ({exc.http_status}) {exc.message}",
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        return JSONResponse(
            status_code=exc.http_status,
            content=fail(request, exc.code, exc.message, exc.details).model_dump(),
        )

    @app.exception_handler(ValueError)
    async def validation_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=422,
            content=fail(request, "VALIDATION_ERROR", str(exc)).model_dump(),
        )

    @app.exception_handler(RequestValidationError)
    async def pydantic_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": [str(x) for x in err.get("loc", [])], "msg": err.get("msg", "Validation error")}
            for err in exc.errors()
        ]
        logger.error(f"ValidationError on {request.method} {request.url.path}: {errors}")
        messages = [f"{' -> '.join(err['loc'])}: {err['msg']}" for err in errors]
        return JSONResponse(
            status_code=422,
            content=fail(
                request,
                "INVALID_INPUT",
                f"Input validation failed: {'; '.join(messages)}",
                {"errors": errors, "path": request.url.path},
            ).model_dump(),
        )

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled error: {type(exc).__name__}: {exc}",
            exc_info=exc,
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        return JSONResponse(
            status_code=500,
            content=fail(
                request, "INTERNAL_ERROR", "An unexpected error has occurred. Please try again later."
            ).model_dump(),
        )

    @app.get("/", tags=["health"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.app_env,
            "status": "running",
            "docs": "/docs",
            "endpoints": {
                "health": "GET /health",
                "ready": "GET /health/ready",
                "upload_chunk": "POST /upload-chunk",
                "transcription_callback": "POST /transcription-callback",
                "finalize": "POST /finalize",
                "get_session": "GET /sessions/{session_id}",
                "progress": "GET /sessions/{session_id}/progress",
                "chunks": "GET /sessions/{session_id}/chunks",
                "segments": "GET /sessions/{session_id}/segments",
                "retry_chunk": "POST /sessions/{session_id}/chunks/{seq}/retry",
            },
        }

    return app


# Module-level app for uvicorn/gunicorn (``chunkscribe.app:app``)
app = create_app()
