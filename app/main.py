"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.errors import DocumentServiceError, RateLimitError
from app.storage.artifacts import ArtifactStore, LocalArtifactStore
from app.storage.rate_limit import RateLimiter, build_storage
from app.workers.cleanup import CleanupScheduler

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def configure_logging() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )


configure_logging()

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------


def create_app(
    *,
    store: Optional[ArtifactStore] = None,
    rate_limiter: Optional[RateLimiter] = None,
    scheduler: Optional[CleanupScheduler] = None,
) -> FastAPI:
    """Build the application. Services not passed in are created from settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        artifact_store = store or LocalArtifactStore(settings.storage_base_path)
        artifact_store.start()

        limiter = rate_limiter
        if limiter is None and settings.rate_limit_enabled:
            limiter = RateLimiter(storage=build_storage(settings.redis_url))
        if limiter is not None:
            limiter.start()

        cleanup = scheduler
        if cleanup is None and settings.cleanup_enabled:
            cleanup = CleanupScheduler(artifact_store)
        if cleanup is not None:
            cleanup.start()

        app.state.artifact_store = artifact_store
        app.state.rate_limiter = limiter
        app.state.cleanup_scheduler = cleanup
        logger.info("app_started", storage=settings.storage_base_path)
        try:
            yield
        finally:
            if cleanup is not None:
                cleanup.stop()
            if limiter is not None:
                limiter.stop()
            logger.info("app_stopped")

    app = FastAPI(
        title="PDF Toolkit API",
        description=(
            "Document transformations over PDF (merge, split, rotate, crop, compress, protect, "
            "unlock, watermark, redact, page numbers, organize, repair, sign, edit, convert) "
            "with short-lived downloadable results."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "Retry-After", "X-RateLimit-Remaining"],
    )

    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=uuid.uuid4().hex[:12], path=request.url.path)
        return await call_next(request)

    _register_error_handlers(app)

    # -----------------------------------------------------------------------
    # Mount routers
    # -----------------------------------------------------------------------

    from app.routers.download import router as download_router
    from app.routers.operations import router as operations_router

    app.include_router(operations_router)
    app.include_router(download_router)

    @app.get("/health", tags=["system"])
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "PDF Toolkit API",
            "version": "1.0.0",
        }

    return app


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DocumentServiceError)
    async def handle_service_error(request: Request, exc: DocumentServiceError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("request_failed", status=exc.status_code, code=exc.code, error=exc.message)
        headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimitError) else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.warning("request_invalid", errors=str(exc.errors()))
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "code": "VALIDATION_ERROR"},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.error("request_crashed", error=str(exc), exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
        )


app = create_app()
