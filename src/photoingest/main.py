"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from photoingest.storage.promoter import SubjectRepository

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from photoingest.api.routes import router
from photoingest.config import Settings, get_settings
from photoingest.errors import PhotoIngestError
from photoingest.pipeline import UploadProcessor
from photoingest.storage.promoter import (
    InMemorySubjectRepository,
    JsonFileSubjectRepository,
    ProductionPromoter,
)
from photoingest.workers import ProcessingPool

logger = logging.getLogger(__name__)


def init_app_state(app: FastAPI, settings: Settings, subjects: SubjectRepository | None = None) -> None:
    """Wire settings, pipeline, promoter and worker pool onto ``app.state``."""
    if subjects is None:
        if settings.subjects_file is not None:
            subjects = JsonFileSubjectRepository(settings.subjects_file)
        else:
            subjects = InMemorySubjectRepository()

    processor = UploadProcessor(settings)
    app.state.settings = settings
    app.state.processor = processor
    app.state.promoter = ProductionPromoter(processor.layout, subjects)
    app.state.processing_pool = ProcessingPool(settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting photoingest (staging=%s, production=%s, max_concurrent=%s)",
        settings.staging_root,
        settings.production_root,
        settings.max_concurrent,
    )

    init_app_state(app, settings)

    logger.info("photoingest ready")
    yield

    logger.info("Shutting down photoingest")
    app.state.processing_pool.shutdown()
    logger.info("photoingest shutdown complete")


async def handle_photoingest_error(request: Request, exc: PhotoIngestError) -> JSONResponse:
    """Render pipeline errors; non-public detail is logged, never returned."""
    if exc.public:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    else:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    return JSONResponse(
        status_code=exc.status,
        content={"detail": exc.public_message, "code": exc.code},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="photoingest",
        description="Image ingestion: validation, derivative generation, staging and promotion",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(PhotoIngestError, handle_photoingest_error)
    application.include_router(router)
    return application


app = create_app()
