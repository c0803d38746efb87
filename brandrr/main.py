"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from brandrr.api.routes import router
from brandrr.config import settings
from brandrr.core.logging import setup_logging
from brandrr.services.job_scheduler import get_job_scheduler

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 600.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging(settings.log_level)

    logger.info(
        "Starting Brandrr worker",
        extra={
            "environment": settings.environment,
            "version": settings.app_version,
            "worker_auth": bool(settings.worker_api_key),
            "callback_auth": settings.callback_auth_enabled,
        },
    )

    yield

    logger.info("Shutting down Brandrr worker")
    await get_job_scheduler().drain(timeout_seconds=SHUTDOWN_DRAIN_SECONDS)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Brand overlay worker for images, videos and PDF documents",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.include_router(router, prefix=settings.api_v1_prefix)
    return app


app = create_app()
