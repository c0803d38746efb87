"""Dependencies for the worker API."""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from brandrr.config import Settings, get_settings
from brandrr.services.job_scheduler import JobScheduler, get_job_scheduler
from brandrr.services.media_probe import MediaProbe
from brandrr.services.storage_dispatcher import StorageDispatcher

logger = logging.getLogger(__name__)

worker_bearer = HTTPBearer(auto_error=False)


async def require_worker_api_key(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(worker_bearer)],
    app_settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Validate the shared worker bearer token."""
    expected = (app_settings.worker_api_key or "").strip()
    if not expected:
        logger.error("Worker API key check failed: no key configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="WORKER_API_KEY is not configured",
        )

    candidate = (credentials.credentials if credentials else "").strip()
    if candidate and hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8")):
        return

    logger.warning("Worker API key check failed: invalid key")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
    )


def get_storage_dispatcher(
    app_settings: Annotated[Settings, Depends(get_settings)],
) -> StorageDispatcher:
    return StorageDispatcher(app_settings=app_settings)


def get_media_probe(
    app_settings: Annotated[Settings, Depends(get_settings)],
) -> MediaProbe:
    return MediaProbe(app_settings=app_settings)


def get_scheduler() -> JobScheduler:
    return get_job_scheduler()
