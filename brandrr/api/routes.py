"""Worker HTTP routes: health, job intake, storage test and media probe."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from brandrr.api.dependencies import (
    get_media_probe,
    get_scheduler,
    get_storage_dispatcher,
    require_worker_api_key,
)
from brandrr.core.exceptions import BrandrrError
from brandrr.schemas.job import JobPayload
from brandrr.schemas.requests import (
    JobAcceptedResponse,
    MediaProbeRequest,
    MediaProbeResponse,
    OkResponse,
    StorageTestRequest,
)
from brandrr.services.job_scheduler import JobScheduler
from brandrr.services.media_probe import MediaProbe
from brandrr.services.storage_dispatcher import StorageDispatcher

logger = logging.getLogger(__name__)

router = APIRouter()


def _failure(message: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=OkResponse(ok=False, message=message).model_dump(),
    )


@router.get(
    "/health",
    response_model=OkResponse,
    response_model_exclude_none=True,
    summary="Health check",
)
async def health() -> OkResponse:
    return OkResponse(ok=True)


@router.post(
    "/jobs/start",
    response_model=JobAcceptedResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Accept a branding job",
    description="Validate the job payload, schedule it in the background and acknowledge immediately.",
    dependencies=[Depends(require_worker_api_key)],
)
async def start_job(
    body: Annotated[dict[str, Any], Body()],
    scheduler: Annotated[JobScheduler, Depends(get_scheduler)],
) -> JobAcceptedResponse:
    job_id = body.get("job_id")
    if not isinstance(job_id, str) or not job_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing job_id")

    try:
        payload = JobPayload.model_validate(body)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc

    scheduler.submit(payload)
    logger.info("Job accepted", extra={"job_id": payload.job_id, "job_type": payload.job_type})
    return JobAcceptedResponse(accepted=True)


@router.post(
    "/storage/test",
    response_model=OkResponse,
    response_model_exclude_none=True,
    summary="Check storage credentials",
    dependencies=[Depends(require_worker_api_key)],
)
async def test_storage(
    request: StorageTestRequest,
    dispatcher: Annotated[StorageDispatcher, Depends(get_storage_dispatcher)],
) -> Any:
    if request.destination is None or not request.destination.provider:
        return _failure("Missing destination provider")

    try:
        await dispatcher.verify(request.destination)
    except BrandrrError as exc:
        logger.warning(
            "Storage test failed",
            extra={"provider": request.destination.provider, "error": exc.message},
        )
        return _failure(exc.message)
    return OkResponse(ok=True)


@router.post(
    "/media/probe",
    response_model=MediaProbeResponse,
    summary="Inspect a media file",
    dependencies=[Depends(require_worker_api_key)],
)
async def probe_media(
    request: MediaProbeRequest,
    probe: Annotated[MediaProbe, Depends(get_media_probe)],
) -> Any:
    if not request.temp_url:
        return _failure("Missing temp_url")

    try:
        meta = await probe.probe(request.temp_url, request.mime_type)
    except BrandrrError as exc:
        logger.warning("Media probe failed", extra={"error": exc.message})
        return _failure(exc.message)
    return MediaProbeResponse(ok=True, meta=meta)
