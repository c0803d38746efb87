"""Request and response schemas for the worker API."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, Field

from brandrr.schemas.job import Destination


class StorageTestRequest(BaseModel):
    """Connectivity check for a storage destination."""

    destination: Destination | None = None


class MediaProbeRequest(BaseModel):
    """Inspect a remote file before a job is submitted."""

    temp_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("temp_url", "temp_path", "url"),
    )
    mime_type: str | None = None


class OkResponse(BaseModel):
    """Generic success/failure envelope."""

    ok: bool
    message: str | None = None


class MediaProbeResponse(BaseModel):
    """Probe result envelope."""

    ok: bool = True
    meta: dict[str, Any] = Field(default_factory=dict)


class JobAcceptedResponse(BaseModel):
    """Acknowledgement for a submitted job."""

    accepted: bool
    message: str | None = None
