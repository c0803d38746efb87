"""Progress and terminal status callbacks to the job owner."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from brandrr.config import Settings, settings
from brandrr.core.logging import get_job_logger
from brandrr.schemas.job import ExportRecord, JobUpdate

logger = logging.getLogger(__name__)


class JobCallbackClient:
    """POST job updates with the internal bearer secret.

    Delivery failures are logged and reported as False; they never abort a job.
    """

    def __init__(
        self,
        app_settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = app_settings or settings
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.internal_callback_key:
            headers["Authorization"] = f"Bearer {self.settings.internal_callback_key}"
        return headers

    async def send(self, url: str | None, update: JobUpdate) -> bool:
        job_logger = get_job_logger(logger, update.job_id)
        if not url:
            job_logger.warning("No callback URL configured, update dropped", extra={"status": update.status})
            return False

        body = update.model_dump(mode="json", exclude_none=True)
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.callback_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=body, headers=self._headers())
        except httpx.HTTPError as exc:
            job_logger.warning(
                "Callback delivery failed",
                extra={"status": update.status, "progress": update.progress, "error": str(exc)},
            )
            return False

        if response.status_code >= 400:
            job_logger.warning(
                "Callback rejected",
                extra={
                    "status": update.status,
                    "progress": update.progress,
                    "http_status": response.status_code,
                    "response_text": response.text[:500],
                },
            )
            return False
        return True


class JobProgressReporter:
    """Emit monotonic progress updates and exactly one terminal update."""

    def __init__(
        self,
        job_id: str,
        callback_url: str | None,
        client: JobCallbackClient,
    ) -> None:
        self.job_id = job_id
        self.callback_url = callback_url
        self.client = client
        self.progress = 0
        self.terminal_status: str | None = None

    @property
    def finished(self) -> bool:
        return self.terminal_status is not None

    async def running(self, progress: int) -> None:
        if self.finished:
            return
        self.progress = max(self.progress, min(100, int(progress)))
        await self.client.send(
            self.callback_url,
            JobUpdate(job_id=self.job_id, status="running", progress=self.progress),
        )

    async def succeeded(
        self,
        exports: list[ExportRecord],
        **usage: Any,
    ) -> None:
        if self.finished:
            return
        self.terminal_status = "succeeded"
        self.progress = 100
        await self.client.send(
            self.callback_url,
            JobUpdate(
                job_id=self.job_id,
                status="succeeded",
                progress=self.progress,
                exports=exports,
                **usage,
            ),
        )

    async def failed(self, error_message: str) -> None:
        if self.finished:
            return
        self.terminal_status = "failed"
        await self.client.send(
            self.callback_url,
            JobUpdate(
                job_id=self.job_id,
                status="failed",
                progress=self.progress,
                error_message=error_message or "Job failed",
            ),
        )
