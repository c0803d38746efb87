"""Streaming downloads of job inputs and logos."""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from brandrr.config import Settings, settings
from brandrr.core.exceptions import DownloadError

logger = logging.getLogger(__name__)


class HttpFetcher:
    """Fetch remote files into a job's working directory."""

    def __init__(
        self,
        app_settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = app_settings or settings
        self._transport = transport

    async def download(self, url: str | None, destination: Path) -> int:
        """Stream ``url`` to ``destination`` and return the byte count."""
        if not url:
            raise DownloadError("<missing>", "no source URL provided")

        max_bytes = int(self.settings.download_max_bytes)
        written = 0
        timeout = httpx.Timeout(self.settings.download_timeout_seconds)
        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        raise DownloadError(url, f"HTTP {response.status_code}")
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    with destination.open("wb") as handle:
                        async for chunk in response.aiter_bytes():
                            written += len(chunk)
                            if written > max_bytes:
                                raise DownloadError(url, "file exceeds maximum size")
                            handle.write(chunk)
        except httpx.HTTPError as exc:
            raise DownloadError(url, str(exc) or exc.__class__.__name__) from exc

        logger.info(
            "Downloaded remote file",
            extra={"target": destination.name, "byte_size": written},
        )
        return written
