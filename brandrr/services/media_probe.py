"""Inspect a remote file: kind, dimensions, duration or page count."""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import pymupdf
from PIL import Image, UnidentifiedImageError

from brandrr.config import Settings, settings
from brandrr.core.commands import run_command
from brandrr.core.exceptions import MediaProbeError
from brandrr.integrations.http_fetch import HttpFetcher
from brandrr.services.brand_assets import CommandRunner

logger = logging.getLogger(__name__)

VIDEO_SUFFIXES = frozenset({".mp4", ".mov", ".m4v", ".webm", ".mkv", ".avi"})


def detect_kind(mime_type: str | None, filename: str = "") -> str:
    """Classify as ``pdf``, ``video`` or ``image`` from the MIME type or suffix."""
    mime = (mime_type or "").lower()
    suffix = Path(filename).suffix.lower()
    if mime == "application/pdf" or suffix == ".pdf":
        return "pdf"
    if mime.startswith("video/") or suffix in VIDEO_SUFFIXES:
        return "video"
    return "image"


def _pdf_page_count(path: Path) -> int:
    try:
        with pymupdf.open(str(path), filetype="pdf") as document:
            return document.page_count
    except (pymupdf.FileDataError, RuntimeError, ValueError) as exc:
        raise MediaProbeError(f"Could not read PDF: {exc}") from exc


def _image_size(path: Path) -> tuple[int, int]:
    try:
        with Image.open(path) as image:
            return image.size
    except (OSError, UnidentifiedImageError) as exc:
        raise MediaProbeError(f"Could not read image: {exc}") from exc


def parse_ffprobe_output(raw: str) -> dict[str, Any]:
    """Pull width, height and duration (minutes) out of ffprobe JSON."""
    try:
        data = json.loads(raw or "{}")
    except json.JSONDecodeError as exc:
        raise MediaProbeError("ffprobe returned invalid JSON") from exc

    meta: dict[str, Any] = {}
    video_stream = next(
        (stream for stream in data.get("streams") or [] if stream.get("codec_type") == "video"),
        None,
    )
    if video_stream:
        meta["width"] = video_stream.get("width")
        meta["height"] = video_stream.get("height")

    duration = (data.get("format") or {}).get("duration")
    if duration is None and video_stream:
        duration = video_stream.get("duration")
    try:
        seconds = float(duration)
    except (TypeError, ValueError):
        seconds = None
    if seconds is not None:
        meta["duration_minutes"] = round(seconds / 60, 2)
    return meta


class MediaProbe:
    """Download a file to a scratch directory and report its metadata."""

    def __init__(
        self,
        app_settings: Settings | None = None,
        *,
        fetcher: HttpFetcher | None = None,
        command_runner: CommandRunner = run_command,
    ) -> None:
        self.settings = app_settings or settings
        self.fetcher = fetcher or HttpFetcher(app_settings=self.settings)
        self._run = command_runner

    async def probe(self, url: str | None, mime_type: str | None = None) -> dict[str, Any]:
        scratch = Path(tempfile.mkdtemp(prefix="brandrr-probe-", dir=self.settings.work_root or None))
        try:
            path = scratch / "probe"
            size_bytes = await self.fetcher.download(url, path)
            kind = detect_kind(mime_type, urlparse(url or "").path)
            meta: dict[str, Any] = {"kind": kind, "size_bytes": size_bytes}

            if kind == "pdf":
                meta["page_count"] = await asyncio.to_thread(_pdf_page_count, path)
            elif kind == "video":
                meta.update(await self._ffprobe(path))
            else:
                width, height = await asyncio.to_thread(_image_size, path)
                meta.update({"width": width, "height": height})
        finally:
            await asyncio.to_thread(shutil.rmtree, scratch, True)

        logger.info("Media probed", extra={"kind": meta["kind"], "size_bytes": meta["size_bytes"]})
        return meta

    async def _ffprobe(self, path: Path) -> dict[str, Any]:
        result = await self._run(
            [
                self.settings.ffprobe_binary,
                "-v",
                "error",
                "-print_format",
                "json",
                "-show_format",
                "-show_streams",
                str(path),
            ],
            timeout_seconds=self.settings.command_timeout_seconds,
        )
        if not result.ok:
            raise MediaProbeError(f"ffprobe failed ({result.returncode}): {result.diagnostics}")
        return parse_ffprobe_output(result.stdout)
