"""Job lifecycle: download, brand, upload and report, with guaranteed cleanup."""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from brandrr.config import Settings, settings
from brandrr.core.exceptions import BrandrrError, JobInputError, UnsupportedProviderError
from brandrr.core.logging import get_job_logger
from brandrr.integrations.http_fetch import HttpFetcher
from brandrr.schemas.job import Destination, ExportRecord, JobInput, JobPayload, JobType
from brandrr.services.brand_assets import PreparedBrandAssets
from brandrr.services.branding_engine import MediaBrandingEngine
from brandrr.services.job_callbacks import JobCallbackClient, JobProgressReporter
from brandrr.services.storage_dispatcher import StorageDispatcher

logger = logging.getLogger(__name__)

PROGRESS_STARTED = 5
PROGRESS_INPUT_SPAN = 90
PROGRESS_CEILING = 95

CONTENT_TYPES: dict[str, str] = {
    "pdf": "application/pdf",
    "mp4": "video/mp4",
    "png": "image/png",
    "jpg": "image/jpeg",
}
EXPORT_TYPES: dict[str, str] = {
    "image_brand": "image",
    "video_brand": "video",
    "pdf_brand": "pdf",
}

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def input_progress(index: int, total: int) -> int:
    """Progress after input ``index`` (0-based) of ``total`` is uploaded."""
    if total <= 0:
        return PROGRESS_CEILING
    return min(PROGRESS_CEILING, round((index + 1) / total * PROGRESS_INPUT_SPAN) + PROGRESS_STARTED)


def output_extension(job_type: JobType, job_input: JobInput) -> str:
    if job_type == "pdf_brand":
        return "pdf"
    if job_type == "video_brand":
        return "mp4"
    mime_type = (job_input.mime_type or "").lower()
    if mime_type == "image/png" or job_input.filename.lower().endswith(".png"):
        return "png"
    return "jpg"


def content_type_for(extension: str) -> str:
    return CONTENT_TYPES.get(extension, "application/octet-stream")


def export_type_for(job_type: JobType) -> str:
    return EXPORT_TYPES[job_type]


def export_filename(original: str, extension: str) -> str:
    """``branded-<stem>.<ext>`` with unsafe characters replaced."""
    stem = PurePosixPath((original or "").replace("\\", "/")).stem
    safe_stem = _UNSAFE_NAME_CHARS.sub("_", stem).strip("._") or "file"
    return f"branded-{safe_stem}.{extension}"


def target_name(job_id: str, filename: str) -> str:
    return f"{job_id}/{filename}"


@dataclass(slots=True)
class JobOutcome:
    """Final state of one job run."""

    job_id: str
    status: str
    progress: int
    exports: list[ExportRecord] = field(default_factory=list)
    error_message: str | None = None


class JobRunner:
    """Drive one job from download to its terminal callback.

    Inputs are processed one at a time. Every exit path sends exactly one
    terminal callback and removes the job's working directory.
    """

    def __init__(
        self,
        app_settings: Settings | None = None,
        *,
        fetcher: HttpFetcher | None = None,
        engine: MediaBrandingEngine | None = None,
        storage: StorageDispatcher | None = None,
        callback_client: JobCallbackClient | None = None,
    ) -> None:
        self.settings = app_settings or settings
        self.fetcher = fetcher or HttpFetcher(app_settings=self.settings)
        self.engine = engine or MediaBrandingEngine(app_settings=self.settings)
        self.storage = storage or StorageDispatcher(app_settings=self.settings)
        self.callback_client = callback_client or JobCallbackClient(app_settings=self.settings)

    async def run(self, payload: JobPayload) -> JobOutcome:
        job_logger = get_job_logger(logger, payload.job_id)
        reporter = JobProgressReporter(
            payload.job_id,
            payload.callback.url or self.settings.default_callback_url,
            self.callback_client,
        )
        work_dir: Path | None = None
        assets: PreparedBrandAssets | None = None
        exports: list[ExportRecord] = []
        error_message: str | None = None

        job_logger.info(
            "Job started",
            extra={"job_type": payload.job_type, "input_count": len(payload.inputs)},
        )
        try:
            await reporter.running(PROGRESS_STARTED)
            work_dir = self._create_work_dir(payload.job_id)
            destination = self._require_destination(payload)
            if not payload.inputs:
                raise JobInputError("inputs", "Job has no inputs")

            logo_path = await self._fetch_logo(payload, work_dir)
            assets = await self.engine.prepare(
                payload.job_type,
                payload.brand,
                work_dir,
                logo_path=logo_path,
            )

            pdf_pages = 0
            video_minutes = 0.0
            used_names: set[str] = set()
            last_index = len(payload.inputs) - 1
            for index, job_input in enumerate(payload.inputs):
                source_path = work_dir / f"input-{index}{self._input_suffix(job_input)}"
                await self.fetcher.download(job_input.temp_url, source_path)

                extension = output_extension(payload.job_type, job_input)
                filename = self._unique_name(export_filename(job_input.filename, extension), index, used_names)
                output_path = work_dir / "out" / filename
                output_path.parent.mkdir(parents=True, exist_ok=True)

                try:
                    page_count = await self.engine.brand(
                        payload.job_type,
                        source_path,
                        output_path,
                        payload.brand,
                        assets,
                        meta=job_input.meta,
                    )
                finally:
                    if index == last_index:
                        assets.release()

                stored = await self.storage.upload(
                    destination,
                    output_path,
                    target_name(payload.job_id, filename),
                    content_type_for(extension),
                )
                exports.append(
                    ExportRecord(
                        type=export_type_for(payload.job_type),
                        filename=filename,
                        storage_path=stored.storage_path,
                        mime_type=content_type_for(extension),
                        size_bytes=output_path.stat().st_size,
                        signed_url=stored.retrievable_link,
                    )
                )
                pdf_pages += page_count or 0
                video_minutes += job_input.meta.duration_minutes or 0.0
                job_logger.info(
                    "Input branded and uploaded",
                    extra={"input_index": index, "export_filename": filename},
                )
                await reporter.running(input_progress(index, len(payload.inputs)))

            await reporter.succeeded(
                exports,
                actual_pdf_pages=pdf_pages if payload.job_type == "pdf_brand" else None,
                actual_video_minutes=(
                    round(video_minutes, 2) if payload.job_type == "video_brand" else None
                ),
            )
            job_logger.info("Job succeeded", extra={"export_count": len(exports)})
        except BrandrrError as exc:
            error_message = exc.message
            job_logger.error("Job failed", extra={"error": exc.message, "error_type": type(exc).__name__})
            await reporter.failed(error_message)
        except Exception as exc:
            error_message = str(exc) or type(exc).__name__
            job_logger.exception("Job failed with unexpected error", extra={"error": error_message})
            await reporter.failed(error_message)
        finally:
            if assets is not None:
                assets.release()
            if work_dir is not None:
                await asyncio.to_thread(shutil.rmtree, work_dir, True)

        return JobOutcome(
            job_id=payload.job_id,
            status=reporter.terminal_status or "failed",
            progress=reporter.progress,
            exports=exports,
            error_message=error_message,
        )

    def _create_work_dir(self, job_id: str) -> Path:
        safe_id = _UNSAFE_NAME_CHARS.sub("_", job_id)[:64]
        work_root = self.settings.work_root
        if work_root:
            Path(work_root).mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f"brandrr-{safe_id}-", dir=work_root or None))

    @staticmethod
    def _require_destination(payload: JobPayload) -> Destination:
        destination = payload.output.destination
        if destination is None or not destination.provider:
            raise JobInputError("output.destination.provider")
        if not destination.is_s3_compatible and not destination.is_google_drive:
            raise UnsupportedProviderError(destination.provider)
        return destination

    async def _fetch_logo(self, payload: JobPayload, work_dir: Path) -> Path | None:
        brand = payload.brand
        if not brand.logo_requested:
            return None
        if not brand.logo_url_temp:
            raise JobInputError("brand.logo_url_temp")
        logo_path = work_dir / "logo"
        await self.fetcher.download(brand.logo_url_temp, logo_path)
        return logo_path

    @staticmethod
    def _input_suffix(job_input: JobInput) -> str:
        suffix = PurePosixPath(job_input.filename.replace("\\", "/")).suffix.lower()
        return suffix if re.fullmatch(r"\.[a-z0-9]{1,8}", suffix) else ""

    @staticmethod
    def _unique_name(filename: str, index: int, used: set[str]) -> str:
        candidate = filename
        stem, _, extension = filename.rpartition(".")
        suffix = index + 1
        while candidate in used:
            candidate = f"{stem}-{suffix}.{extension}"
            suffix += 1
        used.add(candidate)
        return candidate
