"""Per-kind branding: ffmpeg compositions for media, PyMuPDF for documents."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

from brandrr.config import Settings, settings
from brandrr.core.commands import run_command
from brandrr.core.exceptions import BrandrrError, MediaEngineError
from brandrr.integrations.emoji_cdn import EmojiResolver
from brandrr.schemas.job import BrandConfig, InputMeta, JobType
from brandrr.services.brand_assets import AssetPreparer, CommandRunner, PreparedBrandAssets, resolve_font
from brandrr.services.filter_graph import BrandCompositor
from brandrr.services.layout import (
    collect_footer_segments,
    footer_font_size,
    icon_size_for,
    plan_footer,
    plan_header,
)
from brandrr.services.pdf_branding import brand_pdf

logger = logging.getLogger(__name__)

DOCUMENT_JOB_TYPE = "pdf_brand"
VIDEO_JOB_TYPE = "video_brand"


class MediaBrandingEngine:
    """Prepare brand assets once per job and brand each input with them."""

    def __init__(
        self,
        app_settings: Settings | None = None,
        *,
        command_runner: CommandRunner = run_command,
        emoji_resolver: EmojiResolver | None = None,
    ) -> None:
        self.settings = app_settings or settings
        self._run = command_runner
        self._emoji_resolver = emoji_resolver

    async def prepare(
        self,
        job_type: JobType,
        brand: BrandConfig,
        work_dir: Path,
        *,
        logo_path: Path | None = None,
    ) -> PreparedBrandAssets:
        """Render icons and stickers and plan the header and footer.

        Documents only need the logo. Assets that fail to render are logged
        and left out.
        """
        assets = PreparedBrandAssets(logo_path=logo_path if brand.logo.enabled else None)
        if job_type == DOCUMENT_JOB_TYPE:
            return assets

        preparer = AssetPreparer(
            work_dir / "assets",
            font_family=brand.font_family,
            app_settings=self.settings,
            emoji_resolver=self._emoji_resolver,
            command_runner=self._run,
        )
        try:
            assets.header = plan_header(brand.brand_name)
            if assets.header is not None:
                assets.header_font = resolve_font(brand.font_family, bold=True, app_settings=self.settings)

            segments = collect_footer_segments(brand)
            if segments:
                font_size = footer_font_size(segments)
                icon_size = icon_size_for(font_size)
                icon_widths: dict[str, int] = {}
                for segment in segments:
                    if not segment.icon_key or segment.icon_key in assets.icons:
                        continue
                    try:
                        icon = await preparer.render_icon(
                            segment.icon_key,
                            size=icon_size,
                            brand_color=brand.primary_color,
                        )
                    except (BrandrrError, OSError) as exc:
                        logger.warning(
                            "Footer icon skipped",
                            extra={"icon": segment.icon_key, "error": str(exc)},
                        )
                        continue
                    if icon.is_raster:
                        assets.icons[segment.icon_key] = icon
                        icon_widths[segment.icon_key] = icon.width
                assets.footer = plan_footer(
                    segments,
                    font_size=font_size,
                    icon_widths=icon_widths,
                    icon_size=icon_size,
                )
                assets.footer_font = resolve_font(brand.font_family, app_settings=self.settings)

            for index, selection in enumerate(brand.stickers):
                try:
                    sticker = await preparer.render_sticker(selection, index=index)
                except (BrandrrError, OSError) as exc:
                    logger.warning("Sticker skipped", extra={"sticker_index": index, "error": str(exc)})
                    continue
                if sticker is not None and sticker.is_raster:
                    assets.stickers.append(sticker)
        finally:
            assets.transient = list(preparer.rendered)

        logger.info(
            "Brand assets prepared",
            extra={
                "header": assets.header is not None,
                "footer_segments": len(assets.footer.segments) if assets.footer else 0,
                "icons": len(assets.icons),
                "stickers": len(assets.stickers),
            },
        )
        return assets

    async def brand(
        self,
        job_type: JobType,
        input_path: Path,
        output_path: Path,
        brand: BrandConfig,
        assets: PreparedBrandAssets,
        *,
        meta: InputMeta | None = None,
    ) -> int | None:
        """Write the branded copy of ``input_path`` to ``output_path``.

        Returns the page count for documents and None for images and videos.
        """
        if job_type == DOCUMENT_JOB_TYPE:
            return await asyncio.to_thread(
                brand_pdf,
                input_path,
                output_path,
                logo_path=assets.logo_path,
                contact=brand.contact,
            )

        plan = BrandCompositor(
            brand,
            assets,
            frame_width=meta.width if meta else None,
        ).build()
        if plan.is_empty:
            logger.info("No brand elements enabled, copying input unchanged")
            await asyncio.to_thread(shutil.copyfile, input_path, output_path)
            return None

        args = plan.ffmpeg_args(
            input_path,
            output_path,
            video=job_type == VIDEO_JOB_TYPE,
            binary=self.settings.ffmpeg_binary,
        )
        result = await self._run(args, timeout_seconds=self.settings.command_timeout_seconds)
        if not result.ok:
            logger.error(
                "ffmpeg composition failed",
                extra={"returncode": result.returncode, "stage_count": len(plan.stages)},
            )
            raise MediaEngineError(result.returncode, result.diagnostics)
        if not output_path.exists():
            raise MediaEngineError(result.returncode, "ffmpeg reported success but wrote no output")
        return None
