"""Unit tests for asset preparation and per-input branding."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from brandrr.core.commands import CommandResult
from brandrr.core.exceptions import MediaEngineError
from brandrr.schemas.job import BrandConfig
from brandrr.services.branding_engine import MediaBrandingEngine


def _settings(tmp_path: Path) -> SimpleNamespace:
    return SimpleNamespace(
        ffmpeg_binary="ffmpeg",
        command_timeout_seconds=60,
        rsvg_convert_binary="rsvg-convert",
        imagemagick_binary="magick",
        rasterizer_timeout_seconds=5,
        font_dir=str(tmp_path / "fonts"),
        default_font_path="/fonts/DejaVuSans.ttf",
        default_bold_font_path="/fonts/DejaVuSans-Bold.ttf",
    )


class _NoEmoji:
    async def fetch_data_uri(self, emoji: str | None) -> str | None:
        return None


async def _forbidden_runner(args: list[str], **_kwargs: Any) -> CommandResult:
    raise AssertionError(f"unexpected command: {args[0]}")


async def _rsvg_runner(args: list[str], **_kwargs: Any) -> CommandResult:
    Path(args[args.index("-o") + 1]).write_bytes(b"\x89PNG")
    return CommandResult(returncode=0, stdout="", stderr="")


def _engine(tmp_path: Path, runner: Any) -> MediaBrandingEngine:
    return MediaBrandingEngine(
        app_settings=_settings(tmp_path),
        command_runner=runner,
        emoji_resolver=_NoEmoji(),
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("job_type", ["image_brand", "video_brand"])
async def test_no_enabled_elements_is_byte_identical_copy(tmp_path: Path, job_type: str) -> None:
    engine = _engine(tmp_path, _forbidden_runner)
    brand = BrandConfig.model_validate({"logo": {"enabled": False}})
    source = tmp_path / "input.bin"
    source.write_bytes(bytes(range(256)) * 4)
    target = tmp_path / "output.bin"

    assets = await engine.prepare(job_type, brand, tmp_path)
    result = await engine.brand(job_type, source, target, brand, assets)

    assert result is None
    assert target.read_bytes() == source.read_bytes()
    assert assets.transient == []


@pytest.mark.asyncio
async def test_engine_failure_surfaces_diagnostics(tmp_path: Path) -> None:
    captured: list[list[str]] = []

    async def _failing_ffmpeg(args: list[str], **_kwargs: Any) -> CommandResult:
        captured.append(list(args))
        return CommandResult(returncode=1, stdout="", stderr="Error: unknown filter 'drawtextx'")

    engine = _engine(tmp_path, _failing_ffmpeg)
    brand = BrandConfig.model_validate({"logo": {"enabled": False}, "brand_name": "Acme"})
    source = tmp_path / "input.jpg"
    source.write_bytes(b"jpeg")

    assets = await engine.prepare("image_brand", brand, tmp_path)
    with pytest.raises(MediaEngineError) as exc_info:
        await engine.brand("image_brand", source, tmp_path / "out.jpg", brand, assets)

    assert "unknown filter" in exc_info.value.message
    assert exc_info.value.returncode == 1
    assert captured[0][0] == "ffmpeg"
    assert "-filter_complex" in captured[0]
    # Neither bold font exists on disk, so the regular default is used.
    assert "fontfile=/fonts/DejaVuSans.ttf" in captured[0][captured[0].index("-filter_complex") + 1]


@pytest.mark.asyncio
async def test_missing_output_after_success_is_an_error(tmp_path: Path) -> None:
    async def _silent_ffmpeg(args: list[str], **_kwargs: Any) -> CommandResult:
        return CommandResult(returncode=0, stdout="", stderr="")

    engine = _engine(tmp_path, _silent_ffmpeg)
    brand = BrandConfig.model_validate({"logo": {"enabled": False}, "brand_name": "Acme"})
    source = tmp_path / "input.jpg"
    source.write_bytes(b"jpeg")

    assets = await engine.prepare("image_brand", brand, tmp_path)
    with pytest.raises(MediaEngineError):
        await engine.brand("image_brand", source, tmp_path / "out.jpg", brand, assets)


@pytest.mark.asyncio
async def test_prepare_renders_footer_icons_and_stickers_once(tmp_path: Path) -> None:
    engine = _engine(tmp_path, _rsvg_runner)
    brand = BrandConfig.model_validate(
        {
            "logo": {"enabled": False},
            "tagline": "Fresh daily",
            "contact": {"phone": "555-0100", "email": "hi@example.com"},
            "social": {"instagram": "@acme"},
            "stickers": [{"id": "sale"}, {"label": "  "}],
        }
    )

    assets = await engine.prepare("video_brand", brand, tmp_path)

    assert assets.footer is not None
    assert [placed.segment.key for placed in assets.footer.segments] == [
        "tagline",
        "phone",
        "email",
        "instagram",
    ]
    assert set(assets.icons) == {"phone", "email", "instagram"}
    assert all(placed.icon_width == assets.footer.icon_size for placed in assets.footer.segments[1:])
    assert len(assets.stickers) == 1
    assert len(assets.transient) == 4
    assert assets.footer_font == "/fonts/DejaVuSans.ttf"

    assets.release()
    assert not any(asset.path.exists() for asset in assets.transient)


@pytest.mark.asyncio
async def test_documents_need_no_rendered_assets(tmp_path: Path) -> None:
    engine = _engine(tmp_path, _forbidden_runner)
    brand = BrandConfig.model_validate({"brand_name": "Acme", "contact": {"phone": "555"}})
    logo = tmp_path / "logo"

    assets = await engine.prepare("pdf_brand", brand, tmp_path, logo_path=logo)

    assert assets.logo_path == logo
    assert assets.footer is None
    assert assets.transient == []
