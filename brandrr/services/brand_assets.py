"""Transient raster assets for brand overlays: icons, stickers and emoji."""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from brandrr.config import Settings, settings
from brandrr.core.commands import CommandResult, run_command
from brandrr.core.exceptions import CommandError
from brandrr.integrations.emoji_cdn import EmojiResolver
from brandrr.schemas.job import StickerSelection
from brandrr.services.layout import FooterLayout, HeaderLayout, estimate_text_width

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., Awaitable[CommandResult]]

DEFAULT_GRADIENT: tuple[str, str] = ("#6366F1", "#8B5CF6")
GRADIENTS: dict[str, tuple[str, str]] = {
    "sunset": ("#F97316", "#EC4899"),
    "ocean": ("#0EA5E9", "#6366F1"),
    "forest": ("#22C55E", "#15803D"),
    "berry": ("#A855F7", "#EC4899"),
    "gold": ("#F59E0B", "#EAB308"),
    "fire": ("#EF4444", "#F97316"),
    "midnight": ("#1E293B", "#475569"),
    "mint": ("#10B981", "#06B6D4"),
    "royal": ("#4F46E5", "#7C3AED"),
    "candy": ("#F472B6", "#FB7185"),
}

STICKER_CATALOG: dict[str, dict[str, str]] = {
    "sale": {"label": "SALE", "gradient": "fire", "emoji": "🔥"},
    "new": {"label": "NEW", "gradient": "ocean", "emoji": "✨"},
    "limited": {"label": "LIMITED OFFER", "gradient": "berry", "emoji": "⏰"},
    "free-shipping": {"label": "FREE SHIPPING", "gradient": "forest", "emoji": "🚚"},
    "best-seller": {"label": "BEST SELLER", "gradient": "gold", "emoji": "⭐"},
    "hot-deal": {"label": "HOT DEAL", "gradient": "sunset", "emoji": "🔥"},
    "just-launched": {"label": "JUST LAUNCHED", "gradient": "royal", "emoji": "🚀"},
}

# slug -> (svg family name, regular file, bold file); files are relative to settings.font_dir
FONT_TABLE: dict[str, tuple[str, str, str]] = {
    "inter": ("Inter", "inter/Inter-Regular.ttf", "inter/Inter-Bold.ttf"),
    "roboto": ("Roboto", "roboto/Roboto-Regular.ttf", "roboto/Roboto-Bold.ttf"),
    "open-sans": ("Open Sans", "open-sans/OpenSans-Regular.ttf", "open-sans/OpenSans-Bold.ttf"),
    "montserrat": ("Montserrat", "montserrat/Montserrat-Regular.ttf", "montserrat/Montserrat-Bold.ttf"),
    "lato": ("Lato", "lato/Lato-Regular.ttf", "lato/Lato-Bold.ttf"),
    "poppins": ("Poppins", "poppins/Poppins-Regular.ttf", "poppins/Poppins-Bold.ttf"),
    "playfair": (
        "Playfair Display",
        "playfair/PlayfairDisplay-Regular.ttf",
        "playfair/PlayfairDisplay-Bold.ttf",
    ),
    "dejavu-sans": ("DejaVu Sans", "dejavu/DejaVuSans.ttf", "dejavu/DejaVuSans-Bold.ttf"),
}
DEFAULT_FONT_FAMILY = "DejaVu Sans"

# icon key -> (glyph, background colour or None for the brand colour)
ICON_GLYPHS: dict[str, tuple[str, str | None]] = {
    "website": ("www", None),
    "phone": ("☎", None),
    "email": ("@", None),
    "address": ("⌂", None),
    "instagram": ("IG", "#E1306C"),
    "facebook": ("f", "#1877F2"),
    "x": ("X", "#000000"),
    "linkedin": ("in", "#0A66C2"),
    "youtube": ("▶", "#FF0000"),
    "tiktok": ("♪", "#010101"),
}

STICKER_FONT_SIZE = 20
STICKER_HEIGHT = 44
STICKER_PADDING_X = 18
STICKER_EMOJI_SIZE = 24
STICKER_EMOJI_GAP = 8

_HEX_COLOR_RE = re.compile(r"^#?(?P<hex>[0-9a-fA-F]{6}|[0-9a-fA-F]{3})$")


def normalize_hex_color(value: str | None, *, fallback: str) -> str:
    """Return ``#RRGGBB`` for a hex colour, or ``fallback`` when invalid."""
    match = _HEX_COLOR_RE.match((value or "").strip())
    if not match:
        return fallback
    digits = match.group("hex")
    if len(digits) == 3:
        digits = "".join(char * 2 for char in digits)
    return f"#{digits.upper()}"


def resolve_gradient(descriptor: str | None) -> tuple[str, str]:
    """Look up a gradient colour pair; unknown descriptors get the default pair."""
    key = re.sub(r"[\s_]+", "-", (descriptor or "").strip().lower())
    return GRADIENTS.get(key, DEFAULT_GRADIENT)


def resolve_font(slug: str | None, *, bold: bool = False, app_settings: Settings | None = None) -> str:
    """Resolve a font slug to a font file path, falling back to the defaults."""
    active = app_settings or settings
    entry = FONT_TABLE.get((slug or "").strip().lower())
    if entry is not None:
        candidate = Path(active.font_dir) / (entry[2] if bold else entry[1])
        if candidate.is_file():
            return str(candidate)

    if bold and Path(active.default_bold_font_path).is_file():
        return active.default_bold_font_path
    return active.default_font_path


def font_family_name(slug: str | None) -> str:
    entry = FONT_TABLE.get((slug or "").strip().lower())
    return entry[0] if entry else DEFAULT_FONT_FAMILY


@dataclass(slots=True)
class ResolvedSticker:
    label: str
    colors: tuple[str, str]
    text_color: str
    emoji: str | None


def resolve_sticker(selection: StickerSelection) -> ResolvedSticker | None:
    """Merge a catalog entry with inline overrides; None when there is no label."""
    catalog = STICKER_CATALOG.get((selection.id or "").strip().lower(), {})
    label = (selection.label or catalog.get("label") or "").strip()
    if not label:
        return None

    if selection.gradient_colors:
        start, end = selection.gradient_colors
        colors = (
            normalize_hex_color(start, fallback=DEFAULT_GRADIENT[0]),
            normalize_hex_color(end, fallback=DEFAULT_GRADIENT[1]),
        )
    else:
        colors = resolve_gradient(selection.gradient or catalog.get("gradient"))

    return ResolvedSticker(
        label=label,
        colors=colors,
        text_color=normalize_hex_color(selection.text_color, fallback="#FFFFFF"),
        emoji=selection.emoji or catalog.get("emoji"),
    )


@dataclass(slots=True)
class RenderedAsset:
    """Transient image file with its pixel size.

    ``is_raster`` is False when every rasterizer failed and ``path`` still
    points at the SVG source; such assets are left out of compositions.
    """

    path: Path
    width: int
    height: int
    is_raster: bool = True
    source_path: Path | None = None

    def remove(self) -> None:
        for candidate in (self.path, self.source_path):
            if candidate is not None:
                candidate.unlink(missing_ok=True)


@dataclass(slots=True)
class PreparedBrandAssets:
    """Everything rendered once per job and reused for each input."""

    logo_path: Path | None = None
    header: HeaderLayout | None = None
    header_font: str | None = None
    footer: FooterLayout | None = None
    footer_font: str | None = None
    icons: dict[str, RenderedAsset] = field(default_factory=dict)
    stickers: list[RenderedAsset] = field(default_factory=list)
    transient: list[RenderedAsset] = field(default_factory=list)
    released: bool = False

    def release(self) -> None:
        """Delete every transient asset file. Safe to call more than once."""
        if self.released:
            return
        for asset in self.transient:
            asset.remove()
        self.released = True


def build_badge_svg(
    *,
    width: int,
    height: int,
    colors: tuple[str, str],
    text: str,
    text_color: str,
    font_family: str,
    font_size: int,
    corner_radius: float,
    emoji_data_uri: str | None = None,
    text_center_x: float | None = None,
) -> str:
    """Rounded rectangle with a two-stop gradient, centered text and optional emoji."""
    center_x = text_center_x if text_center_x is not None else width / 2
    emoji_markup = ""
    if emoji_data_uri:
        emoji_y = (height - STICKER_EMOJI_SIZE) / 2
        emoji_markup = (
            f'<image x="{STICKER_PADDING_X}" y="{emoji_y:g}" '
            f'width="{STICKER_EMOJI_SIZE}" height="{STICKER_EMOJI_SIZE}" '
            f'href="{emoji_data_uri}" xlink:href="{emoji_data_uri}" />'
        )
    return (
        '<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink" '
        f'width="{width}" height="{height}" viewBox="0 0 {width} {height}">'
        '<defs><linearGradient id="bg" x1="0" y1="0" x2="1" y2="1">'
        f'<stop offset="0%" stop-color="{colors[0]}" />'
        f'<stop offset="100%" stop-color="{colors[1]}" />'
        "</linearGradient></defs>"
        f'<rect x="0" y="0" width="{width}" height="{height}" '
        f'rx="{corner_radius:g}" ry="{corner_radius:g}" fill="url(#bg)" />'
        f"{emoji_markup}"
        f'<text x="{center_x:g}" y="{height / 2:g}" text-anchor="middle" dominant-baseline="central" '
        f'font-family="{html.escape(font_family)}" font-size="{font_size}" font-weight="700" '
        f'fill="{text_color}">{html.escape(text)}</text>'
        "</svg>"
    )


class AssetPreparer:
    """Render icons and stickers to PNG files inside a job working directory.

    Rasterization tries ``rsvg-convert``, then ImageMagick, then keeps the SVG.
    Files are never deleted here; the caller releases them.
    """

    def __init__(
        self,
        work_dir: Path,
        *,
        font_family: str | None = None,
        app_settings: Settings | None = None,
        emoji_resolver: EmojiResolver | None = None,
        command_runner: CommandRunner = run_command,
    ) -> None:
        self.work_dir = work_dir
        self.settings = app_settings or settings
        self.font_family = font_family_name(font_family)
        self.emoji_resolver = emoji_resolver or EmojiResolver(app_settings=self.settings)
        self._run = command_runner
        self.rendered: list[RenderedAsset] = []

    async def render_icon(self, key: str, *, size: int, brand_color: str) -> RenderedAsset:
        glyph, background = ICON_GLYPHS.get(key, ("?", None))
        color = normalize_hex_color(background or brand_color, fallback="#111827")
        glyph_size = max(8, int(size * (0.42 if len(glyph) > 2 else 0.55)))
        svg = build_badge_svg(
            width=size,
            height=size,
            colors=(color, color),
            text=glyph,
            text_color="#FFFFFF",
            font_family=self.font_family,
            font_size=glyph_size,
            corner_radius=size * 0.22,
        )
        return await self._render(f"icon-{key}", svg, size, size)

    async def render_sticker(self, selection: StickerSelection, *, index: int) -> RenderedAsset | None:
        sticker = resolve_sticker(selection)
        if sticker is None:
            return None

        emoji_uri = await self.emoji_resolver.fetch_data_uri(sticker.emoji)
        text_width = estimate_text_width(sticker.label, STICKER_FONT_SIZE)
        emoji_width = STICKER_EMOJI_SIZE + STICKER_EMOJI_GAP if emoji_uri else 0
        width = text_width + emoji_width + 2 * STICKER_PADDING_X
        svg = build_badge_svg(
            width=width,
            height=STICKER_HEIGHT,
            colors=sticker.colors,
            text=sticker.label,
            text_color=sticker.text_color,
            font_family=self.font_family,
            font_size=STICKER_FONT_SIZE,
            corner_radius=STICKER_HEIGHT / 2,
            emoji_data_uri=emoji_uri,
            text_center_x=STICKER_PADDING_X + emoji_width + text_width / 2,
        )
        return await self._render(f"sticker-{index}", svg, width, STICKER_HEIGHT)

    async def _render(self, stem: str, svg: str, width: int, height: int) -> RenderedAsset:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        svg_path = self.work_dir / f"{stem}.svg"
        png_path = self.work_dir / f"{stem}.png"
        svg_path.write_text(svg, encoding="utf-8")

        for binary, args in self._rasterizer_commands(svg_path, png_path, width, height):
            if await self._try_rasterize(binary, args, png_path):
                asset = RenderedAsset(
                    path=png_path,
                    width=width,
                    height=height,
                    source_path=svg_path,
                )
                self.rendered.append(asset)
                return asset

        logger.warning(
            "No rasterizer available, keeping SVG asset",
            extra={"asset": stem},
        )
        asset = RenderedAsset(path=svg_path, width=width, height=height, is_raster=False)
        self.rendered.append(asset)
        return asset

    def _rasterizer_commands(
        self,
        svg_path: Path,
        png_path: Path,
        width: int,
        height: int,
    ) -> list[tuple[str, Sequence[str]]]:
        rsvg = self.settings.rsvg_convert_binary
        magick = self.settings.imagemagick_binary
        return [
            (
                rsvg,
                [rsvg, "-w", str(width), "-h", str(height), "-o", str(png_path), str(svg_path)],
            ),
            (
                magick,
                [
                    magick,
                    "-background",
                    "none",
                    "-density",
                    "96",
                    str(svg_path),
                    "-resize",
                    f"{width}x{height}!",
                    str(png_path),
                ],
            ),
        ]

    async def _try_rasterize(self, binary: str, args: Sequence[str], png_path: Path) -> bool:
        try:
            result = await self._run(
                args,
                timeout_seconds=self.settings.rasterizer_timeout_seconds,
            )
        except CommandError as exc:
            logger.info("Rasterizer unavailable", extra={"binary": binary, "error": exc.message})
            return False
        if not result.ok or not png_path.exists():
            logger.info(
                "Rasterizer failed",
                extra={"binary": binary, "returncode": result.returncode},
            )
            png_path.unlink(missing_ok=True)
            return False
        return True
