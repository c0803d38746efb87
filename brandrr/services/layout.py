"""Pixel geometry for header, footer and sticker overlays.

Text widths are estimated from character counts, not measured from glyph
metrics. The estimate is close enough for centering typical labels; long
labels in wide fonts may overflow the frame, and overflow is accepted
rather than wrapped, truncated or shrunk further.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from brandrr.schemas.job import BrandConfig

# Average glyph advance as a fraction of the font size, in thousandths (0.6).
CHAR_WIDTH_PER_MILLE = 600

HEADER_BAR_HEIGHT = 72
HEADER_LEFT_PADDING = 24
HEADER_FONT_SIZE = 30

FOOTER_BAR_HEIGHT = 56
FOOTER_FONT_TIERS: tuple[tuple[int, int], ...] = ((50, 18), (90, 15))
FOOTER_MIN_FONT_SIZE = 12
ICON_LABEL_GAP = 8
SEPARATOR_GLYPH = "•"
SEPARATOR_WIDTH = 28

STICKER_RIGHT_PADDING = 20
STICKER_TOP_PADDING = 20
STICKER_GAP = 12

CONTACT_ORDER: tuple[str, ...] = ("website", "phone", "email", "address")
SOCIAL_ORDER: tuple[str, ...] = ("instagram", "facebook", "x", "linkedin", "youtube", "tiktok")


def estimate_text_width(text: str, font_size: int) -> int:
    """Approximate rendered width: characters x font size x 0.6, rounded up."""
    units = len(text) * font_size * CHAR_WIDTH_PER_MILLE
    return -(-units // 1000)


@dataclass(frozen=True, slots=True)
class FooterSegment:
    """One footer entry: optional icon followed by a label."""

    key: str
    label: str
    icon_key: str | None = None


@dataclass(frozen=True, slots=True)
class PlacedSegment:
    """Footer segment with offsets relative to the footer content start."""

    segment: FooterSegment
    offset: int
    icon_width: int
    text_offset: int
    text_width: int

    @property
    def width(self) -> int:
        return self.text_offset - self.offset + self.text_width


@dataclass(frozen=True, slots=True)
class FooterLayout:
    font_size: int
    icon_size: int
    segments: tuple[PlacedSegment, ...]
    separator_offsets: tuple[int, ...]
    total_width: int
    bar_height: int = FOOTER_BAR_HEIGHT

    def start_x(self, frame_width: int) -> int:
        """Left edge that centers the content (negative when it overflows)."""
        return (frame_width - self.total_width) // 2

    def x_expr(self, offset: int, frame_width: int | None = None) -> str:
        """Horizontal position as a number, or as an expression over ``W``."""
        if frame_width:
            return str(self.start_x(frame_width) + offset)
        return f"(W-{self.total_width})/2+{offset}"

    @property
    def text_y_expr(self) -> str:
        return f"H-{self.bar_height}+({self.bar_height}-th)/2"

    def icon_y_expr(self, icon_height: int) -> str:
        return f"H-{self.bar_height}+{(self.bar_height - icon_height) // 2}"


@dataclass(frozen=True, slots=True)
class HeaderLayout:
    text: str
    bar_height: int = HEADER_BAR_HEIGHT
    left_padding: int = HEADER_LEFT_PADDING
    font_size: int = HEADER_FONT_SIZE

    @property
    def text_y_expr(self) -> str:
        return f"({self.bar_height}-th)/2"


@dataclass(frozen=True, slots=True)
class StickerPlacement:
    x_expr: str
    y: int


def collect_footer_segments(brand: BrandConfig) -> list[FooterSegment]:
    """Footer entries in display order: tagline, contact fields, then socials."""
    segments: list[FooterSegment] = []
    if brand.tagline:
        segments.append(FooterSegment(key="tagline", label=brand.tagline.strip()))

    for key in CONTACT_ORDER:
        value = getattr(brand.contact, key)
        if value and value.strip():
            segments.append(FooterSegment(key=key, label=value.strip(), icon_key=key))

    for key in SOCIAL_ORDER:
        value = getattr(brand.social, key)
        if value and value.strip():
            segments.append(FooterSegment(key=key, label=value.strip(), icon_key=key))
    return segments


def footer_font_size(segments: Sequence[FooterSegment]) -> int:
    """Pick a font tier from the total label length."""
    total_chars = sum(len(segment.label) for segment in segments)
    for max_chars, font_size in FOOTER_FONT_TIERS:
        if total_chars <= max_chars:
            return font_size
    return FOOTER_MIN_FONT_SIZE


def icon_size_for(font_size: int) -> int:
    return int(round(font_size * 1.3))


def plan_footer(
    segments: Sequence[FooterSegment],
    *,
    font_size: int,
    icon_widths: Mapping[str, int],
    icon_size: int | None = None,
) -> FooterLayout:
    """Lay out segments left to right with a separator between neighbours.

    Segments whose icon is missing from ``icon_widths`` are placed text-only.
    """
    placed: list[PlacedSegment] = []
    separators: list[int] = []
    cursor = 0
    for index, segment in enumerate(segments):
        if index > 0:
            separators.append(cursor)
            cursor += SEPARATOR_WIDTH

        icon_width = icon_widths.get(segment.icon_key, 0) if segment.icon_key else 0
        text_offset = cursor + (icon_width + ICON_LABEL_GAP if icon_width else 0)
        text_width = estimate_text_width(segment.label, font_size)
        placed.append(
            PlacedSegment(
                segment=segment,
                offset=cursor,
                icon_width=icon_width,
                text_offset=text_offset,
                text_width=text_width,
            )
        )
        cursor = text_offset + text_width

    return FooterLayout(
        font_size=font_size,
        icon_size=icon_size or icon_size_for(font_size),
        segments=tuple(placed),
        separator_offsets=tuple(separators),
        total_width=cursor,
    )


def plan_header(brand_name: str | None) -> HeaderLayout | None:
    if not brand_name or not brand_name.strip():
        return None
    return HeaderLayout(text=brand_name.strip())


def plan_sticker_stack(
    heights: Sequence[int],
    *,
    header_present: bool,
) -> list[StickerPlacement]:
    """Stack stickers top-to-bottom against the right edge."""
    y = HEADER_BAR_HEIGHT + STICKER_GAP if header_present else STICKER_TOP_PADDING
    placements: list[StickerPlacement] = []
    for height in heights:
        placements.append(StickerPlacement(x_expr=f"W-w-{STICKER_RIGHT_PADDING}", y=y))
        y += height + STICKER_GAP
    return placements
