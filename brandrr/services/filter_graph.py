"""Typed ffmpeg filter graph construction for brand overlays.

A ``CompositionPlan`` is a chain of stages over the base video stream
(``0:v``). Side inputs (logo, icons, stickers) are registered as they are
needed and become ``N:v`` in the order they were added, which is also the
order of the extra ``-i`` arguments passed to ffmpeg.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Union

from brandrr.core.exceptions import CompositionPlanError
from brandrr.schemas.job import BrandConfig
from brandrr.services.brand_assets import PreparedBrandAssets, normalize_hex_color
from brandrr.services.layout import SEPARATOR_GLYPH, SEPARATOR_WIDTH, estimate_text_width, plan_sticker_stack

logger = logging.getLogger(__name__)

BASE_VIDEO_LABEL = "0:v"
EDGE_PADDING = 20
LOGO_HEIGHTS: dict[str, int] = {"small": 50, "medium": 100, "large": 150, "xlarge": 200}
BAR_OPACITY = 0.85
BAR_TEXT_COLOR = "white"

_P = EDGE_PADDING
ANCHOR_FORMULAS: dict[str, tuple[str, str]] = {
    "top-left": (f"{_P}", f"{_P}"),
    "top-center": ("(W-w)/2", f"{_P}"),
    "top-right": (f"W-w-{_P}", f"{_P}"),
    "bottom-left": (f"{_P}", f"H-h-{_P}"),
    "bottom-center": ("(W-w)/2", f"H-h-{_P}"),
    "bottom-right": (f"W-w-{_P}", f"H-h-{_P}"),
    "center": ("(W-w)/2", "(H-h)/2"),
}
DEFAULT_ANCHOR = "bottom-right"

_OPTION_SPECIALS = ("\\", "'", ":")
_GRAPH_SPECIALS = ("\\", "'", "[", "]", ",", ";")


def overlay_anchor(position: str | None) -> tuple[str, str]:
    """Overlay x/y expressions for a position keyword (unknown means bottom-right)."""
    key = (position or "").strip().lower().replace("_", "-")
    return ANCHOR_FORMULAS.get(key, ANCHOR_FORMULAS[DEFAULT_ANCHOR])


def escape_filter_text(value: str) -> str:
    """Escape a literal for use as a filter option value inside ``-filter_complex``.

    Two levels apply: the filter option parser (``\\ ' :``) and then the
    filtergraph parser (``\\ ' [ ] , ;``). Newlines collapse to spaces.
    """
    text = " ".join(str(value).splitlines())
    for char in _OPTION_SPECIALS:
        text = text.replace(char, "\\" + char)
    escaped = []
    for char in text:
        escaped.append("\\" + char if char in _GRAPH_SPECIALS else char)
    return "".join(escaped)


def ffmpeg_color(hex_color: str | None, opacity: float | None = None, *, fallback: str = "#111827") -> str:
    """Convert ``#RRGGBB`` into ffmpeg's ``0xRRGGBB[@alpha]`` notation."""
    color = "0x" + normalize_hex_color(hex_color, fallback=fallback).lstrip("#")
    if opacity is None:
        return color
    return f"{color}@{opacity:.2f}"


@dataclass(frozen=True, slots=True)
class ScaleStage:
    """Resize a side input, optionally forcing an alpha opacity."""

    kind: ClassVar[str] = "scale"

    source: str
    output: str
    width: str
    height: str
    opacity: float | None = None

    @property
    def inputs(self) -> tuple[str, ...]:
        return (self.source,)

    def render(self) -> str:
        filters = [f"scale={self.width}:{self.height}"]
        if self.opacity is not None:
            filters.append("format=rgba")
            filters.append(f"colorchannelmixer=aa={self.opacity:g}")
        return f"[{self.source}]{','.join(filters)}[{self.output}]"


@dataclass(frozen=True, slots=True)
class OverlayStage:
    kind: ClassVar[str] = "overlay"

    base: str
    overlay: str
    output: str
    x: str
    y: str

    @property
    def inputs(self) -> tuple[str, ...]:
        return (self.base, self.overlay)

    def render(self) -> str:
        return f"[{self.base}][{self.overlay}]overlay=x={self.x}:y={self.y}[{self.output}]"


@dataclass(frozen=True, slots=True)
class DrawBoxStage:
    kind: ClassVar[str] = "drawbox"

    base: str
    output: str
    x: str
    y: str
    width: str
    height: str
    color: str

    @property
    def inputs(self) -> tuple[str, ...]:
        return (self.base,)

    def render(self) -> str:
        return (
            f"[{self.base}]drawbox=x={self.x}:y={self.y}:w={self.width}:h={self.height}"
            f":color={self.color}:t=fill[{self.output}]"
        )


@dataclass(frozen=True, slots=True)
class DrawTextStage:
    kind: ClassVar[str] = "drawtext"

    base: str
    output: str
    text: str
    font_file: str
    font_size: int
    font_color: str
    x: str
    y: str

    @property
    def inputs(self) -> tuple[str, ...]:
        return (self.base,)

    def render(self) -> str:
        return (
            f"[{self.base}]drawtext=fontfile={escape_filter_text(self.font_file)}"
            f":text={escape_filter_text(self.text)}:expansion=none"
            f":fontsize={self.font_size}:fontcolor={self.font_color}"
            f":x={self.x}:y={self.y}[{self.output}]"
        )


Stage = Union[ScaleStage, OverlayStage, DrawBoxStage, DrawTextStage]


@dataclass
class CompositionPlan:
    """Ordered stages over one base stream with a single terminal label."""

    base_label: str = BASE_VIDEO_LABEL
    stages: list[Stage] = field(default_factory=list)
    side_inputs: list[Path] = field(default_factory=list)
    _main_label: str = field(default="", init=False)
    _counter: int = field(default=0, init=False)
    _consumed: set[str] = field(default_factory=set, init=False)
    _produced: set[str] = field(default_factory=set, init=False)

    def __post_init__(self) -> None:
        self._main_label = self.base_label

    @property
    def is_empty(self) -> bool:
        return not self.stages

    @property
    def output_label(self) -> str:
        return self._main_label

    def add_side_input(self, path: Path) -> str:
        """Register an extra ffmpeg input and return its stream label."""
        self.side_inputs.append(Path(path))
        return f"{len(self.side_inputs)}:v"

    def new_label(self, prefix: str = "v") -> str:
        self._counter += 1
        return f"{prefix}{self._counter}"

    def append(self, stage: Stage) -> Stage:
        """Add a stage after checking that its labels are wired correctly."""
        known = {self.base_label, *self._side_labels(), *self._produced}
        for label in stage.inputs:
            if label not in known:
                raise CompositionPlanError(
                    f"{stage.kind} stage reads undefined label '{label}'",
                    details={"label": label},
                )
            if label in self._consumed:
                raise CompositionPlanError(
                    f"{stage.kind} stage reads label '{label}' that is already consumed",
                    details={"label": label},
                )
        if stage.output in known:
            raise CompositionPlanError(
                f"{stage.kind} stage redefines label '{stage.output}'",
                details={"label": stage.output},
            )

        self._consumed.update(stage.inputs)
        self._produced.add(stage.output)
        self.stages.append(stage)
        return stage

    def overlay_image(
        self,
        path: Path,
        *,
        x: str,
        y: str,
        scale: tuple[str, str] | None = None,
        opacity: float | None = None,
    ) -> None:
        side_label = self.add_side_input(path)
        if scale is not None or opacity is not None:
            width, height = scale or ("iw", "ih")
            scaled = self.new_label("s")
            self.append(
                ScaleStage(
                    source=side_label,
                    output=scaled,
                    width=width,
                    height=height,
                    opacity=opacity,
                )
            )
            side_label = scaled

        output = self.new_label()
        self.append(OverlayStage(base=self._main_label, overlay=side_label, output=output, x=x, y=y))
        self._main_label = output

    def draw_box(self, *, x: str, y: str, width: str, height: str, color: str) -> None:
        output = self.new_label()
        self.append(
            DrawBoxStage(
                base=self._main_label,
                output=output,
                x=x,
                y=y,
                width=width,
                height=height,
                color=color,
            )
        )
        self._main_label = output

    def draw_text(
        self,
        text: str,
        *,
        font_file: str,
        font_size: int,
        x: str,
        y: str,
        font_color: str = BAR_TEXT_COLOR,
    ) -> None:
        output = self.new_label()
        self.append(
            DrawTextStage(
                base=self._main_label,
                output=output,
                text=text,
                font_file=font_file,
                font_size=font_size,
                font_color=font_color,
                x=x,
                y=y,
            )
        )
        self._main_label = output

    def render(self) -> str:
        """Serialize to a ``-filter_complex`` program."""
        if self.is_empty:
            raise CompositionPlanError("Cannot render an empty composition plan")
        dangling = self._produced - self._consumed - {self._main_label}
        unused = set(self._side_labels()) - self._consumed
        if dangling or unused:
            raise CompositionPlanError(
                "Composition plan has more than one terminal label",
                details={"dangling": sorted(dangling | unused)},
            )
        return ";".join(stage.render() for stage in self.stages)

    def ffmpeg_args(
        self,
        input_path: Path,
        output_path: Path,
        *,
        video: bool,
        binary: str = "ffmpeg",
    ) -> list[str]:
        args = [binary, "-y", "-hide_banner", "-loglevel", "error", "-i", str(input_path)]
        for side_input in self.side_inputs:
            args += ["-i", str(side_input)]
        args += ["-filter_complex", self.render(), "-map", f"[{self.output_label}]"]
        if video:
            args += [
                "-map",
                "0:a?",
                "-c:a",
                "copy",
                "-c:v",
                "libx264",
                "-preset",
                "veryfast",
                "-crf",
                "20",
                "-pix_fmt",
                "yuv420p",
                "-movflags",
                "+faststart",
            ]
        else:
            args += ["-frames:v", "1"]
        args.append(str(output_path))
        return args

    def _side_labels(self) -> Sequence[str]:
        return [f"{index}:v" for index in range(1, len(self.side_inputs) + 1)]


class BrandCompositor:
    """Turn a brand configuration and its prepared assets into a plan.

    Stage order is logo, header, stickers, then footer.
    """

    def __init__(
        self,
        brand: BrandConfig,
        assets: PreparedBrandAssets,
        *,
        frame_width: int | None = None,
    ) -> None:
        self.brand = brand
        self.assets = assets
        self.frame_width = frame_width

    def build(self) -> CompositionPlan:
        plan = CompositionPlan()
        self._add_logo(plan)
        self._add_header(plan)
        self._add_stickers(plan)
        self._add_footer(plan)
        logger.debug(
            "Composition plan built",
            extra={"stage_count": len(plan.stages), "side_inputs": len(plan.side_inputs)},
        )
        return plan

    def _add_logo(self, plan: CompositionPlan) -> None:
        logo = self.brand.logo
        if not logo.enabled or self.assets.logo_path is None:
            return
        x, y = overlay_anchor(logo.position)
        plan.overlay_image(
            self.assets.logo_path,
            x=x,
            y=y,
            scale=("-1", str(LOGO_HEIGHTS[logo.size])),
            opacity=logo.opacity,
        )

    def _add_header(self, plan: CompositionPlan) -> None:
        header = self.assets.header
        if header is None:
            return
        plan.draw_box(
            x="0",
            y="0",
            width="iw",
            height=str(header.bar_height),
            color=ffmpeg_color(self.brand.primary_color, BAR_OPACITY),
        )
        plan.draw_text(
            header.text,
            font_file=self.assets.header_font or "",
            font_size=header.font_size,
            x=str(header.left_padding),
            y=header.text_y_expr,
        )

    def _add_stickers(self, plan: CompositionPlan) -> None:
        stickers = [sticker for sticker in self.assets.stickers if sticker.is_raster]
        placements = plan_sticker_stack(
            [sticker.height for sticker in stickers],
            header_present=self.assets.header is not None,
        )
        for sticker, placement in zip(stickers, placements):
            plan.overlay_image(sticker.path, x=placement.x_expr, y=str(placement.y))

    def _add_footer(self, plan: CompositionPlan) -> None:
        footer = self.assets.footer
        if footer is None or not footer.segments:
            return

        plan.draw_box(
            x="0",
            y=f"ih-{footer.bar_height}",
            width="iw",
            height=str(footer.bar_height),
            color=ffmpeg_color(self.brand.primary_color, BAR_OPACITY),
        )
        font_file = self.assets.footer_font or ""
        separator_inset = (SEPARATOR_WIDTH - estimate_text_width(SEPARATOR_GLYPH, footer.font_size)) // 2

        for index, placed in enumerate(footer.segments):
            plan.draw_text(
                placed.segment.label,
                font_file=font_file,
                font_size=footer.font_size,
                x=footer.x_expr(placed.text_offset, self.frame_width),
                y=footer.text_y_expr,
            )

            icon = self.assets.icons.get(placed.segment.icon_key or "")
            if placed.icon_width and icon is not None and icon.is_raster:
                plan.overlay_image(
                    icon.path,
                    x=footer.x_expr(placed.offset, self.frame_width),
                    y=footer.icon_y_expr(icon.height),
                )

            if index < len(footer.separator_offsets):
                plan.draw_text(
                    SEPARATOR_GLYPH,
                    font_file=font_file,
                    font_size=footer.font_size,
                    x=footer.x_expr(footer.separator_offsets[index] + separator_inset, self.frame_width),
                    y=footer.text_y_expr,
                )
