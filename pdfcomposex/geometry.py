"""Page selection, watermark stamps and placement math.

Two coordinate conventions meet here. Placements are computed in raster
space (origin top-left, y grows downwards); documents use an origin at the
bottom-left. :func:`to_bottom_left` is the only place the two are reconciled.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Iterable, List, NamedTuple, Optional, Set

from PIL import Image, ImageColor, ImageDraw, ImageFont

from .config import DEFAULT_CONFIG
from .exceptions import ValidationError
from .types import Anchor, PageSelectMode, RenderSurface, WatermarkSpec
from .utils import clamp

LOGGER = logging.getLogger("pdfcomposex.geometry")

_RANGE_TOKEN = re.compile(r"^\s*(-?\d+)\s*-\s*(-?\d+)\s*$")
_PAGE_TOKEN = re.compile(r"^\s*(-?\d+)\s*$")

STAMP_LINE_HEIGHT = 1.5


class Point(NamedTuple):
    x: float
    y: float


def resolve_pages(total: int, mode: PageSelectMode = "all", range_expr: str = "") -> Set[int]:
    """Resolve a page selection into 0-based page indices.

    ``odd`` and ``even`` refer to 1-based page numbers, so ``odd`` yields
    indices 0, 2, 4... In ``custom`` mode *range_expr* is a comma separated
    list of 1-based pages and ``start-end`` ranges. Range endpoints are
    clamped into ``[1, total]`` and reversed ranges are swapped; single pages
    outside the document and unparsable tokens are skipped.
    """

    if total <= 0:
        return set()
    if mode == "all":
        return set(range(total))
    if mode == "odd":
        return set(range(0, total, 2))
    if mode == "even":
        return set(range(1, total, 2))
    if mode != "custom":
        raise ValidationError(f"Unknown page selection mode: {mode}")

    targets: Set[int] = set()
    for token in (range_expr or "").split(","):
        match = _RANGE_TOKEN.match(token)
        if match:
            start = int(clamp(int(match.group(1)), 1, total))
            end = int(clamp(int(match.group(2)), 1, total))
            low, high = min(start, end), max(start, end)
            targets.update(range(low - 1, high))
            continue
        match = _PAGE_TOKEN.match(token)
        if match:
            page = int(match.group(1))
            if 1 <= page <= total:
                targets.add(page - 1)
            continue
        if token.strip():
            LOGGER.debug("Skipping unparsable page token %r", token)
    return targets


def format_page_ranges(indices: Iterable[int]) -> str:
    """Render 0-based *indices* as a compact 1-based string such as ``1-3, 5``."""

    pages = sorted({index + 1 for index in indices})
    if not pages:
        return ""

    ranges: List[str] = []
    start = prev = pages[0]
    for page in pages[1:]:
        if page != prev + 1:
            ranges.append(str(start) if start == prev else f"{start}-{prev}")
            start = page
        prev = page
    ranges.append(str(start) if start == prev else f"{start}-{prev}")
    return ", ".join(ranges)


def _font_candidates(family: str, bold: bool, italic: bool) -> List[str]:
    families = [family] if family == "DejaVuSans" else [family, "DejaVuSans"]
    styles: List[str] = []
    if bold and italic:
        styles = ["BoldOblique", "BoldItalic"]
    elif bold:
        styles = ["Bold"]
    elif italic:
        styles = ["Oblique", "Italic"]

    candidates: List[str] = []
    for name in families:
        candidates.extend(f"{name}-{style}.ttf" for style in styles)
        candidates.append(f"{name}.ttf")
    return candidates


def load_font(family: str, size: float, *, bold: bool = False, italic: bool = False) -> ImageFont.FreeTypeFont:
    """Load the best matching TrueType font, ending with Pillow's bundled face."""

    for candidate in _font_candidates(family, bold, italic):
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    LOGGER.debug("No TrueType font found for %s, using Pillow default", family)
    return ImageFont.load_default(size=size)


def generate_stamp(
    spec: WatermarkSpec,
    scale_factor: float = 1.0,
    *,
    margin: Optional[int] = None,
) -> RenderSurface:
    """Render the watermark text into a transparent surface.

    The surface is sized to the bounding box of the rotated text box plus a
    fixed margin, so the rotated text is never clipped. The text is centered
    and rotated clockwise by ``spec.rotation_degrees``.
    """

    if not spec.text:
        raise ValidationError("Watermark text cannot be empty")
    if spec.font_size <= 0 or scale_factor <= 0:
        raise ValidationError("Watermark font size and scale must be positive")

    margin = DEFAULT_CONFIG.stamp_margin if margin is None else margin
    font_size = spec.font_size * scale_factor
    font = load_font(spec.font_family, font_size, bold=spec.bold, italic=spec.italic)

    text_width = font.getlength(spec.text)
    text_height = font_size * STAMP_LINE_HEIGHT

    angle = math.radians(abs(spec.rotation_degrees))
    width = math.ceil(abs(text_width * math.cos(angle)) + abs(text_height * math.sin(angle)) + margin)
    height = math.ceil(abs(text_width * math.sin(angle)) + abs(text_height * math.cos(angle)) + margin)

    try:
        red, green, blue = ImageColor.getrgb(spec.color)[:3]
    except ValueError as exc:
        raise ValidationError(f"Invalid watermark color: {spec.color}") from exc
    alpha = int(round(255 * clamp(spec.opacity, 0.0, 1.0)))

    layer = Image.new("RGBA", (max(1, math.ceil(text_width)), max(1, math.ceil(text_height))), (0, 0, 0, 0))
    ImageDraw.Draw(layer).text(
        (layer.width / 2, layer.height / 2),
        spec.text,
        font=font,
        fill=(red, green, blue, alpha),
        anchor="mm",
    )
    rotated = layer.rotate(-spec.rotation_degrees, resample=Image.Resampling.BICUBIC, expand=True)
    layer.close()

    surface = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    offset = (max(0, (width - rotated.width) // 2), max(0, (height - rotated.height) // 2))
    surface.alpha_composite(rotated, offset)
    rotated.close()

    LOGGER.debug("Generated %dx%d stamp at scale %.2f", width, height, scale_factor)
    return RenderSurface(width=width, height=height, image=surface)


def compute_placements(
    anchor: Anchor,
    page_width: float,
    page_height: float,
    stamp_width: float,
    stamp_height: float,
    *,
    padding: Optional[float] = None,
    rows: int = 4,
    cols: int = 3,
) -> List[Point]:
    """Return top-left-origin coordinates for a stamp on a page.

    Named anchors yield one coordinate, inset by *padding* from the edges
    they name. ``tiled`` yields ``rows * cols`` coordinates spread evenly,
    row by row; gaps never go negative, so every coordinate is >= 0.
    """

    if page_width <= 0 or page_height <= 0:
        raise ValidationError("Page dimensions must be positive")
    padding = DEFAULT_CONFIG.placement_padding if padding is None else padding

    left = padding
    center_x = (page_width - stamp_width) / 2
    right = page_width - stamp_width - padding
    top = padding
    middle = (page_height - stamp_height) / 2
    bottom = page_height - stamp_height - padding

    named = {
        "top-left": Point(left, top),
        "top-center": Point(center_x, top),
        "top-right": Point(right, top),
        "middle-left": Point(left, middle),
        "center": Point(center_x, middle),
        "middle-right": Point(right, middle),
        "bottom-left": Point(left, bottom),
        "bottom-center": Point(center_x, bottom),
        "bottom-right": Point(right, bottom),
    }
    if anchor in named:
        return [named[anchor]]
    if anchor != "tiled":
        raise ValidationError(f"Unknown watermark position: {anchor}")

    if rows < 1 or cols < 1:
        raise ValidationError("Tiled watermark grid needs at least one row and column")
    x_gap = max(0.0, (page_width - stamp_width * cols) / (cols + 1))
    y_gap = max(0.0, (page_height - stamp_height * rows) / (rows + 1))
    return [
        Point(x_gap + col * (stamp_width + x_gap), y_gap + row * (stamp_height + y_gap))
        for row in range(rows)
        for col in range(cols)
    ]


def to_bottom_left(point: Point, page_height: float, stamp_height: float) -> Point:
    """Convert a top-left-origin stamp coordinate into document space."""

    return Point(point.x, page_height - point.y - stamp_height)


__all__ = [
    "Point",
    "resolve_pages",
    "format_page_ranges",
    "load_font",
    "generate_stamp",
    "compute_placements",
    "to_bottom_left",
]
