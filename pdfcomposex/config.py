"""Tunable constants and encoding tables for :mod:`pdfcomposex`."""

from __future__ import annotations

import dataclasses
from typing import Dict, Tuple

from .types import PDF_MEDIA_TYPE


@dataclasses.dataclass(slots=True, frozen=True)
class Encoding:
    """Describes a raster encoding the pipeline can target."""

    media_type: str
    pil_format: str
    extension: str
    has_alpha: bool
    lossy: bool


ENCODINGS: Dict[str, Encoding] = {
    "image/jpeg": Encoding("image/jpeg", "JPEG", "jpg", has_alpha=False, lossy=True),
    "image/png": Encoding("image/png", "PNG", "png", has_alpha=True, lossy=False),
    "image/webp": Encoding("image/webp", "WEBP", "webp", has_alpha=True, lossy=True),
    "image/avif": Encoding("image/avif", "AVIF", "avif", has_alpha=True, lossy=True),
    "image/bmp": Encoding("image/bmp", "BMP", "bmp", has_alpha=False, lossy=False),
}

BASELINE_ENCODING = "image/png"

# Ordered fallbacks tried when the encoder substitutes another encoding.
ENCODING_FALLBACKS: Dict[str, Tuple[str, ...]] = {
    "image/avif": ("image/webp", "image/png"),
    "image/webp": ("image/png",),
    "image/jpeg": ("image/png",),
    "image/bmp": ("image/png",),
    "image/png": (),
}

EXTENSIONS: Dict[str, str] = {
    **{media_type: encoding.extension for media_type, encoding in ENCODINGS.items()},
    PDF_MEDIA_TYPE: "pdf",
}


def extension_for(media_type: str) -> str:
    return EXTENSIONS.get(media_type, "bin")


@dataclasses.dataclass(slots=True)
class PipelineConfig:
    """
    Behavioural constants shared by the converter and composer.

    Attributes:
        target_dpi: Conceptual output density for page rasterization
        base_dpi: Units per inch of the document coordinate space
        max_dimension: Ceiling for rendered pixel width/height
        stamp_margin: Extra pixels around a rotated watermark stamp
        placement_padding: Distance from the page edge for anchored stamps
        oversampling: Scale at which document watermark stamps are rendered
        merge_yield_every: Yield to the event loop every N merged sources
        embed_yield_every: Yield every N embedded rasters (large batches)
        render_yield_every: Yield every N rasterized pages
        stamp_yield_every: Yield every N watermarked pages
        split_yield_every: Yield every N copied pages when splitting
        numbering_yield_every: Yield every N numbered pages
        text_page_threshold: Characters above which a page is kept as vectors
            when compressing
        compress_min_scale: Lower bound of the compression render scale
        compress_max_scale: Upper bound of the compression render scale
        compress_max_canvas: Ceiling for compressed page width/height in pixels
        compress_yield_every: Yield every N compressed pages
        producer: Producer and creator written when metadata is stripped
    """

    target_dpi: float = 300.0
    base_dpi: float = 72.0
    max_dimension: int = 4096
    stamp_margin: int = 50
    placement_padding: float = 20.0
    oversampling: float = 3.0
    merge_yield_every: int = 3
    embed_yield_every: int = 3
    render_yield_every: int = 5
    stamp_yield_every: int = 20
    split_yield_every: int = 50
    numbering_yield_every: int = 50
    text_page_threshold: int = 50
    compress_min_scale: float = 0.2
    compress_max_scale: float = 4.0
    compress_max_canvas: int = 3000
    compress_yield_every: int = 3
    producer: str = "PDFComposeX"

    @property
    def render_scale(self) -> float:
        return self.target_dpi / self.base_dpi


DEFAULT_CONFIG = PipelineConfig()


__all__ = [
    "Encoding",
    "ENCODINGS",
    "ENCODING_FALLBACKS",
    "BASELINE_ENCODING",
    "EXTENSIONS",
    "extension_for",
    "PipelineConfig",
    "DEFAULT_CONFIG",
]
