"""Utility helpers shared by pdfcomposex components."""

from __future__ import annotations

import io
import logging
from typing import List, Sequence

from PIL import Image, UnidentifiedImageError

from .exceptions import UnsupportedMediaError, ValidationError
from .types import ConversionRequest, MediaKind, PDF_MEDIA_TYPE, SourceAsset

UNKNOWN_MEDIA_TYPE = "application/octet-stream"


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False
    return logger


def detect_media_type(data: bytes) -> str:
    """Return the MIME type of *data*, sniffing PDF and any Pillow format."""

    if data[:1024].lstrip().startswith(b"%PDF"):
        return PDF_MEDIA_TYPE
    try:
        with Image.open(io.BytesIO(data)) as image:
            fmt = image.format
    except (UnidentifiedImageError, OSError) as exc:
        raise UnsupportedMediaError("Unsupported file type: not an image or PDF") from exc
    media_type = Image.MIME.get(fmt or "")
    if media_type is None:
        raise UnsupportedMediaError(f"Unsupported image format: {fmt}")
    return media_type


def media_kind_for(media_type: str) -> MediaKind:
    if media_type == PDF_MEDIA_TYPE:
        return MediaKind.PAGINATED
    if media_type.startswith("image/"):
        return MediaKind.RASTER
    raise UnsupportedMediaError(f"Unsupported file type: {media_type}")


def build_assets(requests: Sequence[ConversionRequest], *, strict: bool = True) -> List[SourceAsset]:
    """Turn caller requests into immutable :class:`SourceAsset` objects.

    The declared ``media_kind`` of a request must agree with the sniffed
    content; a mismatch is treated as an unsupported source. With
    ``strict=False`` content that cannot be sniffed keeps its declared kind
    (paginated when undeclared) so it can fail later as a single source.
    """

    assets: List[SourceAsset] = []
    for index, request in enumerate(requests, start=1):
        try:
            media_type = detect_media_type(request.data)
        except UnsupportedMediaError:
            if strict:
                raise
            kind = MediaKind(request.media_kind or MediaKind.PAGINATED)
            media_type = PDF_MEDIA_TYPE if kind is MediaKind.PAGINATED else UNKNOWN_MEDIA_TYPE
            assets.append(
                SourceAsset(id=str(index), media_kind=kind, data=request.data, name=request.name, media_type=media_type)
            )
            continue
        kind = media_kind_for(media_type)
        if request.media_kind is not None and MediaKind(request.media_kind) != kind:
            raise UnsupportedMediaError(
                f"source {index} ({request.name}): declared {MediaKind(request.media_kind).value} "
                f"but content is {kind.value}"
            )
        assets.append(
            SourceAsset(
                id=str(index),
                media_kind=kind,
                data=request.data,
                name=request.name,
                media_type=media_type,
            )
        )
    return assets


def describe_source(asset: SourceAsset) -> str:
    return f"source {asset.id} ({asset.name})"


def require_rotation_step(delta: int) -> int:
    if int(delta) % 90 != 0:
        raise ValidationError(f"Rotation must be a multiple of 90 degrees, got {delta}")
    return int(delta)


def normalize_angle(angle: int) -> int:
    """Normalize *angle* into ``[0, 360)``."""

    return int(angle) % 360


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def format_file_size(size_bytes: float) -> str:
    """
    Format file size in human-readable format.

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB", "500 KB")
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"


__all__ = [
    "get_logger",
    "detect_media_type",
    "media_kind_for",
    "build_assets",
    "describe_source",
    "require_rotation_step",
    "normalize_angle",
    "clamp",
    "format_file_size",
]
