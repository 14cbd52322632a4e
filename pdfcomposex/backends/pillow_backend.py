"""Pillow backend implementation for raster encodings."""

from __future__ import annotations

import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from ..config import BASELINE_ENCODING, ENCODINGS
from ..exceptions import InvalidRasterError
from ..types import EncodedImage, RenderSurface
from .base import RasterCodec

LOGGER = logging.getLogger("pdfcomposex.backends.pillow")


def _has_alpha(image: Image.Image) -> bool:
    return "A" in image.getbands() or "transparency" in image.info


class PillowCodec(RasterCodec):
    """Raster codec backed by Pillow's registered decoders and encoders.

    Like a browser canvas, asking for an encoding Pillow cannot write does
    not fail: the baseline PNG encoding is produced instead and reported in
    the returned :class:`EncodedImage`.
    """

    def decode(self, data: bytes) -> RenderSurface:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise InvalidRasterError(f"Image load failed: {exc}") from exc

        oriented = ImageOps.exif_transpose(image)
        if oriented is not image:
            image.close()
            image = oriented

        mode = "RGBA" if _has_alpha(image) else "RGB"
        if image.mode != mode:
            converted = image.convert(mode)
            image.close()
            image = converted
        return RenderSurface(width=image.width, height=image.height, image=image)

    def supports(self, media_type: str) -> bool:
        encoding = ENCODINGS.get(media_type)
        if encoding is None:
            return False
        Image.init()
        return encoding.pil_format in Image.SAVE

    def encode(self, surface: RenderSurface, media_type: str, quality: float) -> EncodedImage:
        if surface.image is None:
            raise ValueError("Cannot encode a released surface")

        produced = media_type if self.supports(media_type) else BASELINE_ENCODING
        if produced != media_type:
            LOGGER.debug("Encoder cannot write %s, producing %s", media_type, produced)
        encoding = ENCODINGS[produced]

        image = surface.image
        params: dict[str, object] = {}
        if encoding.lossy:
            params["quality"] = max(1, min(100, int(round(quality * 100))))
        if not encoding.has_alpha and image.mode not in ("RGB", "L"):
            image = image.convert("RGB")

        buffer = io.BytesIO()
        try:
            image.save(buffer, format=encoding.pil_format, **params)
        finally:
            if image is not surface.image:
                image.close()
        return EncodedImage(data=buffer.getvalue(), media_type=produced)
