"""reportlab backend used to build image pages and vector overlays."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING, Sequence

from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from ..types import RenderSurface
from .base import CanvasBackend, ImageDocumentBuilder

if TYPE_CHECKING:  # pragma: no cover
    from PIL import Image

    from ..geometry import Point

OVERLAY_FONT = "Helvetica"


class ReportlabImageDocument(ImageDocumentBuilder):
    """Embeds one raster per page, each page sized to the raster."""

    def __init__(self) -> None:
        self._buffer = io.BytesIO()
        self._canvas = canvas.Canvas(self._buffer, pageCompression=1)
        self.page_count = 0

    def add_surface(self, surface: RenderSurface) -> None:
        if surface.image is None:
            raise ValueError("Cannot embed a released surface")
        self._canvas.setPageSize((surface.width, surface.height))
        self._canvas.drawImage(
            ImageReader(surface.image),
            0,
            0,
            width=surface.width,
            height=surface.height,
            mask="auto",
        )
        self._canvas.showPage()
        self.page_count += 1

    def add_encoded(self, data: bytes, width: float, height: float) -> None:
        # a JPEG file reader is embedded as-is, without re-encoding
        self._canvas.setPageSize((width, height))
        self._canvas.drawImage(ImageReader(io.BytesIO(data)), 0, 0, width=width, height=height)
        self._canvas.showPage()
        self.page_count += 1

    def finish(self) -> bytes:
        if self.page_count == 0:
            raise ValueError("No pages were added to the document")
        self._canvas.save()
        return self._buffer.getvalue()


class ReportlabCanvasBackend(CanvasBackend):
    def image_document(self) -> ReportlabImageDocument:
        return ReportlabImageDocument()

    def stamp_overlay(
        self,
        width: float,
        height: float,
        image: "Image.Image",
        positions: Sequence["Point"],
        draw_width: float,
        draw_height: float,
    ) -> bytes:
        buffer = io.BytesIO()
        overlay = canvas.Canvas(buffer, pagesize=(width, height))
        reader = ImageReader(image)
        for position in positions:
            overlay.drawImage(
                reader,
                position.x,
                position.y,
                width=draw_width,
                height=draw_height,
                mask="auto",
            )
        overlay.showPage()
        overlay.save()
        return buffer.getvalue()

    def text_overlay(self, width: float, height: float, text: str, x: float, y: float, font_size: float) -> bytes:
        buffer = io.BytesIO()
        overlay = canvas.Canvas(buffer, pagesize=(width, height))
        overlay.setFont(OVERLAY_FONT, font_size)
        overlay.setFillColorRGB(0, 0, 0)
        overlay.drawString(x, y, text)
        overlay.showPage()
        overlay.save()
        return buffer.getvalue()

    def text_width(self, text: str, font_size: float) -> float:
        return pdfmetrics.stringWidth(text, OVERLAY_FONT, font_size)

    def text_height(self, font_size: float) -> float:
        ascent, descent = pdfmetrics.getAscentDescent(OVERLAY_FONT, font_size)
        return ascent - descent
