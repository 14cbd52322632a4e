from __future__ import annotations

import io
from pathlib import Path
from typing import Callable
import sys

import pytest
from PIL import Image
from pypdf import PdfWriter
from reportlab.pdfgen import canvas

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pdfcomposex.types import MediaKind, PDF_MEDIA_TYPE, SourceAsset  # noqa: E402


@pytest.fixture()
def pdf_factory() -> Callable[..., bytes]:
    def _create(pages: int = 1, width: float = 200, height: float = 200, title: str | None = None) -> bytes:
        writer = PdfWriter()
        for _ in range(pages):
            writer.add_blank_page(width=width, height=height)
        if title is not None:
            writer.add_metadata({"/Title": title})
        buffer = io.BytesIO()
        writer.write(buffer)
        return buffer.getvalue()

    return _create


@pytest.fixture()
def image_factory() -> Callable[..., bytes]:
    def _create(
        width: int = 40,
        height: int = 20,
        fmt: str = "PNG",
        mode: str = "RGB",
        color: tuple = (0, 128, 255),
    ) -> bytes:
        buffer = io.BytesIO()
        Image.new(mode, (width, height), color).save(buffer, format=fmt)
        return buffer.getvalue()

    return _create


@pytest.fixture()
def png_bytes(image_factory: Callable[..., bytes]) -> bytes:
    return image_factory()


@pytest.fixture()
def jpeg_bytes(image_factory: Callable[..., bytes]) -> bytes:
    return image_factory(width=30, height=60, fmt="JPEG")


@pytest.fixture()
def corrupt_bytes() -> bytes:
    return b"this is not a document at all"


@pytest.fixture()
def encrypted_pdf() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=100, height=100)
    writer.encrypt("secret")
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture()
def asset_factory() -> Callable[..., SourceAsset]:
    def _create(
        data: bytes,
        name: str = "file.pdf",
        media_type: str = PDF_MEDIA_TYPE,
        source_id: str = "1",
    ) -> SourceAsset:
        kind = MediaKind.PAGINATED if media_type == PDF_MEDIA_TYPE else MediaKind.RASTER
        return SourceAsset(id=source_id, media_kind=kind, data=data, name=name, media_type=media_type)

    return _create


@pytest.fixture()
def text_pdf_factory() -> Callable[..., bytes]:
    """Build a document with one page per entry of *texts*.

    Pages with an empty text get a filled rectangle instead, so they carry
    drawing content but nothing extractable.
    """

    def _create(texts: list[str], width: float = 300, height: float = 400) -> bytes:
        buffer = io.BytesIO()
        document = canvas.Canvas(buffer, pagesize=(width, height))
        for text in texts:
            if text:
                document.setFont("Helvetica", 10)
                document.drawString(20, height - 40, text)
            else:
                document.setFillColorRGB(0.2, 0.4, 0.8)
                document.rect(40, 40, width - 80, height - 80, fill=1, stroke=0)
            document.showPage()
        document.save()
        return buffer.getvalue()

    return _create


@pytest.fixture()
def form_pdf() -> bytes:
    buffer = io.BytesIO()
    document = canvas.Canvas(buffer, pagesize=(300, 400))
    document.drawString(20, 360, "Customer form")
    document.acroForm.textfield(name="customer", x=20, y=300, width=200, height=20, value="Alice")
    document.showPage()
    document.save()
    return buffer.getvalue()
