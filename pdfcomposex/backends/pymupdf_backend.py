"""PyMuPDF backend implementation for page rasterization and structural compression."""

from __future__ import annotations

import logging
from typing import Tuple

import pymupdf
from PIL import Image

from ..exceptions import EncryptedDocumentError, InvalidDocumentError
from ..types import RenderSurface
from .base import DocumentOptimizer, RasterDocument, Rasterizer

LOGGER = logging.getLogger("pdfcomposex.backends.pymupdf")


def _open_document(data: bytes) -> "pymupdf.Document":
    try:
        document = pymupdf.open(stream=data, filetype="pdf")
    except Exception as exc:  # pragma: no cover - dependency exceptions vary
        raise InvalidDocumentError(f"Failed to load PDF. It might be corrupted. Error: {exc}") from exc

    if document.needs_pass and not document.authenticate(""):
        document.close()
        raise EncryptedDocumentError()
    if document.page_count == 0:
        document.close()
        raise InvalidDocumentError("Document is empty.")
    return document


class PyMuPDFDocument(RasterDocument):
    def __init__(self, document: "pymupdf.Document") -> None:
        self._document = document
        self.page_count = document.page_count

    def page_size(self, index: int) -> Tuple[float, float]:
        rect = self._document[index].rect
        return float(rect.width), float(rect.height)

    def render(self, index: int, scale: float, alpha: bool) -> RenderSurface:
        try:
            page = self._document[index]
            pixmap = page.get_pixmap(matrix=pymupdf.Matrix(scale, scale), alpha=alpha)
        except Exception as exc:  # pragma: no cover - dependency exceptions vary
            raise InvalidDocumentError(f"Failed to process page {index + 1}. Error: {exc}") from exc
        mode = "RGBA" if pixmap.alpha else "RGB"
        image = Image.frombytes(mode, (pixmap.width, pixmap.height), pixmap.samples)
        del pixmap
        return RenderSurface(width=image.width, height=image.height, image=image)

    def close(self) -> None:
        self._document.close()

    def __enter__(self) -> "PyMuPDFDocument":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class PyMuPDFRasterizer(Rasterizer):
    """Rasterizer that uses `PyMuPDF` under the hood."""

    def open(self, data: bytes) -> PyMuPDFDocument:
        return PyMuPDFDocument(_open_document(data))


class PyMuPDFOptimizer(DocumentOptimizer):
    """Rewrites documents with deflated streams, object streams and no unused objects."""

    def optimize(self, data: bytes, *, strip_metadata: bool, flatten_forms: bool, producer: str) -> bytes:
        document = _open_document(data)
        try:
            if flatten_forms and document.is_form_pdf:
                try:
                    document.bake(annots=False, widgets=True)
                except Exception as exc:
                    LOGGER.warning("Form flattening skipped: %s", exc)

            if strip_metadata:
                document.set_metadata(
                    {
                        "title": "",
                        "author": "",
                        "subject": "",
                        "keywords": "",
                        "creator": producer,
                        "producer": producer,
                    }
                )
                document.del_xml_metadata()

            return document.tobytes(garbage=3, deflate=True, use_objstms=1)
        finally:
            document.close()
