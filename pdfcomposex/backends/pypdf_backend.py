"""pypdf backend implementation for paginated documents."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Tuple

from pypdf import PageObject, PdfReader, PdfWriter
from pypdf.errors import PdfReadError
from pypdf.generic import NameObject, NumberObject

from ..exceptions import EncryptedDocumentError, InvalidDocumentError
from ..utils import normalize_angle
from .base import BackendDocument, DocumentBackend

LOGGER = logging.getLogger("pdfcomposex.backends.pypdf")


@dataclass
class PypdfDocument(BackendDocument):
    reader: PdfReader
    name: str = "document"

    def iter_pages(self) -> Iterable[PageObject]:
        for index in range(self.num_pages):
            yield self.get_page(index)

    def get_page(self, index: int) -> PageObject:
        try:
            return self.reader.pages[index]
        except Exception as exc:  # pragma: no cover - dependency exceptions vary
            raise InvalidDocumentError(
                f"Corrupted page {index + 1} in PDF file: {self.name}. Error: {exc}"
            ) from exc

    def page_size(self, index: int) -> Tuple[float, float]:
        box = self.get_page(index).mediabox
        return float(box.width), float(box.height)

    def copy_metadata(self, writer: PdfWriter) -> None:
        try:
            metadata = self.reader.metadata
        except Exception as exc:  # pragma: no cover - dependency exceptions vary
            raise InvalidDocumentError(f"Corrupted metadata in PDF file: {self.name}. Error: {exc}") from exc
        if not metadata:
            return
        cleaned = {
            key: str(value)
            for key, value in metadata.items()
            if isinstance(key, str) and value is not None
        }
        if cleaned:
            writer.add_metadata(cleaned)


class PypdfBackend(DocumentBackend):
    """Backend implementation that uses `pypdf` under the hood."""

    def load(self, data: bytes, name: str = "") -> PypdfDocument:
        label = name or "document"
        try:
            reader = PdfReader(io.BytesIO(data))
        except PdfReadError as exc:
            raise InvalidDocumentError(f"Corrupted or invalid PDF file: {label}. Error: {exc}") from exc
        except Exception as exc:  # pragma: no cover - dependency exceptions vary
            raise InvalidDocumentError(f"Unexpected error reading PDF: {label}. Error: {exc}") from exc

        if reader.is_encrypted:
            LOGGER.debug("Attempting to decrypt encrypted PDF %s", label)
            try:
                decrypted = reader.decrypt("")
            except Exception as exc:
                raise EncryptedDocumentError(f"Encrypted document: {label}. Error: {exc}") from exc
            if decrypted == 0:
                raise EncryptedDocumentError(f"Password protected document: {label}")

        try:
            num_pages = len(reader.pages)
            if num_pages:
                reader.pages[0].mediabox
        except Exception as exc:
            raise InvalidDocumentError(f"Corrupted or invalid PDF file: {label}. Error: {exc}") from exc

        if num_pages == 0:
            raise InvalidDocumentError(f"No pages found in document: {label}")

        return PypdfDocument(num_pages=num_pages, reader=reader, name=label)

    def new_writer(self) -> PdfWriter:
        return PdfWriter()

    def add_page(self, writer: PdfWriter, page: PageObject) -> PageObject:
        # pages are cloned into the writer here, so broken objects surface now
        try:
            return writer.add_page(page)
        except Exception as exc:
            raise InvalidDocumentError(f"Failed to copy page. Error: {exc}") from exc

    def insert_page(self, writer: PdfWriter, page: PageObject, index: int) -> None:
        writer.insert_page(page, index)

    def insert_blank_page(self, writer: PdfWriter, width: float, height: float, index: int) -> None:
        writer.insert_blank_page(width=width, height=height, index=index)

    def writer_pages(self, writer: PdfWriter) -> list:
        return list(writer.pages)

    def page_box(self, page: PageObject) -> Tuple[float, float, float, float]:
        box = page.mediabox
        return float(box.left), float(box.bottom), float(box.width), float(box.height)

    def get_rotation(self, page: PageObject) -> int:
        return int(page.rotation)

    def set_rotation(self, page: PageObject, degrees: int) -> None:
        page[NameObject("/Rotate")] = NumberObject(normalize_angle(degrees))

    def merge_overlay(self, page: PageObject, overlay: bytes) -> None:
        overlay_page = PdfReader(io.BytesIO(overlay)).pages[0]
        page.merge_page(overlay_page)

    def page_text_length(self, page: PageObject) -> int:
        try:
            return len(page.extract_text().strip())
        except Exception as exc:  # pragma: no cover - dependency exceptions vary
            LOGGER.warning("Text extraction failed, treating page as image content: %s", exc)
            return 0

    def set_metadata(self, writer: PdfWriter, metadata: Dict[str, str]) -> None:
        writer.add_metadata(metadata)

    def serialize(self, writer: PdfWriter) -> bytes:
        buffer = io.BytesIO()
        writer.write(buffer)
        return buffer.getvalue()
