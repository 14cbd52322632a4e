"""Backend protocols for codec and rendering operations.

The pipeline never talks to a codec library directly: rasters go through a
:class:`RasterCodec`, paginated documents through a :class:`DocumentBackend`
and :class:`CanvasBackend`, page rendering through a :class:`Rasterizer`
and structural compression through a :class:`DocumentOptimizer`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterable, Protocol, Sequence, Tuple

from ..types import EncodedImage, RenderSurface

if TYPE_CHECKING:  # pragma: no cover
    from PIL import Image

    from ..geometry import Point


@dataclass
class BackendDocument:
    """Represents a decoded paginated document with backend-specific helpers."""

    num_pages: int

    def iter_pages(self) -> Iterable[object]:
        raise NotImplementedError

    def get_page(self, index: int) -> object:
        raise NotImplementedError

    def page_size(self, index: int) -> Tuple[float, float]:
        raise NotImplementedError

    def copy_metadata(self, writer: object) -> None:
        raise NotImplementedError


class RasterCodec(Protocol):
    """Decoder/encoder for single bitmap encodings."""

    def decode(self, data: bytes) -> RenderSurface:
        """Decode *data* into a freshly allocated surface."""

    def supports(self, media_type: str) -> bool:
        """Return ``True`` if *media_type* can be produced natively."""

    def encode(self, surface: RenderSurface, media_type: str, quality: float) -> EncodedImage:
        """Encode *surface*; the result reports the encoding actually produced."""


class DocumentBackend(Protocol):
    """Decoder/encoder for paginated documents."""

    def load(self, data: bytes, name: str = "") -> BackendDocument:
        """Decode *data*, raising a :class:`~pdfcomposex.exceptions.DecodeFailure`."""

    def new_writer(self) -> object:
        """Return a backend writer instance."""

    def add_page(self, writer: object, page: object) -> object:
        """Append *page* to *writer* and return the writer-owned page."""

    def insert_page(self, writer: object, page: object, index: int) -> None:
        """Insert *page* at *index*."""

    def insert_blank_page(self, writer: object, width: float, height: float, index: int) -> None:
        """Insert an empty page of the given size at *index*."""

    def writer_pages(self, writer: object) -> list:
        """Return the pages currently held by *writer*."""

    def page_box(self, page: object) -> Tuple[float, float, float, float]:
        """Return ``(left, bottom, width, height)`` of the page in document units."""

    def get_rotation(self, page: object) -> int:
        """Return the stored rotation of *page* in degrees."""

    def set_rotation(self, page: object, degrees: int) -> None:
        """Store a normalised rotation on *page*."""

    def merge_overlay(self, page: object, overlay: bytes) -> None:
        """Draw the first page of the *overlay* document over *page*."""

    def page_text_length(self, page: object) -> int:
        """Return the number of extractable text characters on *page*."""

    def set_metadata(self, writer: object, metadata: Dict[str, str]) -> None:
        """Write document information entries such as ``/Producer``."""

    def serialize(self, writer: object) -> bytes:
        """Persist a writer to bytes."""


class CanvasBackend(Protocol):
    """Vector canvas used to build image pages and overlays."""

    def image_document(self) -> "ImageDocumentBuilder":
        """Return a builder that embeds one raster per page."""

    def stamp_overlay(
        self,
        width: float,
        height: float,
        image: "Image.Image",
        positions: Sequence["Point"],
        draw_width: float,
        draw_height: float,
    ) -> bytes:
        """Return a one page document with *image* drawn at each bottom-left *position*."""

    def text_overlay(self, width: float, height: float, text: str, x: float, y: float, font_size: float) -> bytes:
        """Return a one page document with *text* drawn at ``(x, y)``."""

    def text_width(self, text: str, font_size: float) -> float:
        """Return the advance width of *text*."""

    def text_height(self, font_size: float) -> float:
        """Return the ascent-to-descent height of the overlay font."""


class ImageDocumentBuilder(Protocol):
    page_count: int

    def add_surface(self, surface: RenderSurface) -> None:
        """Append one page sized to the surface (1 px = 1 unit)."""

    def add_encoded(self, data: bytes, width: float, height: float) -> None:
        """Append a page of the given size filled by already encoded JPEG *data*."""

    def finish(self) -> bytes:
        """Return the serialized document."""


class RasterDocument(Protocol):
    """An opened document ready for page rendering."""

    page_count: int

    def page_size(self, index: int) -> Tuple[float, float]:
        """Return the displayed page size in document units."""

    def render(self, index: int, scale: float, alpha: bool) -> RenderSurface:
        """Rasterize page *index* into a new surface."""

    def close(self) -> None:
        """Release the native document."""


class Rasterizer(Protocol):
    """Renders paginated documents into pixels."""

    def open(self, data: bytes) -> RasterDocument:
        """Open *data* for rendering."""


class DocumentOptimizer(Protocol):
    """Lossless structural rewrite of a whole document."""

    def optimize(self, data: bytes, *, strip_metadata: bool, flatten_forms: bool, producer: str) -> bytes:
        """Return *data* rewritten with compressed streams and object streams."""
