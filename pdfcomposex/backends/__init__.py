"""Backend abstractions for pdfcomposex."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..exceptions import ResourceUnavailableError
from .base import (
    BackendDocument,
    CanvasBackend,
    DocumentBackend,
    DocumentOptimizer,
    ImageDocumentBuilder,
    RasterCodec,
    RasterDocument,
    Rasterizer,
)
from .pillow_backend import PillowCodec
from .pypdf_backend import PypdfBackend, PypdfDocument
from .reportlab_backend import ReportlabCanvasBackend

_PYMUPDF_MISSING = "PDF rendering requires PyMuPDF. Install it with 'pip install pymupdf'."


def load_default_rasterizer() -> Rasterizer:
    """Return the PyMuPDF rasterizer, failing fast when it is not installed."""

    try:
        from .pymupdf_backend import PyMuPDFRasterizer
    except ImportError as exc:
        raise ResourceUnavailableError(_PYMUPDF_MISSING) from exc
    return PyMuPDFRasterizer()


def load_default_optimizer() -> DocumentOptimizer:
    """Return the PyMuPDF structural optimizer, failing fast when it is not installed."""

    try:
        from .pymupdf_backend import PyMuPDFOptimizer
    except ImportError as exc:
        raise ResourceUnavailableError(_PYMUPDF_MISSING) from exc
    return PyMuPDFOptimizer()


@dataclass
class Backends:
    """Codec capabilities injected into the converter and composer."""

    raster: RasterCodec = field(default_factory=PillowCodec)
    documents: DocumentBackend = field(default_factory=PypdfBackend)
    canvas: CanvasBackend = field(default_factory=ReportlabCanvasBackend)
    rasterizer: Optional[Rasterizer] = None
    optimizer: Optional[DocumentOptimizer] = None

    def require_rasterizer(self) -> Rasterizer:
        if self.rasterizer is None:
            self.rasterizer = load_default_rasterizer()
        return self.rasterizer

    def require_optimizer(self) -> DocumentOptimizer:
        if self.optimizer is None:
            self.optimizer = load_default_optimizer()
        return self.optimizer


__all__ = [
    "Backends",
    "BackendDocument",
    "CanvasBackend",
    "DocumentBackend",
    "DocumentOptimizer",
    "ImageDocumentBuilder",
    "PillowCodec",
    "PypdfBackend",
    "PypdfDocument",
    "RasterCodec",
    "RasterDocument",
    "Rasterizer",
    "ReportlabCanvasBackend",
    "load_default_optimizer",
    "load_default_rasterizer",
]
