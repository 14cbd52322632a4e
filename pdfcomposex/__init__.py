"""
PDFComposeX - In-memory document composition pipeline.

Converts between raster images and PDF documents and composes documents:
merge, page insertion, rotation, text watermarks, page extraction, page
numbering, PDF compression and image optimization. Every operation works
on bytes and reports progress through callbacks; a run produces one file, or
a ZIP archive when several files result.

Quick Start:
    >>> from pdfcomposex import ConversionRequest, convert_files
    >>> result = convert_files([ConversionRequest(data, target="image/png", name="a.pdf")])
    >>> result.bundle.primary.name
    'a.png'

Main Entry Points:
    - run_pipeline: Async entry point for every tool
    - convert_files, merge_documents, insert_page, rotate_document,
      watermark_document, split_document, add_page_numbers,
      compress_documents, optimize_images: sync wrappers

Exceptions:
    - PDFComposeXError: Base exception
    - ValidationError, UnsupportedMediaError, DecodeFailure,
      ResourceUnavailableError, PipelineError, OperationCancelledError

For CLI usage, use the 'pdfcomposex' command after installation.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, Optional, Union

# Core pipeline
from pdfcomposex.pipeline import PipelineContext, ToolRegistry, register_tool, registry, run_pipeline
from pdfcomposex.progress import CancellationToken, ProgressReporter
from pdfcomposex.backends import Backends
from pdfcomposex.config import DEFAULT_CONFIG, PipelineConfig

# Data types
from pdfcomposex.types import (
    CompressionSettings,
    ConversionRequest,
    InsertOptions,
    MediaKind,
    OptimizationSettings,
    OutputArtifact,
    OutputBundle,
    PageNumberSpec,
    PageSelector,
    PipelineResult,
    PipelineSettings,
    SizeStats,
    SplitSpec,
    WatermarkSpec,
)

# Exceptions
from pdfcomposex.exceptions import (
    DecodeFailure,
    EncryptedDocumentError,
    InvalidDocumentError,
    InvalidRasterError,
    OperationCancelledError,
    PageOutOfBoundsError,
    PDFComposeXError,
    PipelineError,
    ResourceUnavailableError,
    UnsupportedMediaError,
    ValidationError,
)

# Utility functions
from pdfcomposex.geometry import format_page_ranges, resolve_pages
from pdfcomposex.utils import format_file_size

__version__ = "1.0.0"
__license__ = "MIT"

Source = Union[bytes, ConversionRequest]


def _requests(sources: Iterable[Source], target: Optional[str] = None) -> list[ConversionRequest]:
    requests = []
    for index, source in enumerate(sources, start=1):
        if isinstance(source, ConversionRequest):
            requests.append(source)
        else:
            requests.append(ConversionRequest(data=source, target=target, name=f"file_{index}"))
    return requests


def _run(tool: str, sources: Iterable[Source], settings: PipelineSettings, **kwargs: Any) -> PipelineResult:
    return asyncio.run(run_pipeline(tool, _requests(sources), settings, **kwargs))


def convert_files(
    requests: Iterable[ConversionRequest],
    *,
    quality: float = 0.92,
    merge: bool = False,
    page_selector: Optional[PageSelector] = None,
    **kwargs: Any,
) -> PipelineResult:
    """Convenience wrapper around the convert tool."""

    settings = PipelineSettings(quality=quality, merge_flag=merge, page_selector=page_selector)
    return _run("convert", requests, settings, **kwargs)


def merge_documents(sources: Iterable[Source], **kwargs: Any) -> PipelineResult:
    """Convenience wrapper around the merge tool."""

    return _run("merge", sources, PipelineSettings(), **kwargs)


def insert_page(
    base: Source,
    insert: Optional[Source] = None,
    *,
    options: Optional[InsertOptions] = None,
    **kwargs: Any,
) -> PipelineResult:
    """Convenience wrapper around the insert tool."""

    options = options or InsertOptions(use_blank_page=insert is None)
    sources = [base] if insert is None else [base, insert]
    return _run("insert", sources, PipelineSettings(insert_options=options), **kwargs)


def rotate_document(sources: Iterable[Source], rotations: Dict[int, int], **kwargs: Any) -> PipelineResult:
    """Convenience wrapper around the rotate tool (1-based page -> degrees)."""

    return _run("rotate", sources, PipelineSettings(rotation_deltas=dict(rotations)), **kwargs)


def watermark_document(sources: Iterable[Source], spec: WatermarkSpec, **kwargs: Any) -> PipelineResult:
    """Convenience wrapper around the watermark tool."""

    return _run("watermark", sources, PipelineSettings(watermark=spec), **kwargs)


def split_document(sources: Iterable[Source], spec: SplitSpec, **kwargs: Any) -> PipelineResult:
    """Convenience wrapper around the split tool."""

    return _run("split", sources, PipelineSettings(split=spec), **kwargs)


def compress_documents(
    sources: Iterable[Source],
    settings: Optional[CompressionSettings] = None,
    **kwargs: Any,
) -> PipelineResult:
    """Convenience wrapper around the compress tool; ``result.stats`` holds the sizes."""

    return _run("compress", sources, PipelineSettings(compression=settings), **kwargs)


def optimize_images(
    sources: Iterable[Source],
    settings: Optional[OptimizationSettings] = None,
    **kwargs: Any,
) -> PipelineResult:
    """Convenience wrapper around the optimize tool; ``result.stats`` holds the sizes."""

    return _run("optimize", sources, PipelineSettings(optimization=settings), **kwargs)


def add_page_numbers(
    sources: Iterable[Source],
    spec: Optional[PageNumberSpec] = None,
    **kwargs: Any,
) -> PipelineResult:
    """Convenience wrapper around the page-numbers tool."""

    return _run("page-numbers", sources, PipelineSettings(page_numbers=spec), **kwargs)


__all__ = [
    # Pipeline
    "run_pipeline",
    "PipelineContext",
    "ToolRegistry",
    "registry",
    "register_tool",
    "CancellationToken",
    "ProgressReporter",
    "Backends",
    "PipelineConfig",
    "DEFAULT_CONFIG",
    # Convenience wrappers
    "convert_files",
    "merge_documents",
    "insert_page",
    "rotate_document",
    "watermark_document",
    "split_document",
    "add_page_numbers",
    "compress_documents",
    "optimize_images",
    # Data types
    "CompressionSettings",
    "ConversionRequest",
    "InsertOptions",
    "MediaKind",
    "OptimizationSettings",
    "OutputArtifact",
    "OutputBundle",
    "PageNumberSpec",
    "PageSelector",
    "PipelineResult",
    "PipelineSettings",
    "SizeStats",
    "SplitSpec",
    "WatermarkSpec",
    # Exceptions
    "PDFComposeXError",
    "ValidationError",
    "PageOutOfBoundsError",
    "UnsupportedMediaError",
    "DecodeFailure",
    "InvalidDocumentError",
    "EncryptedDocumentError",
    "InvalidRasterError",
    "ResourceUnavailableError",
    "PipelineError",
    "OperationCancelledError",
    # Utility functions
    "resolve_pages",
    "format_page_ranges",
    "format_file_size",
    # Version info
    "__version__",
]
