"""
Type definitions and dataclasses for pdfcomposex.

This module defines data structures used throughout the library. Page
numbers carried by user-facing options are 1-based; everything resolved
internally (page index sets, rotation maps) is 0-based.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional

if TYPE_CHECKING:  # pragma: no cover
    from PIL import Image


class MediaKind(str, Enum):
    """The two families of media handled by the pipeline."""

    RASTER = "raster"
    PAGINATED = "paginated"


PDF_MEDIA_TYPE = "application/pdf"
ZIP_MEDIA_TYPE = "application/zip"

PageSelectMode = Literal["all", "odd", "even", "custom"]
Anchor = Literal[
    "top-left",
    "top-center",
    "top-right",
    "middle-left",
    "center",
    "middle-right",
    "bottom-left",
    "bottom-center",
    "bottom-right",
    "tiled",
]
ItemStatus = Literal["processing", "done"]


@dataclass(frozen=True)
class SourceAsset:
    """
    A caller-owned input file.

    Attributes:
        id: Stable identifier, also used in warnings
        media_kind: Raster or paginated
        data: Raw file bytes
        name: Declared file name (used to derive output names)
        media_type: Detected MIME type of ``data``
    """

    id: str
    media_kind: MediaKind
    data: bytes
    name: str
    media_type: str

    @property
    def stem(self) -> str:
        return self.name.split(".")[0] or "file"


@dataclass(frozen=True)
class ConversionTask:
    """One requested output for a :class:`SourceAsset`."""

    source_id: str
    target_media_kind: MediaKind
    target_encoding: Optional[str] = None
    order: int = 0


@dataclass(frozen=True)
class ConversionRequest:
    """Caller-facing description of one item submitted to the pipeline."""

    data: bytes
    media_kind: Optional[MediaKind] = None
    target: Optional[str] = None
    name: str = "file"


@dataclass(frozen=True)
class PageSelector:
    """Page selection resolved against a page count at use time."""

    mode: PageSelectMode = "all"
    range_expr: str = ""


@dataclass(frozen=True)
class WatermarkSpec:
    """Styling and placement of a text watermark."""

    text: str
    font_family: str = "DejaVuSans"
    font_size: float = 48
    bold: bool = False
    italic: bool = False
    color: str = "#ff0000"
    opacity: float = 0.5
    rotation_degrees: float = 0
    anchor: Anchor = "center"
    page_selector: PageSelector = field(default_factory=PageSelector)
    grid_rows: int = 4
    grid_cols: int = 3


@dataclass(frozen=True)
class InsertOptions:
    """Where and what to insert into a document."""

    mode: Literal["before", "after"] = "after"
    anchor: int = 1
    use_blank_page: bool = True
    source_page: int = 1


@dataclass(frozen=True)
class PageNumberSpec:
    """Page number stamping options."""

    position: Literal[
        "top-left", "top-center", "top-right", "bottom-left", "bottom-center", "bottom-right"
    ] = "bottom-center"
    margin: float = 20
    font_size: float = 12
    format: Literal["n", "page-n", "n-of-total", "page-n-of-total"] = "n"
    start_from: int = 1
    skip_first: bool = False


@dataclass(frozen=True)
class SplitSpec:
    """Keep (``extract``) or drop (``remove``) the selected pages."""

    mode: Literal["extract", "remove"] = "extract"
    page_selector: PageSelector = field(default_factory=PageSelector)


@dataclass(frozen=True)
class CompressionSettings:
    """
    PDF compression options.

    ``structure`` rewrites the document losslessly; ``image`` re-renders
    pages as JPEG, keeping text heavy pages as vectors when
    ``auto_detect_text`` is set.
    """

    mode: Literal["structure", "image"] = "image"
    quality: float = 0.8
    max_resolution: int = 2000
    grayscale: bool = False
    flatten_forms: bool = False
    preserve_metadata: bool = False
    auto_detect_text: bool = True


@dataclass(frozen=True)
class OptimizationSettings:
    """Raster re-encoding options; ``original`` keeps the source encoding."""

    target_format: str = "original"
    quality: float = 0.8
    max_width: int = 0


@dataclass
class PipelineSettings:
    """Per-call settings record shared by every tool."""

    quality: float = 0.92
    merge_flag: bool = False
    watermark: Optional[WatermarkSpec] = None
    page_selector: Optional[PageSelector] = None
    rotation_deltas: Optional[Dict[int, int]] = None
    insert_options: Optional[InsertOptions] = None
    page_numbers: Optional[PageNumberSpec] = None
    split: Optional[SplitSpec] = None
    compression: Optional[CompressionSettings] = None
    optimization: Optional[OptimizationSettings] = None


@dataclass
class RenderSurface:
    """
    Ephemeral pixel buffer.

    A surface is owned by the operation that allocated it and must be
    released right after its one encode/decode use, so that multi-page loops
    never hold more than one page worth of pixels.
    """

    width: int
    height: int
    image: Optional["Image.Image"]

    def release(self) -> None:
        if self.image is not None:
            self.image.close()
            self.image = None

    def __enter__(self) -> "RenderSurface":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()


@dataclass(frozen=True)
class EncodedImage:
    """Bytes produced by a raster encoder and the encoding actually used."""

    data: bytes
    media_type: str


@dataclass(frozen=True)
class EncodingFallback:
    """Record of a requested encoding that was substituted."""

    requested: str
    produced: str


@dataclass
class MergeSession:
    """Accumulated state of a merge across sources."""

    accumulated_pages: List[Any] = field(default_factory=list)
    outcomes: Dict[str, Optional[str]] = field(default_factory=dict)

    def record_success(self, source_id: str) -> None:
        self.outcomes[source_id] = None

    def record_failure(self, source_id: str, reason: str) -> None:
        self.outcomes[source_id] = reason

    @property
    def success_count(self) -> int:
        return sum(1 for reason in self.outcomes.values() if reason is None)

    @property
    def failures(self) -> Dict[str, str]:
        return {key: reason for key, reason in self.outcomes.items() if reason is not None}


@dataclass(frozen=True)
class OutputArtifact:
    """A produced file."""

    name: str
    data: bytes
    media_type: str


@dataclass
class OutputBundle:
    """
    Final output of a run.

    Attributes:
        artifacts: Produced files, in production order (names are unique)
        packaging: ``single`` for one artifact, ``archive`` otherwise
        archive: The ZIP artifact when ``packaging == "archive"``
    """

    artifacts: List[OutputArtifact]
    packaging: Literal["single", "archive"] = "single"
    archive: Optional[OutputArtifact] = None

    @property
    def primary(self) -> OutputArtifact:
        """The artifact a caller should hand to the user."""
        if self.packaging == "archive" and self.archive is not None:
            return self.archive
        return self.artifacts[0]


@dataclass(frozen=True)
class ProgressEvent:
    """One progress notification."""

    percent: int
    step_label: str
    item_index: Optional[int] = None
    item_status: Optional[ItemStatus] = None


@dataclass
class SizeStats:
    """Total input and output sizes of a size reducing run."""

    original_size: int = 0
    compressed_size: int = 0

    def add(self, original: int, compressed: int) -> None:
        self.original_size += original
        self.compressed_size += compressed

    @property
    def bytes_saved(self) -> int:
        return max(self.original_size - self.compressed_size, 0)

    @property
    def compression_ratio(self) -> float:
        if self.original_size == 0:
            return 1.0
        return self.compressed_size / self.original_size


@dataclass
class PipelineResult:
    """Result of a pipeline run."""

    bundle: OutputBundle
    warnings: List[str] = field(default_factory=list)
    fallbacks: List[EncodingFallback] = field(default_factory=list)
    stats: Optional[SizeStats] = None

    def __str__(self) -> str:
        return "PipelineResult(packaging={packaging}, artifacts={count}, warnings={warnings})".format(
            packaging=self.bundle.packaging,
            count=len(self.bundle.artifacts),
            warnings=len(self.warnings),
        )
