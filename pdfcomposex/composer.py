"""Document composition: merge, insert, rotate, compress, watermark, split and numbering."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from PIL import Image

from .backends import Backends
from .config import DEFAULT_CONFIG, ENCODINGS, BASELINE_ENCODING, PipelineConfig, extension_for
from .converter import FormatConverter, compression_scale_for, flatten_onto_background, to_grayscale
from .exceptions import DecodeFailure, PipelineError, ResourceUnavailableError, ValidationError
from .geometry import Point, compute_placements, generate_stamp, resolve_pages, to_bottom_left
from .progress import ProgressReporter
from .types import (
    CompressionSettings,
    InsertOptions,
    MergeSession,
    OutputArtifact,
    PageNumberSpec,
    RenderSurface,
    SourceAsset,
    SplitSpec,
    WatermarkSpec,
)
from .utils import clamp, describe_source, normalize_angle, require_rotation_step

LOGGER = logging.getLogger("pdfcomposex.composer")

_QUARTER_TURNS = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}


def classify_failure(exc: Exception) -> str:
    """Map a decode failure onto a short, user facing reason."""

    message = str(exc)
    lowered = message.lower()
    if "password" in lowered:
        return "password protected"
    if "encrypt" in lowered:
        return "encrypted document"
    return message or "failed to process"


def insertion_index(mode: str, anchor: int, page_count: int) -> int:
    """Return the 0-based insertion index for a 1-based *anchor* page."""

    if mode not in ("before", "after"):
        raise ValidationError(f"Unknown insert mode: {mode}")
    anchor = int(clamp(anchor, 1, max(page_count, 1)))
    index = anchor - 1 if mode == "before" else anchor
    return int(clamp(index, 0, page_count))


def page_label(fmt: str, number: int, total: int, start_from: int = 1) -> str:
    last = total + start_from - 1
    labels = {
        "n": f"{number}",
        "page-n": f"Page {number}",
        "n-of-total": f"{number} of {last}",
        "page-n-of-total": f"Page {number} of {last}",
    }
    try:
        return labels[fmt]
    except KeyError as exc:
        raise ValidationError(f"Unknown page number format: {fmt}") from exc


class DocumentComposer:
    """Page level operations over decoded documents and rasters."""

    def __init__(
        self,
        backends: Optional[Backends] = None,
        config: Optional[PipelineConfig] = None,
        *,
        converter: Optional[FormatConverter] = None,
    ) -> None:
        self.backends = backends or Backends()
        self.config = config or DEFAULT_CONFIG
        self.converter = converter or FormatConverter(self.backends, self.config)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _copy_document(self, asset: SourceAsset) -> Tuple[object, list, object]:
        documents = self.backends.documents
        document = documents.load(asset.data, asset.name)
        writer = documents.new_writer()
        for page in document.iter_pages():
            documents.add_page(writer, page)
        document.copy_metadata(writer)
        return document, documents.writer_pages(writer), writer

    def _encode_like_source(
        self,
        asset: SourceAsset,
        surface: RenderSurface,
        quality: float,
        *,
        prefix: str = "",
        suffix: str = "",
    ) -> OutputArtifact:
        target = asset.media_type if asset.media_type in ENCODINGS else BASELINE_ENCODING
        if not ENCODINGS[target].has_alpha:
            surface = flatten_onto_background(surface)
        try:
            encoded = self.converter.encode(surface, target, quality)
        finally:
            surface.release()
        return OutputArtifact(
            name=f"{prefix}{asset.stem}{suffix}.{extension_for(encoded.media_type)}",
            data=encoded.data,
            media_type=encoded.media_type,
        )

    # ------------------------------------------------------------------
    # Rotate
    # ------------------------------------------------------------------
    async def rotate_document(
        self,
        asset: SourceAsset,
        rotations: Mapping[int, int],
        reporter: ProgressReporter,
    ) -> bytes:
        """Add per-page rotation deltas (0-based page index -> degrees)."""

        deltas = {int(index): require_rotation_step(delta) for index, delta in rotations.items()}

        reporter.report(10, "Loading PDF...")
        _, pages, writer = self._copy_document(asset)

        reporter.report(30, "Applying rotations...")
        documents = self.backends.documents
        for index, delta in sorted(deltas.items()):
            if not 0 <= index < len(pages):
                LOGGER.debug("Ignoring rotation for missing page index %d", index)
                continue
            page = pages[index]
            rotation = normalize_angle(documents.get_rotation(page) + delta)
            documents.set_rotation(page, rotation)
            LOGGER.debug("Page %d rotation set to %d", index + 1, rotation)

        reporter.report(80, "Saving PDF...")
        data = documents.serialize(writer)
        reporter.report(100, "Done")
        return data

    async def rotate_raster(
        self,
        asset: SourceAsset,
        delta: int,
        reporter: ProgressReporter,
        *,
        quality: float = 0.92,
    ) -> OutputArtifact:
        """Rotate a standalone raster clockwise by a multiple of 90 degrees."""

        rotation = normalize_angle(require_rotation_step(delta))
        if rotation == 0:
            return OutputArtifact(name=asset.name, data=asset.data, media_type=asset.media_type)

        reporter.report(20, "Processing Image...")
        surface = self.backends.raster.decode(asset.data)
        try:
            rotated = surface.image.transpose(_QUARTER_TURNS[rotation])
        finally:
            surface.release()
        LOGGER.debug("Rotated %s by %d degrees to %dx%d", asset.name, rotation, rotated.width, rotated.height)

        artifact = self._encode_like_source(
            asset,
            RenderSurface(width=rotated.width, height=rotated.height, image=rotated),
            quality,
            suffix="_rotated",
        )
        reporter.report(100, "Done")
        return artifact

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------
    async def insert_page(
        self,
        base: SourceAsset,
        options: InsertOptions,
        reporter: ProgressReporter,
        *,
        insert: Optional[SourceAsset] = None,
    ) -> bytes:
        documents = self.backends.documents

        reporter.report(5, "Loading base PDF...")
        document, pages, writer = self._copy_document(base)
        index = insertion_index(options.mode, options.anchor, len(pages))

        if options.use_blank_page:
            reporter.report(40, "Creating blank page...")
            width, height = document.page_size(0)
            documents.insert_blank_page(writer, width, height, index)
        else:
            if insert is None:
                raise ValidationError("Insert PDF is missing.")
            reporter.report(30, "Loading insert PDF...")
            source = documents.load(insert.data, insert.name)
            source_index = int(clamp(options.source_page, 1, source.num_pages)) - 1

            reporter.report(60, "Copying page...")
            documents.insert_page(writer, source.get_page(source_index), index)

        LOGGER.info("Inserted page at position %d of %s", index + 1, base.name)
        reporter.report(90, "Saving document...")
        data = documents.serialize(writer)
        reporter.report(100, "Done")
        return data

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------
    async def merge(
        self,
        assets: Sequence[SourceAsset],
        reporter: ProgressReporter,
        *,
        warnings: Optional[List[str]] = None,
    ) -> Tuple[bytes, MergeSession]:
        """Merge *assets* in order, skipping sources that cannot be decoded.

        Failures are recorded on the returned :class:`MergeSession` and as
        human readable entries in *warnings*. The call only fails when no
        source could be merged.
        """

        if not assets:
            raise PipelineError("No input PDFs provided")

        documents = self.backends.documents
        warnings = warnings if warnings is not None else []
        session = MergeSession()

        reporter.report(5, "Initializing PDF engine...")
        writer = documents.new_writer()
        metadata_copied = False
        total = len(assets)

        for index, asset in enumerate(assets):
            reporter.report(10 + index / total * 80, f"Processing file {index + 1} of {total}: {asset.name}")
            try:
                document = documents.load(asset.data, asset.name)
                # copy into a private writer first so a source that breaks
                # half way leaves nothing behind in the merged document
                staging = documents.new_writer()
                staged = [documents.add_page(staging, page) for page in document.iter_pages()]
                if not metadata_copied:
                    document.copy_metadata(writer)
            except DecodeFailure as exc:
                reason = classify_failure(exc)
                LOGGER.warning("Error merging %s: %s", describe_source(asset), exc)
                session.record_failure(asset.id, reason)
                warnings.append(f"{describe_source(asset)}: {reason}")
            else:
                for page in staged:
                    session.accumulated_pages.append(documents.add_page(writer, page))
                metadata_copied = True
                session.record_success(asset.id)
                LOGGER.debug("Added %d page(s) from %s", len(staged), asset.name)

            await reporter.checkpoint(index, self.config.merge_yield_every)

        if session.success_count == 0:
            LOGGER.error("Merge failed: none of %d sources could be read", total)
            raise PipelineError(
                "Failed to merge any files. All selected files were corrupted or password protected."
            )

        reporter.report(95, "Finalizing merged document...")
        data = documents.serialize(writer)
        LOGGER.info(
            "Merged %d of %d PDFs (%d pages)",
            session.success_count,
            total,
            len(session.accumulated_pages),
        )
        reporter.report(100, "Done")
        return data, session

    # ------------------------------------------------------------------
    # Compress
    # ------------------------------------------------------------------
    async def compress_document(
        self,
        asset: SourceAsset,
        settings: CompressionSettings,
        reporter: ProgressReporter,
    ) -> bytes:
        """Shrink a document losslessly (``structure``) or by re-rendering pages (``image``)."""

        if settings.mode == "structure":
            return await self._compress_structure(asset, settings, reporter)
        if settings.mode == "image":
            return await self._compress_pages(asset, settings, reporter)
        raise ValidationError(f"Invalid compression mode: {settings.mode}")

    async def _compress_structure(
        self,
        asset: SourceAsset,
        settings: CompressionSettings,
        reporter: ProgressReporter,
    ) -> bytes:
        reporter.report(10, "Loading file into memory...")
        optimizer = self.backends.require_optimizer()

        reporter.report(30, "Analyzing structure...")
        if settings.flatten_forms:
            reporter.report(40, "Flattening form fields...")
        reporter.report(60, "Optimizing object streams...")
        data = optimizer.optimize(
            asset.data,
            strip_metadata=not settings.preserve_metadata,
            flatten_forms=settings.flatten_forms,
            producer=self.config.producer,
        )
        LOGGER.info("Rewrote %s from %d to %d bytes", asset.name, len(asset.data), len(data))
        reporter.report(100, "Done")
        return data

    async def _compress_pages(
        self,
        asset: SourceAsset,
        settings: CompressionSettings,
        reporter: ProgressReporter,
    ) -> bytes:
        documents = self.backends.documents

        reporter.report(5, "Initializing hybrid engine...")
        source = documents.load(asset.data, asset.name)
        rendered = self.backends.require_rasterizer().open(asset.data)
        builder = self.backends.canvas.image_document()
        # None keeps the source page, an int points into the builder
        layout: List[Optional[int]] = []
        total = source.num_pages

        try:
            for index in range(total):
                progress = index / total * 90
                page = source.get_page(index)
                if settings.auto_detect_text and documents.page_text_length(page) > self.config.text_page_threshold:
                    reporter.report(progress, f"Page {index + 1}: Text detected - Preserving quality...")
                    layout.append(None)
                else:
                    reporter.report(progress, f"Page {index + 1}: Compressing image content...")
                    width, height = rendered.page_size(index)
                    scale = compression_scale_for(width, height, settings.max_resolution, self.config)
                    surface = rendered.render(index, scale, alpha=False)
                    try:
                        if settings.grayscale:
                            surface = to_grayscale(surface)
                        encoded = self.backends.raster.encode(surface, "image/jpeg", settings.quality)
                    finally:
                        surface.release()
                    if encoded.media_type != "image/jpeg":
                        raise ResourceUnavailableError("JPEG encoding is not available")
                    layout.append(builder.page_count)
                    builder.add_encoded(encoded.data, width, height)
                    LOGGER.debug("Page %d of %s rendered at scale %.3f", index + 1, asset.name, scale)
                await reporter.checkpoint(index + 1, self.config.compress_yield_every)
        finally:
            rendered.close()

        reporter.report(92, "Assembling document...")
        raster_pages = documents.load(builder.finish(), asset.name) if builder.page_count else None
        writer = documents.new_writer()
        for index, position in enumerate(layout):
            if position is None:
                documents.add_page(writer, source.get_page(index))
            else:
                documents.add_page(writer, raster_pages.get_page(position))

        if settings.preserve_metadata:
            source.copy_metadata(writer)
        else:
            documents.set_metadata(writer, {"/Producer": self.config.producer, "/Creator": self.config.producer})

        reporter.report(95, "Finalizing PDF...")
        data = documents.serialize(writer)
        LOGGER.info(
            "Compressed %s: %d of %d pages rasterized, %d to %d bytes",
            asset.name,
            builder.page_count,
            total,
            len(asset.data),
            len(data),
        )
        reporter.report(100, "Done")
        return data

    # ------------------------------------------------------------------
    # Watermark
    # ------------------------------------------------------------------
    async def watermark_document(
        self,
        asset: SourceAsset,
        spec: WatermarkSpec,
        reporter: ProgressReporter,
    ) -> bytes:
        documents = self.backends.documents
        canvas = self.backends.canvas

        reporter.report(5, "Loading PDF...")
        _, pages, writer = self._copy_document(asset)
        total = len(pages)
        targets = resolve_pages(total, spec.page_selector.mode, spec.page_selector.range_expr)

        reporter.report(15, "Generating stamp...")
        oversampling = self.config.oversampling
        stamp = generate_stamp(spec, oversampling, margin=self.config.stamp_margin)
        # placed footprint matches the requested size, not the oversampled one
        draw_width = stamp.width / oversampling
        draw_height = stamp.height / oversampling

        overlays: Dict[Tuple[float, float, float, float], bytes] = {}
        try:
            for index, page in enumerate(pages):
                await reporter.checkpoint(index, self.config.stamp_yield_every)
                if index not in targets:
                    continue

                reporter.report(20 + index / total * 75, f"Stamping page {index + 1} of {total}...")
                box = documents.page_box(page)
                if box not in overlays:
                    left, bottom, width, height = box
                    placements = compute_placements(
                        spec.anchor,
                        width,
                        height,
                        draw_width,
                        draw_height,
                        padding=self.config.placement_padding,
                        rows=spec.grid_rows,
                        cols=spec.grid_cols,
                    )
                    positions = [
                        Point(left + point.x, bottom + point.y)
                        for point in (to_bottom_left(p, height, draw_height) for p in placements)
                    ]
                    overlays[box] = canvas.stamp_overlay(
                        left + width, bottom + height, stamp.image, positions, draw_width, draw_height
                    )
                documents.merge_overlay(page, overlays[box])
        finally:
            stamp.release()

        reporter.report(98, "Finalizing PDF...")
        data = documents.serialize(writer)
        LOGGER.info("Watermarked %d of %d pages of %s", len(targets), total, asset.name)
        reporter.report(100, "Done")
        return data

    async def watermark_raster(
        self,
        asset: SourceAsset,
        spec: WatermarkSpec,
        reporter: ProgressReporter,
        *,
        quality: float = 0.9,
    ) -> OutputArtifact:
        reporter.report(20, "Loading image...")
        surface = self.backends.raster.decode(asset.data)
        try:
            reporter.report(40, "Generating stamp...")
            responsive_scale = 1 + surface.width / 2000
            stamp = generate_stamp(spec, responsive_scale, margin=self.config.stamp_margin)
            try:
                placements = compute_placements(
                    spec.anchor,
                    surface.width,
                    surface.height,
                    stamp.width,
                    stamp.height,
                    padding=self.config.placement_padding,
                    rows=spec.grid_rows,
                    cols=spec.grid_cols,
                )
                reporter.report(60, "Applying watermark...")
                for point in placements:
                    surface.image.paste(stamp.image, (int(round(point.x)), int(round(point.y))), stamp.image)
            finally:
                stamp.release()
        except Exception:
            surface.release()
            raise

        reporter.report(90, "Encoding image...")
        artifact = self._encode_like_source(asset, surface, quality, prefix="watermarked_")
        reporter.report(100, "Done")
        return artifact

    # ------------------------------------------------------------------
    # Split
    # ------------------------------------------------------------------
    async def split(self, asset: SourceAsset, spec: SplitSpec, reporter: ProgressReporter) -> bytes:
        """Keep (``extract``) or drop (``remove``) the selected pages."""

        if spec.mode not in ("extract", "remove"):
            raise ValidationError(f"Unknown split mode: {spec.mode}")

        documents = self.backends.documents
        reporter.report(10, "Loading PDF...")
        document = documents.load(asset.data, asset.name)
        total = document.num_pages
        selected = resolve_pages(total, spec.page_selector.mode, spec.page_selector.range_expr)
        keep = sorted(selected) if spec.mode == "extract" else [i for i in range(total) if i not in selected]
        if not keep:
            raise ValidationError("No pages selected to keep.")

        reporter.report(30, "Creating new document...")
        writer = documents.new_writer()
        document.copy_metadata(writer)

        reporter.report(50, f"Extracting {len(keep)} pages...")
        for position, index in enumerate(keep):
            documents.add_page(writer, document.get_page(index))
            await reporter.checkpoint(position + 1, self.config.split_yield_every)

        reporter.report(90, "Saving file...")
        data = documents.serialize(writer)
        LOGGER.info("Kept %d of %d pages of %s", len(keep), total, asset.name)
        reporter.report(100, "Done")
        return data

    # ------------------------------------------------------------------
    # Page numbers
    # ------------------------------------------------------------------
    async def add_page_numbers(self, asset: SourceAsset, spec: PageNumberSpec, reporter: ProgressReporter) -> bytes:
        documents = self.backends.documents
        canvas = self.backends.canvas

        reporter.report(5, "Loading document...")
        _, pages, writer = self._copy_document(asset)
        total = len(pages)
        text_height = canvas.text_height(spec.font_size)

        for index, page in enumerate(pages):
            if spec.skip_first and index == 0:
                continue
            if index % self.config.numbering_yield_every == 0:
                reporter.report(10 + index / total * 80, f"Numbering page {index + 1} of {total}...")
                await reporter.checkpoint()

            text = page_label(spec.format, index + spec.start_from, total, spec.start_from)
            text_width = canvas.text_width(text, spec.font_size)
            left, bottom, width, height = documents.page_box(page)

            if "left" in spec.position:
                x = spec.margin
            elif "right" in spec.position:
                x = width - spec.margin - text_width
            else:
                x = width / 2 - text_width / 2
            y = height - spec.margin - text_height if spec.position.startswith("top") else spec.margin

            overlay = canvas.text_overlay(left + width, bottom + height, text, left + x, bottom + y, spec.font_size)
            documents.merge_overlay(page, overlay)

        reporter.report(95, "Saving document...")
        data = documents.serialize(writer)
        reporter.report(100, "Done")
        return data


__all__ = [
    "DocumentComposer",
    "classify_failure",
    "insertion_index",
    "page_label",
]
