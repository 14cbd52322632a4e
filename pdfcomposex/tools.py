"""Built-in pipeline tools."""

from __future__ import annotations

import logging
from typing import Dict, List

from .composer import classify_failure
from .config import ENCODINGS
from .exceptions import DecodeFailure, PageOutOfBoundsError, UnsupportedMediaError, ValidationError
from .pipeline import BaseTool, register_tool
from .planner import plan_tasks
from .progress import ProgressReporter
from .types import (
    CompressionSettings,
    ConversionTask,
    InsertOptions,
    MediaKind,
    OptimizationSettings,
    OutputArtifact,
    PDF_MEDIA_TYPE,
    PageNumberSpec,
    PageSelector,
    SizeStats,
    SourceAsset,
    SplitSpec,
)
from .utils import describe_source

LOGGER = logging.getLogger("pdfcomposex.tools")

MERGED_IMAGES_NAME = "merged_images.pdf"
MERGED_DOCUMENT_NAME = "merged.pdf"


def _pdf(name: str, data: bytes) -> List[OutputArtifact]:
    return [OutputArtifact(name=name, data=data, media_type=PDF_MEDIA_TYPE)]


def _require_paginated(asset: SourceAsset) -> None:
    if asset.media_kind != MediaKind.PAGINATED:
        raise UnsupportedMediaError(f"{describe_source(asset)} is not a PDF document")


@register_tool("convert")
class ConvertTool(BaseTool):
    """Convert every source to its requested target, optionally merging rasters."""

    def _tasks(self) -> List[ConversionTask]:
        tasks: List[ConversionTask] = []
        for order, (asset, request) in enumerate(zip(self.context.assets, self.context.requests)):
            target = request.target
            if not target:
                raise ValidationError(f"No target format given for {describe_source(asset)}")
            if target == PDF_MEDIA_TYPE:
                tasks.append(ConversionTask(asset.id, MediaKind.PAGINATED, PDF_MEDIA_TYPE, order))
            elif target in ENCODINGS:
                tasks.append(ConversionTask(asset.id, MediaKind.RASTER, target, order))
            else:
                raise UnsupportedMediaError(f"Unsupported target format: {target}")
        return tasks

    async def _convert_one(
        self,
        task: ConversionTask,
        asset: SourceAsset,
        passthrough: bool,
        reporter: ProgressReporter,
    ) -> List[OutputArtifact]:
        converter = self.context.converter
        settings = self.context.settings

        if passthrough:
            return [OutputArtifact(name=asset.name, data=asset.data, media_type=asset.media_type)]
        if task.target_media_kind == MediaKind.PAGINATED:
            return [await converter.convert_raster_to_document(asset, reporter)]
        if asset.media_kind == MediaKind.PAGINATED:
            return await converter.document_to_rasters(
                asset,
                task.target_encoding,
                settings.quality,
                reporter,
                selector=settings.page_selector,
            )
        return [await converter.convert_raster(asset, task.target_encoding, settings.quality)]

    async def run(self) -> List[OutputArtifact]:
        context = self.context
        reporter = context.reporter
        assets: Dict[str, SourceAsset] = {asset.id: asset for asset in context.assets}

        plan = plan_tasks(self._tasks(), assets, merge_flag=context.settings.merge_flag)
        batch = plan.total > 1
        results: List[OutputArtifact] = []

        reporter.report(5, "Initializing...")

        if plan.merge_group:
            group = [assets[task.source_id] for task in plan.merge_group]
            orders = [task.order for task in plan.merge_group]
            reporter.report(10, f"Merging {len(group)} images to PDF...")
            data = await context.converter.rasters_to_document(
                group,
                reporter.scoped(10, 40),
                warnings=context.warnings,
                on_item_start=lambda index: reporter.item(orders[index], "processing"),
                on_item_done=lambda index: reporter.item(orders[index], "done"),
            )
            results.extend(_pdf(MERGED_IMAGES_NAME, data))

        start, span = (50, 40) if plan.merge_group else (5, 85)
        count = len(plan.individual)
        for position, task in enumerate(plan.individual):
            asset = assets[task.source_id]
            reporter.item(task.order, "processing")
            reporter.report(start + position / count * span, f"Converting {asset.name}...")
            try:
                results.extend(
                    await self._convert_one(
                        task,
                        asset,
                        plan.is_passthrough(task),
                        reporter.scoped(start + position / count * span, span / count),
                    )
                )
            except DecodeFailure as exc:
                if not batch:
                    raise
                LOGGER.warning("Failed to convert %s: %s", describe_source(asset), exc)
                context.warnings.append(f"{describe_source(asset)}: {classify_failure(exc)}")
            reporter.item(task.order, "done")
            await reporter.checkpoint()

        reporter.report(95, "Finalizing...")
        return results


@register_tool("merge")
class MergeTool(BaseTool):
    """Concatenate all sources into one document."""

    strict_sources = False

    async def run(self) -> List[OutputArtifact]:
        context = self.context
        for asset in context.assets:
            _require_paginated(asset)
        data, session = await context.composer.merge(
            context.assets,
            context.reporter.scoped(0, 95),
            warnings=context.warnings,
        )
        LOGGER.debug("Merge outcomes: %s", session.outcomes)
        return _pdf(MERGED_DOCUMENT_NAME, data)


@register_tool("insert")
class InsertTool(BaseTool):
    """Insert a blank page, or a page of a second source, into the first source."""

    async def run(self) -> List[OutputArtifact]:
        context = self.context
        base = context.assets[0]
        _require_paginated(base)
        options = context.settings.insert_options or InsertOptions()

        insert = None
        if not options.use_blank_page:
            if len(context.assets) < 2:
                raise ValidationError("Insert PDF is missing.")
            insert = context.assets[1]
            _require_paginated(insert)

        data = await context.composer.insert_page(
            base, options, context.reporter.scoped(0, 95), insert=insert
        )
        return _pdf(f"{base.stem}_inserted.pdf", data)


@register_tool("rotate")
class RotateTool(BaseTool):
    """Rotate document pages by 1-based page number, or whole rasters."""

    async def run(self) -> List[OutputArtifact]:
        deltas = self.context.settings.rotation_deltas or {}
        if not deltas:
            raise ValidationError("No rotations given")
        if any(int(page) < 1 for page in deltas):
            raise PageOutOfBoundsError("Page numbers start at 1")
        rotations = {int(page) - 1: delta for page, delta in deltas.items()}
        composer = self.context.composer

        async def handle(asset: SourceAsset, reporter: ProgressReporter) -> List[OutputArtifact]:
            if asset.media_kind == MediaKind.RASTER:
                return [
                    await composer.rotate_raster(
                        asset, deltas.get(1, 0), reporter, quality=self.context.settings.quality
                    )
                ]
            data = await composer.rotate_document(asset, rotations, reporter)
            return _pdf(f"{asset.stem}_rotated.pdf", data)

        return await self.each_asset(handle)


@register_tool("compress")
class CompressTool(BaseTool):
    """Shrink documents by structural rewrite or page re-rendering."""

    async def run(self) -> List[OutputArtifact]:
        settings = self.context.settings.compression or CompressionSettings()
        composer = self.context.composer
        stats = self.context.stats = SizeStats()

        async def handle(asset: SourceAsset, reporter: ProgressReporter) -> List[OutputArtifact]:
            _require_paginated(asset)
            data = await composer.compress_document(asset, settings, reporter)
            stats.add(len(asset.data), len(data))
            return _pdf(f"compressed_{asset.stem}.pdf", data)

        return await self.each_asset(handle)


@register_tool("optimize")
class OptimizeTool(BaseTool):
    """Re-encode rasters, optionally resized, and report the size change."""

    async def run(self) -> List[OutputArtifact]:
        settings = self.context.settings.optimization or OptimizationSettings(
            quality=self.context.settings.quality
        )
        converter = self.context.converter
        stats = self.context.stats = SizeStats()

        async def handle(asset: SourceAsset, reporter: ProgressReporter) -> List[OutputArtifact]:
            if asset.media_kind != MediaKind.RASTER:
                raise UnsupportedMediaError(f"{describe_source(asset)} is not an image")
            reporter.report(0, f"Compressing {asset.name}...")
            artifact = await converter.optimize_raster(asset, settings)
            stats.add(len(asset.data), len(artifact.data))
            return [artifact]

        return await self.each_asset(handle)


@register_tool("watermark")
class WatermarkTool(BaseTool):
    """Stamp a text watermark onto documents and rasters."""

    async def run(self) -> List[OutputArtifact]:
        spec = self.context.settings.watermark
        if spec is None:
            raise ValidationError("Watermark settings are missing")
        composer = self.context.composer

        async def handle(asset: SourceAsset, reporter: ProgressReporter) -> List[OutputArtifact]:
            if asset.media_kind == MediaKind.RASTER:
                return [
                    await composer.watermark_raster(
                        asset, spec, reporter, quality=self.context.settings.quality
                    )
                ]
            data = await composer.watermark_document(asset, spec, reporter)
            return _pdf(f"watermarked_{asset.stem}.pdf", data)

        return await self.each_asset(handle)


@register_tool("split")
class SplitTool(BaseTool):
    """Extract or remove a page selection from each document."""

    async def run(self) -> List[OutputArtifact]:
        settings = self.context.settings
        spec = settings.split or SplitSpec(page_selector=settings.page_selector or PageSelector())
        composer = self.context.composer

        async def handle(asset: SourceAsset, reporter: ProgressReporter) -> List[OutputArtifact]:
            _require_paginated(asset)
            data = await composer.split(asset, spec, reporter)
            suffix = "extracted" if spec.mode == "extract" else "trimmed"
            return _pdf(f"{asset.stem}_{suffix}.pdf", data)

        return await self.each_asset(handle)


@register_tool("page-numbers")
class PageNumbersTool(BaseTool):
    """Stamp page numbers onto each document."""

    async def run(self) -> List[OutputArtifact]:
        spec = self.context.settings.page_numbers or PageNumberSpec()
        composer = self.context.composer

        async def handle(asset: SourceAsset, reporter: ProgressReporter) -> List[OutputArtifact]:
            _require_paginated(asset)
            data = await composer.add_page_numbers(asset, spec, reporter)
            return _pdf(f"{asset.stem}_numbered.pdf", data)

        return await self.each_asset(handle)


__all__ = [
    "ConvertTool",
    "MergeTool",
    "InsertTool",
    "RotateTool",
    "CompressTool",
    "OptimizeTool",
    "WatermarkTool",
    "SplitTool",
    "PageNumbersTool",
]
