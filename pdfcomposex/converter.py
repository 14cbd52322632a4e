"""Format conversion between raster encodings and paginated documents."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from PIL import Image

from .backends import Backends
from .config import DEFAULT_CONFIG, ENCODING_FALLBACKS, ENCODINGS, PipelineConfig, extension_for
from .exceptions import DecodeFailure, PipelineError, UnsupportedMediaError
from .geometry import resolve_pages
from .progress import ProgressReporter
from .types import (
    EncodedImage,
    EncodingFallback,
    OptimizationSettings,
    OutputArtifact,
    PDF_MEDIA_TYPE,
    PageSelector,
    RenderSurface,
    SourceAsset,
)
from .utils import describe_source

LOGGER = logging.getLogger("pdfcomposex.converter")

ItemCallback = Callable[[int], None]


def render_scale_for(
    page_width: float,
    page_height: float,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> float:
    """Return the render scale for a page, capped so no side exceeds the ceiling."""

    scale = config.render_scale
    width, height = page_width * scale, page_height * scale
    if width > config.max_dimension or height > config.max_dimension:
        scale *= min(config.max_dimension / width, config.max_dimension / height)
    return scale


def flatten_onto_background(surface: RenderSurface, color: str = "#ffffff") -> RenderSurface:
    """Composite *surface* onto an opaque background and release the original."""

    if surface.image is None or surface.image.mode == "RGB":
        return surface
    background = Image.new("RGB", (surface.width, surface.height), color)
    background.paste(surface.image, mask=surface.image.getchannel("A"))
    surface.release()
    return RenderSurface(width=background.width, height=background.height, image=background)


def compression_scale_for(
    page_width: float,
    page_height: float,
    max_resolution: float,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> float:
    """Return the render scale that fits the longer page side to *max_resolution*.

    The scale is clamped to ``[compress_min_scale, compress_max_scale]`` and
    then reduced so neither side exceeds ``compress_max_canvas`` pixels.
    """

    scale = max_resolution / max(page_width, page_height)
    scale = min(max(scale, config.compress_min_scale), config.compress_max_scale)
    width, height = page_width * scale, page_height * scale
    if width > config.compress_max_canvas or height > config.compress_max_canvas:
        scale *= min(config.compress_max_canvas / width, config.compress_max_canvas / height)
    return scale


def to_grayscale(surface: RenderSurface) -> RenderSurface:
    """Convert *surface* to luminance (ITU-R 601-2 weights) and release the original."""

    if surface.image is None or surface.image.mode == "L":
        return surface
    gray = surface.image.convert("L")
    surface.release()
    return RenderSurface(width=gray.width, height=gray.height, image=gray)


def optimize_target_for(source_media_type: str, target_format: str) -> str:
    """Resolve ``original`` to a concrete encoding; JPEG unless the source keeps alpha."""

    if target_format != "original":
        return target_format
    if source_media_type in ("image/png", "image/webp", "image/avif"):
        return source_media_type
    return "image/jpeg"


class FormatConverter:
    """Converts rasters and documents; collects encoding substitutions."""

    def __init__(self, backends: Optional[Backends] = None, config: Optional[PipelineConfig] = None) -> None:
        self.backends = backends or Backends()
        self.config = config or DEFAULT_CONFIG
        self.fallbacks: List[EncodingFallback] = []

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------
    @staticmethod
    def check_target(media_type: str) -> str:
        if media_type not in ENCODINGS:
            raise UnsupportedMediaError(f"Unsupported target format: {media_type}")
        return media_type

    def encode(self, surface: RenderSurface, media_type: str, quality: float) -> EncodedImage:
        """Encode *surface*, walking the declared fallback chain on substitution.

        Each candidate in ``[media_type, *ENCODING_FALLBACKS[media_type]]`` is
        tried until the encoder produces exactly the candidate; if none match,
        the last substitute is accepted.
        """

        self.check_target(media_type)
        attempted = media_type
        result = self.backends.raster.encode(surface, attempted, quality)
        for candidate in ENCODING_FALLBACKS.get(media_type, ()):
            if result.media_type == attempted:
                break
            LOGGER.debug("Requested %s but encoder produced %s", attempted, result.media_type)
            attempted = candidate
            result = self.backends.raster.encode(surface, attempted, quality)

        if result.media_type != media_type:
            LOGGER.info("Encoding %s unavailable, produced %s", media_type, result.media_type)
            self.fallbacks.append(EncodingFallback(requested=media_type, produced=result.media_type))
        return result

    def _prepare(self, surface: RenderSurface, media_type: str) -> RenderSurface:
        if not ENCODINGS[media_type].has_alpha:
            return flatten_onto_background(surface)
        return surface

    # ------------------------------------------------------------------
    # Raster -> raster
    # ------------------------------------------------------------------
    async def convert_raster(self, asset: SourceAsset, target: str, quality: float) -> OutputArtifact:
        self.check_target(target)
        surface = self.backends.raster.decode(asset.data)
        try:
            surface = self._prepare(surface, target)
            encoded = self.encode(surface, target, quality)
        finally:
            surface.release()

        LOGGER.debug("Converted %s to %s", asset.name, encoded.media_type)
        return OutputArtifact(
            name=f"{asset.stem}.{extension_for(encoded.media_type)}",
            data=encoded.data,
            media_type=encoded.media_type,
        )

    # ------------------------------------------------------------------
    # Raster -> smaller raster
    # ------------------------------------------------------------------
    async def optimize_raster(self, asset: SourceAsset, settings: OptimizationSettings) -> OutputArtifact:
        """Re-encode a raster, shrinking it to ``max_width`` when it is wider."""

        target = self.check_target(optimize_target_for(asset.media_type, settings.target_format))
        surface = self.backends.raster.decode(asset.data)
        try:
            if settings.max_width > 0 and surface.width > settings.max_width:
                height = max(1, round(surface.height * settings.max_width / surface.width))
                resized = surface.image.resize((settings.max_width, height), Image.LANCZOS)
                surface.release()
                surface = RenderSurface(width=resized.width, height=resized.height, image=resized)
            surface = self._prepare(surface, target)
            encoded = self.encode(surface, target, settings.quality)
        finally:
            surface.release()

        LOGGER.debug(
            "Optimized %s from %d to %d bytes as %s",
            asset.name,
            len(asset.data),
            len(encoded.data),
            encoded.media_type,
        )
        return OutputArtifact(
            name=f"{asset.stem}_optimized.{extension_for(encoded.media_type)}",
            data=encoded.data,
            media_type=encoded.media_type,
        )

    # ------------------------------------------------------------------
    # Raster -> paginated
    # ------------------------------------------------------------------
    async def rasters_to_document(
        self,
        assets: Sequence[SourceAsset],
        reporter: ProgressReporter,
        *,
        warnings: Optional[List[str]] = None,
        on_item_start: Optional[ItemCallback] = None,
        on_item_done: Optional[ItemCallback] = None,
    ) -> bytes:
        """Embed each raster as one page sized to its pixel dimensions.

        When *warnings* is given, undecodable rasters are recorded there and
        skipped; otherwise the first failure is raised.
        """

        if not assets:
            raise PipelineError("No images to convert")

        builder = self.backends.canvas.image_document()
        total = len(assets)
        for index, asset in enumerate(assets):
            if total > 1:
                reporter.report(index / total * 100, f"Processing image {index + 1}/{total}...")
            if on_item_start is not None:
                on_item_start(index)

            try:
                surface = self.backends.raster.decode(asset.data)
            except DecodeFailure as exc:
                if warnings is None:
                    raise
                LOGGER.warning("Skipping %s: %s", describe_source(asset), exc)
                warnings.append(f"{describe_source(asset)}: {exc.message}")
            else:
                try:
                    builder.add_surface(surface)
                finally:
                    surface.release()
                LOGGER.debug("Embedded %s as page %d", asset.name, builder.page_count)

            if on_item_done is not None:
                on_item_done(index)
            if total > 5:
                await reporter.checkpoint(index, self.config.embed_yield_every)

        if builder.page_count == 0:
            raise PipelineError("Failed to convert any images. All selected files were corrupted.")
        return builder.finish()

    async def convert_raster_to_document(self, asset: SourceAsset, reporter: ProgressReporter) -> OutputArtifact:
        data = await self.rasters_to_document([asset], reporter)
        return OutputArtifact(name=f"{asset.stem}.pdf", data=data, media_type=PDF_MEDIA_TYPE)

    # ------------------------------------------------------------------
    # Paginated -> raster
    # ------------------------------------------------------------------
    async def document_to_rasters(
        self,
        asset: SourceAsset,
        target: str,
        quality: float,
        reporter: ProgressReporter,
        *,
        selector: Optional[PageSelector] = None,
    ) -> List[OutputArtifact]:
        """Render the selected pages of *asset*, one artifact per page."""

        self.check_target(target)
        rasterizer = self.backends.require_rasterizer()
        alpha = ENCODINGS[target].has_alpha

        document = rasterizer.open(asset.data)
        results: List[OutputArtifact] = []
        try:
            total = document.page_count
            if selector is None:
                indices = list(range(total))
            else:
                indices = sorted(resolve_pages(total, selector.mode, selector.range_expr))

            for position, index in enumerate(indices):
                reporter.report(position / max(len(indices), 1) * 100, f"Rendering page {index + 1} of {total}...")
                scale = render_scale_for(*document.page_size(index), config=self.config)
                surface = document.render(index, scale, alpha)
                try:
                    encoded = self.encode(surface, target, quality)
                finally:
                    surface.release()

                extension = extension_for(encoded.media_type)
                name = f"{asset.stem}.{extension}" if total == 1 else f"{asset.stem}_page_{index + 1}.{extension}"
                results.append(OutputArtifact(name=name, data=encoded.data, media_type=encoded.media_type))
                await reporter.checkpoint(position + 1, self.config.render_yield_every)
        finally:
            document.close()

        LOGGER.info("Rendered %d page(s) of %s to %s", len(results), asset.name, target)
        return results


__all__ = [
    "FormatConverter",
    "compression_scale_for",
    "flatten_onto_background",
    "optimize_target_for",
    "render_scale_for",
    "to_grayscale",
]
