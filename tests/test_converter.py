from __future__ import annotations

import asyncio
import io
from typing import Callable

import pytest
from PIL import Image
from pypdf import PdfReader

from pdfcomposex.backends import Backends, PillowCodec
from pdfcomposex.config import PipelineConfig
from pdfcomposex.converter import (
    FormatConverter,
    compression_scale_for,
    flatten_onto_background,
    optimize_target_for,
    render_scale_for,
)
from pdfcomposex.exceptions import InvalidRasterError, PipelineError, UnsupportedMediaError
from pdfcomposex.progress import ProgressReporter
from pdfcomposex.types import EncodedImage, OptimizationSettings, PageSelector, RenderSurface, SourceAsset


class LimitedCodec(PillowCodec):
    """Pillow codec that pretends only some encodings are writable."""

    def __init__(self, writable: set[str]) -> None:
        self.writable = writable
        self.requests: list[str] = []

    def encode(self, surface: RenderSurface, media_type: str, quality: float) -> EncodedImage:
        self.requests.append(media_type)
        produced = media_type if media_type in self.writable else "image/png"
        return super().encode(surface, produced, quality)


def _surface(mode: str = "RGB") -> RenderSurface:
    image = Image.new(mode, (8, 4), (10, 20, 30, 0) if mode == "RGBA" else (10, 20, 30))
    return RenderSurface(width=8, height=4, image=image)


def test_render_scale_targets_300_dpi() -> None:
    assert render_scale_for(612, 792) == pytest.approx(300 / 72)


def test_render_scale_is_capped_at_max_dimension() -> None:
    scale = render_scale_for(2000, 1000)
    assert 2000 * scale == pytest.approx(4096)
    assert 1000 * scale < 4096

    custom = render_scale_for(100, 100, PipelineConfig(max_dimension=200))
    assert 100 * custom == pytest.approx(200)


def test_fallback_chain_records_substitution() -> None:
    codec = LimitedCodec({"image/webp", "image/png"})
    converter = FormatConverter(Backends(raster=codec))

    encoded = converter.encode(_surface(), "image/avif", 0.8)

    assert codec.requests == ["image/avif", "image/webp"]
    assert encoded.media_type == "image/webp"
    assert [(f.requested, f.produced) for f in converter.fallbacks] == [("image/avif", "image/webp")]


def test_fallback_chain_ends_at_baseline() -> None:
    codec = LimitedCodec({"image/png"})
    converter = FormatConverter(Backends(raster=codec))

    encoded = converter.encode(_surface(), "image/avif", 0.8)

    assert codec.requests == ["image/avif", "image/webp", "image/png"]
    assert encoded.media_type == "image/png"
    assert converter.fallbacks[0].produced == "image/png"


def test_supported_encoding_records_no_fallback() -> None:
    converter = FormatConverter()

    encoded = converter.encode(_surface(), "image/png", 0.9)

    assert encoded.media_type == "image/png"
    assert converter.fallbacks == []


def test_unknown_target_is_rejected() -> None:
    with pytest.raises(UnsupportedMediaError):
        FormatConverter().encode(_surface(), "image/tiff", 0.9)


def test_flatten_onto_background_drops_alpha() -> None:
    flattened = flatten_onto_background(_surface("RGBA"))
    try:
        assert flattened.image.mode == "RGB"
        assert flattened.image.getpixel((0, 0)) == (255, 255, 255)
    finally:
        flattened.release()


def test_convert_raster_to_jpeg(asset_factory: Callable[..., SourceAsset], image_factory: Callable[..., bytes]) -> None:
    asset = asset_factory(image_factory(mode="RGBA", color=(255, 0, 0, 128)), "photo.png", "image/png")

    artifact = asyncio.run(FormatConverter().convert_raster(asset, "image/jpeg", 0.8))

    assert artifact.name == "photo.jpg"
    assert artifact.media_type == "image/jpeg"
    with Image.open(io.BytesIO(artifact.data)) as image:
        assert image.format == "JPEG"
        assert image.size == (40, 20)


def test_raster_to_document_page_matches_pixel_size(
    asset_factory: Callable[..., SourceAsset],
    png_bytes: bytes,
) -> None:
    asset = asset_factory(png_bytes, "scan.png", "image/png")

    artifact = asyncio.run(FormatConverter().convert_raster_to_document(asset, ProgressReporter()))

    reader = PdfReader(io.BytesIO(artifact.data))
    assert artifact.name == "scan.pdf"
    assert len(reader.pages) == 1
    assert float(reader.pages[0].mediabox.width) == pytest.approx(40)
    assert float(reader.pages[0].mediabox.height) == pytest.approx(20)


def test_rasters_to_document_skips_corrupt_sources(
    asset_factory: Callable[..., SourceAsset],
    png_bytes: bytes,
    jpeg_bytes: bytes,
    corrupt_bytes: bytes,
) -> None:
    assets = [
        asset_factory(png_bytes, "a.png", "image/png", "1"),
        asset_factory(corrupt_bytes, "b.png", "image/png", "2"),
        asset_factory(jpeg_bytes, "c.jpg", "image/jpeg", "3"),
    ]
    warnings: list[str] = []

    data = asyncio.run(FormatConverter().rasters_to_document(assets, ProgressReporter(), warnings=warnings))

    reader = PdfReader(io.BytesIO(data))
    assert len(reader.pages) == 2
    assert float(reader.pages[1].mediabox.height) == pytest.approx(60)
    assert len(warnings) == 1
    assert warnings[0].startswith("source 2 (b.png)")


def test_rasters_to_document_raises_without_warning_sink(
    asset_factory: Callable[..., SourceAsset],
    corrupt_bytes: bytes,
) -> None:
    asset = asset_factory(corrupt_bytes, "b.png", "image/png")
    with pytest.raises(InvalidRasterError):
        asyncio.run(FormatConverter().rasters_to_document([asset], ProgressReporter()))


def test_rasters_to_document_all_corrupt(
    asset_factory: Callable[..., SourceAsset],
    corrupt_bytes: bytes,
) -> None:
    assets = [asset_factory(corrupt_bytes, f"{i}.png", "image/png", str(i)) for i in range(2)]
    with pytest.raises(PipelineError):
        asyncio.run(FormatConverter().rasters_to_document(assets, ProgressReporter(), warnings=[]))


def test_document_to_rasters_one_image_per_page(
    asset_factory: Callable[..., SourceAsset],
    pdf_factory: Callable[..., bytes],
) -> None:
    asset = asset_factory(pdf_factory(pages=3, width=72, height=144), "report.pdf")

    artifacts = asyncio.run(FormatConverter().document_to_rasters(asset, "image/png", 0.9, ProgressReporter()))

    assert [a.name for a in artifacts] == ["report_page_1.png", "report_page_2.png", "report_page_3.png"]
    with Image.open(io.BytesIO(artifacts[0].data)) as image:
        width, height = image.size
        assert abs(width - 300) <= 1
        assert abs(height - 600) <= 1


def test_document_to_rasters_respects_selector(
    asset_factory: Callable[..., SourceAsset],
    pdf_factory: Callable[..., bytes],
) -> None:
    asset = asset_factory(pdf_factory(pages=5, width=36, height=36), "report.pdf")

    artifacts = asyncio.run(
        FormatConverter().document_to_rasters(
            asset,
            "image/jpeg",
            0.9,
            ProgressReporter(),
            selector=PageSelector(mode="even"),
        )
    )

    assert [a.name for a in artifacts] == ["report_page_2.jpg", "report_page_4.jpg"]


def test_single_page_document_keeps_stem(
    asset_factory: Callable[..., SourceAsset],
    pdf_factory: Callable[..., bytes],
) -> None:
    asset = asset_factory(pdf_factory(pages=1, width=36, height=36), "cover.pdf")

    artifacts = asyncio.run(FormatConverter().document_to_rasters(asset, "image/png", 0.9, ProgressReporter()))

    assert [a.name for a in artifacts] == ["cover.png"]


def test_compression_scale_fits_longer_side() -> None:
    assert compression_scale_for(612, 792, 2000) == pytest.approx(2000 / 792)
    assert compression_scale_for(100, 100, 2000) == pytest.approx(4.0)


def test_compression_scale_respects_canvas_ceiling() -> None:
    scale = compression_scale_for(20000, 10000, 2000)
    assert 20000 * scale == pytest.approx(3000)

    custom = compression_scale_for(400, 400, 4000, PipelineConfig(compress_max_canvas=1000))
    assert 400 * custom == pytest.approx(1000)


def test_optimize_target_for_original() -> None:
    assert optimize_target_for("image/png", "original") == "image/png"
    assert optimize_target_for("image/webp", "original") == "image/webp"
    assert optimize_target_for("image/bmp", "original") == "image/jpeg"
    assert optimize_target_for("image/png", "image/jpeg") == "image/jpeg"


def test_optimize_raster_shrinks_to_max_width(
    asset_factory: Callable[..., SourceAsset],
    image_factory: Callable[..., bytes],
) -> None:
    asset = asset_factory(image_factory(width=400, height=200), "photo.png", "image/png")

    artifact = asyncio.run(FormatConverter().optimize_raster(asset, OptimizationSettings(max_width=100)))

    assert artifact.name == "photo_optimized.png"
    assert artifact.media_type == "image/png"
    with Image.open(io.BytesIO(artifact.data)) as image:
        assert image.format == "PNG"
        assert image.size == (100, 50)


def test_optimize_raster_keeps_narrow_images(
    asset_factory: Callable[..., SourceAsset],
    jpeg_bytes: bytes,
) -> None:
    asset = asset_factory(jpeg_bytes, "scan.jpg", "image/jpeg")

    artifact = asyncio.run(FormatConverter().optimize_raster(asset, OptimizationSettings(quality=0.5, max_width=100)))

    assert artifact.name == "scan_optimized.jpg"
    with Image.open(io.BytesIO(artifact.data)) as image:
        assert image.size == (30, 60)


def test_optimize_raster_turns_bitmaps_into_jpeg(
    asset_factory: Callable[..., SourceAsset],
    image_factory: Callable[..., bytes],
) -> None:
    asset = asset_factory(image_factory(fmt="BMP"), "icon.bmp", "image/bmp")

    artifact = asyncio.run(FormatConverter().optimize_raster(asset, OptimizationSettings()))

    assert artifact.name == "icon_optimized.jpg"
    assert artifact.media_type == "image/jpeg"
    assert len(artifact.data) < len(asset.data)
