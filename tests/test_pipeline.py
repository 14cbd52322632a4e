from __future__ import annotations

import asyncio
import io
import zipfile
from typing import Callable

import pytest
from pypdf import PdfReader

import pdfcomposex
from pdfcomposex import backends as backends_module
from pdfcomposex.backends import Backends, PillowCodec
from pdfcomposex.exceptions import (
    InvalidDocumentError,
    OperationCancelledError,
    PageOutOfBoundsError,
    PipelineError,
    ResourceUnavailableError,
    UnsupportedMediaError,
    ValidationError,
)
from pdfcomposex.pipeline import BaseTool, PipelineContext, ToolRegistry, registry, run_pipeline
from pdfcomposex.progress import CancellationToken
from pdfcomposex.types import (
    CompressionSettings,
    ConversionRequest,
    EncodingFallback,
    InsertOptions,
    MediaKind,
    OptimizationSettings,
    PageNumberSpec,
    PageSelector,
    PipelineSettings,
    SplitSpec,
    WatermarkSpec,
)


def _run(tool: str, requests, settings=None, **kwargs):
    return asyncio.run(run_pipeline(tool, requests, settings, **kwargs))


def test_builtin_tools_are_registered() -> None:
    pdfcomposex.pipeline.load_builtin_tools()
    assert set(registry.names()) >= {
        "convert",
        "merge",
        "insert",
        "rotate",
        "compress",
        "optimize",
        "watermark",
        "split",
        "page-numbers",
    }


def test_registry_rejects_duplicates_and_unknown_tools() -> None:
    local = ToolRegistry()
    local.register("noop", BaseTool)
    with pytest.raises(ValueError):
        local.register("noop", BaseTool)
    with pytest.raises(KeyError):
        local.create("missing", PipelineContext(assets=[]))


def test_unknown_tool() -> None:
    with pytest.raises(KeyError):
        _run("sign", [ConversionRequest(b"%PDF-1.4")])


def test_zero_inputs_fail() -> None:
    with pytest.raises(PipelineError):
        _run("convert", [])


def test_single_item_produces_single_artifact(png_bytes: bytes) -> None:
    result = _run("convert", [ConversionRequest(png_bytes, target="application/pdf", name="scan.png")])

    assert result.bundle.packaging == "single"
    assert result.bundle.primary.name == "scan.pdf"
    assert result.warnings == []


def test_multiple_items_produce_archive_with_unique_names(png_bytes: bytes) -> None:
    requests = [ConversionRequest(png_bytes, target="image/jpeg", name="same.png") for _ in range(3)]

    result = _run("convert", requests)

    assert result.bundle.packaging == "archive"
    assert result.bundle.primary.name == "converted_files.zip"
    names = [artifact.name for artifact in result.bundle.artifacts]
    assert len(names) == 3 and len(set(names)) == 3
    with zipfile.ZipFile(io.BytesIO(result.bundle.archive.data)) as archive:
        assert sorted(archive.namelist()) == sorted(names)


def test_merge_flag_combines_rasters(png_bytes: bytes, jpeg_bytes: bytes) -> None:
    requests = [
        ConversionRequest(png_bytes, target="application/pdf", name="a.png"),
        ConversionRequest(jpeg_bytes, target="application/pdf", name="b.jpg"),
    ]
    seen: list[int] = []
    statuses: list[tuple[int, str]] = []

    result = _run(
        "convert",
        requests,
        PipelineSettings(merge_flag=True),
        on_progress=lambda percent, label: seen.append(percent),
        on_item_status=lambda index, status: statuses.append((index, status)),
    )

    assert result.bundle.primary.name == "merged_images.pdf"
    assert len(PdfReader(io.BytesIO(result.bundle.primary.data)).pages) == 2
    assert seen == sorted(seen)
    assert seen[-1] == 100
    assert statuses == [(0, "processing"), (0, "done"), (1, "processing"), (1, "done")]


def test_mixed_batch_merges_rasters_and_converts_rest(
    png_bytes: bytes,
    jpeg_bytes: bytes,
    pdf_factory: Callable[..., bytes],
) -> None:
    requests = [
        ConversionRequest(png_bytes, target="application/pdf", name="a.png"),
        ConversionRequest(pdf_factory(pages=1, width=36, height=36), target="image/png", name="doc.pdf"),
        ConversionRequest(jpeg_bytes, target="application/pdf", name="b.jpg"),
    ]

    result = _run("convert", requests, PipelineSettings(merge_flag=True))

    names = [artifact.name for artifact in result.bundle.artifacts]
    assert names == ["merged_images.pdf", "doc.png"]


def test_passthrough_copies_source(pdf_factory: Callable[..., bytes]) -> None:
    data = pdf_factory(pages=2)

    result = _run("convert", [ConversionRequest(data, target="application/pdf", name="doc.pdf")])

    assert result.bundle.primary.data == data


def test_batch_decode_failure_becomes_warning(png_bytes: bytes, encrypted_pdf: bytes) -> None:
    requests = [
        ConversionRequest(png_bytes, target="image/jpeg", name="a.png"),
        ConversionRequest(encrypted_pdf, target="image/png", name="locked.pdf"),
    ]

    result = _run("convert", requests)

    assert result.bundle.packaging == "single"
    assert result.bundle.primary.name == "a.jpg"
    assert result.warnings == ["source 2 (locked.pdf): password protected"]


def test_single_decode_failure_raises(encrypted_pdf: bytes) -> None:
    with pytest.raises(pdfcomposex.EncryptedDocumentError):
        _run("convert", [ConversionRequest(encrypted_pdf, target="image/png", name="locked.pdf")])


def test_unsupported_source_is_rejected(corrupt_bytes: bytes) -> None:
    with pytest.raises(UnsupportedMediaError):
        _run("convert", [ConversionRequest(corrupt_bytes, target="image/png")])


def test_declared_kind_must_match_content(png_bytes: bytes) -> None:
    request = ConversionRequest(png_bytes, media_kind=MediaKind.PAGINATED, target="application/pdf")
    with pytest.raises(UnsupportedMediaError):
        _run("convert", [request])


def test_missing_target_is_rejected(png_bytes: bytes) -> None:
    with pytest.raises(ValidationError):
        _run("convert", [ConversionRequest(png_bytes)])


def test_missing_rasterizer_is_reported(monkeypatch: pytest.MonkeyPatch, pdf_factory: Callable[..., bytes]) -> None:
    def unavailable():
        raise ResourceUnavailableError()

    monkeypatch.setattr(backends_module, "load_default_rasterizer", unavailable)

    with pytest.raises(ResourceUnavailableError):
        _run("convert", [ConversionRequest(pdf_factory(), target="image/png", name="doc.pdf")])


def test_cancellation_returns_no_output(png_bytes: bytes) -> None:
    token = CancellationToken()
    requests = [ConversionRequest(png_bytes, target="image/jpeg", name=f"{i}.png") for i in range(3)]

    def cancel_after_first(index: int, status: str) -> None:
        if status == "done":
            token.cancel()

    with pytest.raises(OperationCancelledError):
        _run("convert", requests, on_item_status=cancel_after_first, cancel_token=token)


def test_merge_tool_warns_about_corrupted_source(
    pdf_factory: Callable[..., bytes],
    corrupt_bytes: bytes,
) -> None:
    requests = [
        ConversionRequest(pdf_factory(pages=1), name="a.pdf"),
        ConversionRequest(corrupt_bytes, name="b.pdf"),
        ConversionRequest(pdf_factory(pages=2), name="c.pdf"),
    ]

    result = _run("merge", requests)

    assert len(PdfReader(io.BytesIO(result.bundle.primary.data)).pages) == 3
    assert len(result.warnings) == 1
    assert result.warnings[0].startswith("source 2 (b.pdf)")


def test_merge_tool_all_corrupted(corrupt_bytes: bytes) -> None:
    with pytest.raises(PipelineError):
        _run("merge", [ConversionRequest(corrupt_bytes, name="a.pdf"), ConversionRequest(corrupt_bytes, name="b.pdf")])


def test_insert_tool(pdf_factory: Callable[..., bytes]) -> None:
    settings = PipelineSettings(insert_options=InsertOptions(mode="before", anchor=1))

    result = _run("insert", [ConversionRequest(pdf_factory(pages=5), name="base.pdf")], settings)

    assert result.bundle.primary.name == "base_inserted.pdf"
    assert len(PdfReader(io.BytesIO(result.bundle.primary.data)).pages) == 6


def test_rotate_tool_uses_one_based_pages(pdf_factory: Callable[..., bytes]) -> None:
    settings = PipelineSettings(rotation_deltas={1: 90, 3: 180})

    result = _run("rotate", [ConversionRequest(pdf_factory(pages=3), name="doc.pdf")], settings)

    reader = PdfReader(io.BytesIO(result.bundle.primary.data))
    assert [page.rotation for page in reader.pages] == [90, 0, 180]


def test_rotate_tool_rejects_page_zero(pdf_factory: Callable[..., bytes]) -> None:
    settings = PipelineSettings(rotation_deltas={0: 90})
    with pytest.raises(PageOutOfBoundsError):
        _run("rotate", [ConversionRequest(pdf_factory(pages=2), name="doc.pdf")], settings)


def test_compress_tool_reports_sizes(pdf_factory: Callable[..., bytes]) -> None:
    source = pdf_factory(pages=4, title="Draft")
    settings = PipelineSettings(compression=CompressionSettings(mode="structure"))

    result = _run("compress", [ConversionRequest(source, name="report.pdf")], settings)

    assert result.bundle.primary.name == "compressed_report.pdf"
    assert result.stats.original_size == len(source)
    assert result.stats.compressed_size == len(result.bundle.primary.data)
    assert result.stats.bytes_saved == max(len(source) - len(result.bundle.primary.data), 0)
    assert len(PdfReader(io.BytesIO(result.bundle.primary.data)).pages) == 4


def test_compress_tool_rejects_images(png_bytes: bytes) -> None:
    with pytest.raises(UnsupportedMediaError):
        _run("compress", [ConversionRequest(png_bytes, name="scan.png")])


def test_optimize_tool_batch_collects_stats(png_bytes: bytes, jpeg_bytes: bytes) -> None:
    settings = PipelineSettings(optimization=OptimizationSettings(quality=0.5))
    requests = [
        ConversionRequest(png_bytes, name="a.png"),
        ConversionRequest(jpeg_bytes, name="b.jpg"),
    ]

    result = _run("optimize", requests, settings)

    assert result.bundle.packaging == "archive"
    assert [a.name for a in result.bundle.artifacts] == ["a_optimized.png", "b_optimized.jpg"]
    assert result.stats.original_size == len(png_bytes) + len(jpeg_bytes)
    assert result.stats.compressed_size == sum(len(a.data) for a in result.bundle.artifacts)


def test_optimize_tool_rejects_documents(pdf_factory: Callable[..., bytes]) -> None:
    with pytest.raises(UnsupportedMediaError):
        _run("optimize", [ConversionRequest(pdf_factory(), name="doc.pdf")])


def test_watermark_tool_handles_mixed_sources(png_bytes: bytes, pdf_factory: Callable[..., bytes]) -> None:
    settings = PipelineSettings(watermark=WatermarkSpec(text="DRAFT", font_size=10))
    requests = [
        ConversionRequest(pdf_factory(pages=2), name="doc.pdf"),
        ConversionRequest(png_bytes, name="img.png"),
    ]

    result = _run("watermark", requests, settings)

    assert [a.name for a in result.bundle.artifacts] == ["watermarked_doc.pdf", "watermarked_img.png"]


def test_watermark_tool_requires_spec(png_bytes: bytes) -> None:
    with pytest.raises(ValidationError):
        _run("watermark", [ConversionRequest(png_bytes, name="img.png")])


def test_split_tool_uses_page_selector(pdf_factory: Callable[..., bytes]) -> None:
    settings = PipelineSettings(
        split=SplitSpec(mode="extract", page_selector=PageSelector(mode="custom", range_expr="2-3"))
    )

    result = _run("split", [ConversionRequest(pdf_factory(pages=4), name="doc.pdf")], settings)

    assert result.bundle.primary.name == "doc_extracted.pdf"
    assert len(PdfReader(io.BytesIO(result.bundle.primary.data)).pages) == 2


def test_page_numbers_tool_batch_skips_bad_source(
    pdf_factory: Callable[..., bytes],
    encrypted_pdf: bytes,
) -> None:
    settings = PipelineSettings(page_numbers=PageNumberSpec(format="n-of-total"))
    requests = [
        ConversionRequest(pdf_factory(pages=2), name="a.pdf"),
        ConversionRequest(encrypted_pdf, name="b.pdf"),
    ]

    result = _run("page-numbers", requests, settings)

    assert result.bundle.primary.name == "a_numbered.pdf"
    assert result.warnings == ["source 2 (b.pdf): password protected"]


def test_page_numbers_tool_single_failure_raises(corrupt_bytes: bytes) -> None:
    # merge is the only tool that tolerates unsniffable content
    with pytest.raises(UnsupportedMediaError):
        _run("page-numbers", [ConversionRequest(corrupt_bytes, name="a.pdf")])


def test_encoding_fallbacks_are_reported(png_bytes: bytes) -> None:
    class PngOnlyCodec(PillowCodec):
        def supports(self, media_type: str) -> bool:
            return media_type == "image/png"

    result = _run(
        "convert",
        [ConversionRequest(png_bytes, target="image/webp", name="a.png")],
        backends=Backends(raster=PngOnlyCodec()),
    )

    assert result.bundle.primary.name == "a.png"
    assert result.fallbacks == [EncodingFallback(requested="image/webp", produced="image/png")]


def test_sync_wrappers(pdf_factory: Callable[..., bytes], png_bytes: bytes) -> None:
    merged = pdfcomposex.merge_documents([pdf_factory(pages=1), pdf_factory(pages=2)])
    assert len(PdfReader(io.BytesIO(merged.bundle.primary.data)).pages) == 3

    inserted = pdfcomposex.insert_page(pdf_factory(pages=2), options=InsertOptions(anchor=2))
    assert len(PdfReader(io.BytesIO(inserted.bundle.primary.data)).pages) == 3

    rotated = pdfcomposex.rotate_document([pdf_factory(pages=1)], {1: 270})
    assert PdfReader(io.BytesIO(rotated.bundle.primary.data)).pages[0].rotation == 270

    converted = pdfcomposex.convert_files([ConversionRequest(png_bytes, target="image/bmp", name="a.png")])
    assert converted.bundle.primary.name == "a.bmp"

    numbered = pdfcomposex.add_page_numbers([pdf_factory(pages=1)])
    assert numbered.bundle.primary.name == "file_1_numbered.pdf"

    compressed = pdfcomposex.compress_documents([pdf_factory(pages=2)], CompressionSettings(mode="structure"))
    assert compressed.bundle.primary.name == "compressed_file_1.pdf"
    assert compressed.stats.original_size > 0

    optimized = pdfcomposex.optimize_images([png_bytes], OptimizationSettings(target_format="image/jpeg"))
    assert optimized.bundle.primary.name == "file_1_optimized.jpg"


def test_invalid_document_error_is_a_decode_failure() -> None:
    assert issubclass(InvalidDocumentError, pdfcomposex.DecodeFailure)
