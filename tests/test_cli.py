from __future__ import annotations

import io
from pathlib import Path
from typing import Callable

import pytest
from click.testing import CliRunner
from PIL import Image
from pypdf import PdfReader

from pdfcomposex.cli import cli


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def pdf_file(tmp_path: Path, pdf_factory: Callable[..., bytes]) -> Path:
    path = tmp_path / "report.pdf"
    path.write_bytes(pdf_factory(pages=4))
    return path


def _pages(path: Path) -> int:
    return len(PdfReader(io.BytesIO(path.read_bytes())).pages)


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "1.0.0" in result.output


def test_convert_images_to_merged_pdf(
    runner: CliRunner,
    tmp_path: Path,
    png_bytes: bytes,
    jpeg_bytes: bytes,
) -> None:
    first = tmp_path / "a.png"
    second = tmp_path / "b.jpg"
    first.write_bytes(png_bytes)
    second.write_bytes(jpeg_bytes)
    out = tmp_path / "out"

    result = runner.invoke(cli, ["convert", str(first), str(second), "--to", "pdf", "--merge", "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert _pages(out / "merged_images.pdf") == 2


def test_convert_pdf_to_images_writes_archive(runner: CliRunner, tmp_path: Path, pdf_file: Path) -> None:
    out = tmp_path / "out"

    result = runner.invoke(cli, ["convert", str(pdf_file), "--to", "png", "--range", "1-2", "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert (out / "converted_files.zip").exists()


def test_merge_with_custom_name(runner: CliRunner, tmp_path: Path, pdf_file: Path) -> None:
    out = tmp_path / "out"

    result = runner.invoke(cli, ["merge", str(pdf_file), str(pdf_file), "-o", str(out), "-n", "all.pdf"])

    assert result.exit_code == 0, result.output
    assert _pages(out / "all.pdf") == 8


def test_merge_reports_skipped_file(runner: CliRunner, tmp_path: Path, pdf_file: Path) -> None:
    broken = tmp_path / "broken.pdf"
    broken.write_bytes(b"garbage")
    out = tmp_path / "out"

    result = runner.invoke(cli, ["merge", str(pdf_file), str(broken), "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert "broken.pdf" in result.output
    assert _pages(out / "merged.pdf") == 4


def test_insert_blank_page(runner: CliRunner, tmp_path: Path, pdf_file: Path) -> None:
    out = tmp_path / "out"

    result = runner.invoke(cli, ["insert", str(pdf_file), "--position", "before", "--at", "1", "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert _pages(out / "report_inserted.pdf") == 5


def test_rotate(runner: CliRunner, tmp_path: Path, pdf_file: Path) -> None:
    out = tmp_path / "out"

    result = runner.invoke(cli, ["rotate", str(pdf_file), "-r", "2:90", "-o", str(out)])

    assert result.exit_code == 0, result.output
    reader = PdfReader(io.BytesIO((out / "report_rotated.pdf").read_bytes()))
    assert [page.rotation for page in reader.pages] == [0, 90, 0, 0]


def test_rotate_rejects_bad_pairs(runner: CliRunner, pdf_file: Path) -> None:
    result = runner.invoke(cli, ["rotate", str(pdf_file), "-r", "ninety"])
    assert result.exit_code == 2


def test_rotate_rejects_partial_turns(runner: CliRunner, tmp_path: Path, pdf_file: Path) -> None:
    result = runner.invoke(cli, ["rotate", str(pdf_file), "-r", "1:45", "-o", str(tmp_path / "out")])
    assert result.exit_code == 1
    assert "multiple of 90" in result.output


def test_watermark(runner: CliRunner, tmp_path: Path, pdf_file: Path) -> None:
    out = tmp_path / "out"

    result = runner.invoke(
        cli,
        ["watermark", str(pdf_file), "-t", "DRAFT", "--position", "tiled", "--rows", "2", "-o", str(out)],
    )

    assert result.exit_code == 0, result.output
    assert _pages(out / "watermarked_report.pdf") == 4


def test_split_remove(runner: CliRunner, tmp_path: Path, pdf_file: Path) -> None:
    out = tmp_path / "out"

    result = runner.invoke(cli, ["split", str(pdf_file), "--range", "2-3", "--remove", "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert _pages(out / "report_trimmed.pdf") == 2


def test_number(runner: CliRunner, tmp_path: Path, pdf_file: Path) -> None:
    out = tmp_path / "out"

    result = runner.invoke(cli, ["number", str(pdf_file), "--format", "page-n", "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert (out / "report_numbered.pdf").exists()


def test_pages_preview(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["pages", "12", "--range", "10-2,15"])

    assert result.exit_code == 0
    assert "2-10" in result.output


def test_convert_unsupported_input(runner: CliRunner, tmp_path: Path) -> None:
    bogus = tmp_path / "notes.txt"
    bogus.write_text("hello")

    result = runner.invoke(cli, ["convert", str(bogus), "--to", "png", "-o", str(tmp_path / "out")])

    assert result.exit_code == 1
    assert "Error" in result.output


def test_compress_structure_mode(runner: CliRunner, tmp_path: Path, pdf_file: Path) -> None:
    out = tmp_path / "out"

    result = runner.invoke(cli, ["compress", str(pdf_file), "--mode", "structure", "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert _pages(out / "compressed_report.pdf") == 4
    assert "Size:" in result.output


def test_optimize_resizes_image(runner: CliRunner, tmp_path: Path, image_factory: Callable[..., bytes]) -> None:
    source = tmp_path / "banner.png"
    source.write_bytes(image_factory(width=300, height=100))
    out = tmp_path / "out"

    result = runner.invoke(cli, ["optimize", str(source), "--max-width", "150", "-o", str(out)])

    assert result.exit_code == 0, result.output
    with Image.open(out / "banner_optimized.png") as image:
        assert image.size == (150, 50)
    assert "Size:" in result.output
