"""
Command-line interface for pdfcomposex.
"""

import asyncio
import logging
import os
import sys

import click
from rich.console import Console
from rich.progress import Progress, BarColumn, TextColumn, TaskProgressColumn, TimeElapsedColumn
from rich.table import Table

from pdfcomposex import __version__
from pdfcomposex.exceptions import PDFComposeXError
from pdfcomposex.geometry import format_page_ranges, resolve_pages
from pdfcomposex.pipeline import run_pipeline
from pdfcomposex.types import (
    CompressionSettings,
    ConversionRequest,
    InsertOptions,
    OptimizationSettings,
    PageNumberSpec,
    PageSelector,
    PipelineSettings,
    SplitSpec,
    WatermarkSpec,
)
from pdfcomposex.utils import format_file_size, get_logger

console = Console()

TARGETS = {
    "pdf": "application/pdf",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "avif": "image/avif",
    "bmp": "image/bmp",
}
ANCHORS = [
    "top-left", "top-center", "top-right",
    "middle-left", "center", "middle-right",
    "bottom-left", "bottom-center", "bottom-right",
    "tiled",
]
NUMBER_POSITIONS = ["top-left", "top-center", "top-right", "bottom-left", "bottom-center", "bottom-right"]
NUMBER_FORMATS = ["n", "page-n", "n-of-total", "page-n-of-total"]


def _read_requests(paths, target=None):
    requests = []
    for path in paths:
        with open(path, "rb") as handle:
            requests.append(ConversionRequest(data=handle.read(), target=target, name=os.path.basename(path)))
    return requests


def _selector(pages, page_range):
    if page_range:
        return PageSelector(mode="custom", range_expr=page_range)
    return PageSelector(mode=pages)


def _parse_rotations(values):
    """Parse ``PAGE:DEGREES`` pairs into a 1-based rotation map."""
    rotations = {}
    for value in values:
        try:
            page, degrees = value.split(":", 1)
            rotations[int(page)] = rotations.get(int(page), 0) + int(degrees)
        except ValueError:
            raise click.BadParameter(f"expected PAGE:DEGREES, got '{value}'", param_hint="--rotate")
    return rotations


def _execute(tool, requests, settings, label):
    """Run *tool* with a rich progress bar and return the pipeline result."""
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console
    ) as progress:
        task = progress.add_task(label, total=100)

        def update_progress(percent, step_label):
            progress.update(task, completed=percent, description=step_label)

        return asyncio.run(run_pipeline(tool, requests, settings, on_progress=update_progress))


def _save(result, output_dir, output_name=None):
    """Write the primary artifact of *result* and print a summary."""
    os.makedirs(output_dir, exist_ok=True)
    artifact = result.bundle.primary
    output_path = os.path.join(output_dir, output_name or artifact.name)
    with open(output_path, "wb") as handle:
        handle.write(artifact.data)

    console.print(f"\n[bold green]✓ Successfully created:[/bold green] {output_path}")

    table = Table(title="Produced files")
    table.add_column("File", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Size", style="green", justify="right")
    for item in result.bundle.artifacts:
        table.add_row(item.name, item.media_type, format_file_size(len(item.data)))
    console.print(table)

    stats = result.stats
    if stats is not None:
        console.print(
            f"[bold]Size:[/bold] {format_file_size(stats.original_size)} -> "
            f"{format_file_size(stats.compressed_size)} "
            f"(saved {format_file_size(stats.bytes_saved)}, {(1 - stats.compression_ratio) * 100:.1f}%)"
        )

    for fallback in result.fallbacks:
        console.print(f"[yellow]! {fallback.requested} unavailable, wrote {fallback.produced}[/yellow]")
    for warning in result.warnings:
        console.print(f"[yellow]⚠ Skipped {warning}[/yellow]")
    console.print()
    return output_path


def _fail(error):
    console.print(f"\n[bold red]✗ Error:[/bold red] {error}")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Log every pipeline step')
def cli(verbose):
    """
    PDFComposeX - Convert images and PDFs and compose PDF documents.
    """
    if verbose:
        get_logger("pdfcomposex").setLevel(logging.DEBUG)


@cli.command(name="convert")
@click.argument('inputs', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--to', 'target', required=True, type=click.Choice(sorted(TARGETS)), help='Target format')
@click.option('--merge', is_flag=True, help='Combine all images into a single PDF')
@click.option('--quality', '-q', default=0.92, show_default=True, type=click.FloatRange(0, 1),
              help='Quality for lossy encodings')
@click.option('--pages', default='all', type=click.Choice(['all', 'odd', 'even']),
              help='Pages to render when converting PDFs to images')
@click.option('--range', 'page_range', help="Custom page selection (e.g., '1-3,5')", type=str)
@click.option('--output-dir', '-o', default='./output', help='Output directory', type=click.Path())
def convert(inputs, target, merge, quality, pages, page_range, output_dir):
    """
    Convert images to PDF, PDFs to images, or images between formats.

    Examples:

        pdfcomposex convert scan1.jpg scan2.jpg --to pdf --merge

        pdfcomposex convert report.pdf --to png --range 1-3
    """
    try:
        requests = _read_requests(inputs, TARGETS[target])
        settings = PipelineSettings(
            quality=quality,
            merge_flag=merge,
            page_selector=_selector(pages, page_range),
        )
        console.print(f"\n[bold cyan]Converting {len(requests)} file(s) to {target.upper()}...[/bold cyan]")
        result = _execute("convert", requests, settings, "Converting")
        _save(result, output_dir)
    except PDFComposeXError as e:
        _fail(e)
    except OSError as e:
        _fail(e)


@cli.command(name="merge")
@click.argument('inputs', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--output-dir', '-o', default='./output', help='Output directory', type=click.Path())
@click.option('--output-name', '-n', help='Custom output filename', type=str)
def merge(inputs, output_dir, output_name):
    """
    Merge PDFs in the given order, skipping unreadable files.

    Example:

        pdfcomposex merge a.pdf b.pdf c.pdf -n combined.pdf
    """
    try:
        requests = _read_requests(inputs)
        console.print(f"\n[bold cyan]Merging {len(requests)} PDF(s)...[/bold cyan]")
        result = _execute("merge", requests, PipelineSettings(), "Merging")
        _save(result, output_dir, output_name)
    except PDFComposeXError as e:
        _fail(e)
    except OSError as e:
        _fail(e)


@cli.command(name="insert")
@click.argument('base_pdf', type=click.Path(exists=True, dir_okay=False))
@click.option('--from', 'insert_pdf', type=click.Path(exists=True, dir_okay=False),
              help='Copy a page from this PDF instead of inserting a blank page')
@click.option('--source-page', default=1, show_default=True, type=int, help='Page of --from to copy (1-indexed)')
@click.option('--position', 'mode', default='after', type=click.Choice(['before', 'after']))
@click.option('--at', 'anchor', default=1, show_default=True, type=int, help='Anchor page (1-indexed)')
@click.option('--output-dir', '-o', default='./output', help='Output directory', type=click.Path())
def insert(base_pdf, insert_pdf, source_page, mode, anchor, output_dir):
    """
    Insert a blank page, or a page from another PDF.

    Examples:

        pdfcomposex insert report.pdf --position before --at 1

        pdfcomposex insert report.pdf --from cover.pdf --source-page 2 --at 3
    """
    try:
        paths = [base_pdf] if insert_pdf is None else [base_pdf, insert_pdf]
        options = InsertOptions(
            mode=mode,
            anchor=anchor,
            use_blank_page=insert_pdf is None,
            source_page=source_page,
        )
        result = _execute("insert", _read_requests(paths), PipelineSettings(insert_options=options), "Inserting")
        _save(result, output_dir)
    except PDFComposeXError as e:
        _fail(e)
    except OSError as e:
        _fail(e)


@cli.command(name="rotate")
@click.argument('inputs', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--rotate', '-r', 'rotations', multiple=True, required=True,
              help='PAGE:DEGREES, repeatable (images use page 1)')
@click.option('--output-dir', '-o', default='./output', help='Output directory', type=click.Path())
def rotate(inputs, rotations, output_dir):
    """
    Rotate PDF pages or images clockwise by multiples of 90 degrees.

    Example:

        pdfcomposex rotate report.pdf -r 1:90 -r 3:180
    """
    try:
        deltas = _parse_rotations(rotations)
        result = _execute("rotate", _read_requests(inputs), PipelineSettings(rotation_deltas=deltas), "Rotating")
        _save(result, output_dir)
    except PDFComposeXError as e:
        _fail(e)
    except OSError as e:
        _fail(e)


@cli.command(name="watermark")
@click.argument('inputs', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--text', '-t', required=True, help='Watermark text')
@click.option('--position', default='center', type=click.Choice(ANCHORS))
@click.option('--font-size', default=48.0, show_default=True, type=float)
@click.option('--font-family', default='DejaVuSans', show_default=True)
@click.option('--color', default='#ff0000', show_default=True)
@click.option('--opacity', default=0.5, show_default=True, type=click.FloatRange(0, 1))
@click.option('--rotation', default=0.0, show_default=True, type=float, help='Clockwise degrees')
@click.option('--bold', is_flag=True)
@click.option('--italic', is_flag=True)
@click.option('--rows', default=4, show_default=True, type=int, help='Tiled grid rows')
@click.option('--cols', default=3, show_default=True, type=int, help='Tiled grid columns')
@click.option('--pages', default='all', type=click.Choice(['all', 'odd', 'even']))
@click.option('--range', 'page_range', help="Custom page selection (e.g., '1-3,5')", type=str)
@click.option('--output-dir', '-o', default='./output', help='Output directory', type=click.Path())
def watermark(inputs, text, position, font_size, font_family, color, opacity, rotation,
              bold, italic, rows, cols, pages, page_range, output_dir):
    """
    Stamp a text watermark onto PDFs and images.

    Examples:

        pdfcomposex watermark report.pdf -t CONFIDENTIAL --rotation 45

        pdfcomposex watermark photo.png -t DRAFT --position tiled --opacity 0.2
    """
    try:
        spec = WatermarkSpec(
            text=text,
            font_family=font_family,
            font_size=font_size,
            bold=bold,
            italic=italic,
            color=color,
            opacity=opacity,
            rotation_degrees=rotation,
            anchor=position,
            page_selector=_selector(pages, page_range),
            grid_rows=rows,
            grid_cols=cols,
        )
        result = _execute("watermark", _read_requests(inputs), PipelineSettings(watermark=spec), "Watermarking")
        _save(result, output_dir)
    except PDFComposeXError as e:
        _fail(e)
    except OSError as e:
        _fail(e)


@cli.command(name="split")
@click.argument('input_pdf', type=click.Path(exists=True, dir_okay=False))
@click.option('--range', 'page_range', required=True, help="Pages to select (e.g., '1-3,5')", type=str)
@click.option('--remove', is_flag=True, help='Drop the selected pages instead of keeping them')
@click.option('--output-dir', '-o', default='./output', help='Output directory', type=click.Path())
def split(input_pdf, page_range, remove, output_dir):
    """
    Extract or remove a selection of pages.

    Examples:

        pdfcomposex split report.pdf --range 1-3,7

        pdfcomposex split report.pdf --range 2 --remove
    """
    try:
        spec = SplitSpec(mode="remove" if remove else "extract", page_selector=_selector("all", page_range))
        verb = "Removing" if remove else "Extracting"
        console.print(f"\n[bold cyan]{verb} pages {page_range}...[/bold cyan]")
        result = _execute("split", _read_requests([input_pdf]), PipelineSettings(split=spec), verb)
        _save(result, output_dir)
    except PDFComposeXError as e:
        _fail(e)
    except OSError as e:
        _fail(e)


@cli.command(name="number")
@click.argument('inputs', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--position', default='bottom-center', type=click.Choice(NUMBER_POSITIONS))
@click.option('--format', 'label_format', default='n', type=click.Choice(NUMBER_FORMATS))
@click.option('--margin', default=20.0, show_default=True, type=float)
@click.option('--font-size', default=12.0, show_default=True, type=float)
@click.option('--start-from', default=1, show_default=True, type=int)
@click.option('--skip-first', is_flag=True, help='Leave the first page unnumbered')
@click.option('--output-dir', '-o', default='./output', help='Output directory', type=click.Path())
def number(inputs, position, label_format, margin, font_size, start_from, skip_first, output_dir):
    """
    Add page numbers to PDFs.

    Example:

        pdfcomposex number report.pdf --format page-n-of-total --skip-first
    """
    try:
        spec = PageNumberSpec(
            position=position,
            margin=margin,
            font_size=font_size,
            format=label_format,
            start_from=start_from,
            skip_first=skip_first,
        )
        result = _execute("page-numbers", _read_requests(inputs), PipelineSettings(page_numbers=spec), "Numbering")
        _save(result, output_dir)
    except PDFComposeXError as e:
        _fail(e)
    except OSError as e:
        _fail(e)


@cli.command(name="compress")
@click.argument('inputs', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--mode', default='image', show_default=True, type=click.Choice(['image', 'structure']),
              help='Re-render pages as JPEG, or rewrite the file structure losslessly')
@click.option('--quality', '-q', default=0.8, show_default=True, type=click.FloatRange(0.1, 1),
              help='JPEG quality of re-rendered pages')
@click.option('--max-resolution', default=2000, show_default=True, type=click.IntRange(1),
              help='Longest side of re-rendered pages in pixels')
@click.option('--grayscale', is_flag=True, help='Re-render pages in grayscale')
@click.option('--no-text-detection', is_flag=True, help='Re-render text pages too')
@click.option('--flatten-forms', is_flag=True, help='Burn form fields into the page (structure mode)')
@click.option('--keep-metadata', is_flag=True, help='Keep title, author and other document info')
@click.option('--output-dir', '-o', default='./output', help='Output directory', type=click.Path())
def compress(inputs, mode, quality, max_resolution, grayscale, no_text_detection, flatten_forms,
             keep_metadata, output_dir):
    """
    Reduce the size of PDFs.

    Examples:

        pdfcomposex compress scan.pdf --max-resolution 1200 -q 0.6

        pdfcomposex compress form.pdf --mode structure --flatten-forms
    """
    try:
        settings = CompressionSettings(
            mode=mode,
            quality=quality,
            max_resolution=max_resolution,
            grayscale=grayscale,
            flatten_forms=flatten_forms,
            preserve_metadata=keep_metadata,
            auto_detect_text=not no_text_detection,
        )
        requests = _read_requests(inputs)
        console.print(f"\n[bold cyan]Compressing {len(requests)} PDF(s) ({mode} mode)...[/bold cyan]")
        result = _execute("compress", requests, PipelineSettings(compression=settings), "Compressing")
        _save(result, output_dir)
    except PDFComposeXError as e:
        _fail(e)
    except OSError as e:
        _fail(e)


@cli.command(name="optimize")
@click.argument('inputs', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--to', 'target', default='original', show_default=True,
              type=click.Choice(['original'] + sorted(set(TARGETS) - {'pdf', 'jpeg'})),
              help='Output format')
@click.option('--quality', '-q', default=0.8, show_default=True, type=click.FloatRange(0.1, 1))
@click.option('--max-width', default=0, show_default=True, type=click.IntRange(0),
              help='Shrink wider images to this width (0 keeps the size)')
@click.option('--output-dir', '-o', default='./output', help='Output directory', type=click.Path())
def optimize(inputs, target, quality, max_width, output_dir):
    """
    Re-encode images to make them smaller.

    Example:

        pdfcomposex optimize *.png --to webp --max-width 1600
    """
    try:
        settings = OptimizationSettings(
            target_format=target if target == 'original' else TARGETS[target],
            quality=quality,
            max_width=max_width,
        )
        requests = _read_requests(inputs)
        console.print(f"\n[bold cyan]Optimizing {len(requests)} image(s)...[/bold cyan]")
        result = _execute("optimize", requests, PipelineSettings(optimization=settings), "Optimizing")
        _save(result, output_dir)
    except PDFComposeXError as e:
        _fail(e)
    except OSError as e:
        _fail(e)


@cli.command(name="pages")
@click.argument('total', type=int)
@click.option('--pages', default='all', type=click.Choice(['all', 'odd', 'even']))
@click.option('--range', 'page_range', help="Custom page selection (e.g., '1-3,5')", type=str)
def pages(total, pages, page_range):
    """
    Preview which pages a selection resolves to.

    Example:

        pdfcomposex pages 12 --range '10-2,15'
    """
    try:
        selector = _selector(pages, page_range)
        selected = resolve_pages(total, selector.mode, selector.range_expr)
        console.print(f"[bold]{len(selected)}[/bold] page(s): {format_page_ranges(selected) or '-'}")
    except PDFComposeXError as e:
        _fail(e)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == '__main__':
    main()
