"""
Command-line interface for pdfparsex.
"""

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from pdfparsex import __version__
from pdfparsex.config import ParserOptions
from pdfparsex.exceptions import SerializerError, StructureError, VisualizerError
from pdfparsex.model import ElementClass
from pdfparsex.parser import PdfParser
from pdfparsex.serializer import DocumentSerializer, SerializationFormat
from pdfparsex.utils import get_logger
from pdfparsex.visualizer import DocumentVisualizer

console = Console(stderr=True)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _error_table(document) -> Table:
    table = Table(title="Page errors")
    table.add_column("Page", style="cyan", justify="right")
    table.add_column("Error", style="red")
    table.add_column("Offset", justify="right")
    table.add_column("Message")
    for error in document.errors:
        offset = "" if error.offset is None else str(error.offset)
        table.add_row(str(error.page_number), error.kind, offset, error.message)
    return table


@click.command(name="pdfparsex")
@click.version_option(version=__version__)
@click.argument("input_pdf", metavar="<pdf>", type=click.Path(exists=True, dir_okay=False))
@click.argument("output", metavar="<output>", required=False, type=click.Path(dir_okay=False))
@click.option(
    "--format", "-f", "output_format",
    default=SerializationFormat.JSON.value,
    type=click.Choice(SerializationFormat.names(), case_sensitive=False),
    help="Output format.",
)
@click.option(
    "--visualize", "-v", "visualization",
    type=click.Path(dir_okay=False),
    help="Write a copy of the PDF with the bounding boxes of the extracted elements.",
)
@click.option(
    "--class", "-c", "--type", "-t", "classes",
    multiple=True,
    type=click.Choice(ElementClass.names(), case_sensitive=False),
    help="Element class to extract (repeatable). Defaults to all classes.",
)
@click.option("--workers", default=1, show_default=True, type=click.IntRange(min=1), help="Number of page workers.")
@click.option("--page-timeout", type=click.FloatRange(min=0.0, min_open=True), help="Time budget per page in seconds.")
@click.option("--password", default=None, help="Password of an encrypted PDF.")
@click.option(
    "--log-level",
    default="WARNING",
    show_default=True,
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Logging verbosity.",
)
def cli(input_pdf, output, output_format, visualization, classes, workers, page_timeout, password, log_level):
    """
    Extract characters, words, text lines, paragraphs, figures and shapes
    from the content streams of a PDF file.

    Examples:

        pdfparsex input.pdf

        pdfparsex input.pdf out.xml -f xml -c word -c paragraph

        pdfparsex input.pdf out.json -v boxes.pdf --workers 4
    """
    get_logger("pdfparsex", log_level)
    options = ParserOptions(workers=workers, page_timeout=page_timeout, password=password)
    selected = ElementClass.from_strings(classes) if classes else list(ElementClass)
    source = Path(input_pdf).read_bytes()

    try:
        document = PdfParser(options).parse(source)
    except StructureError as exc:
        console.print(f"[bold red]✗ Error:[/bold red] {exc}")
        sys.exit(1)

    if document.errors:
        console.print(_error_table(document))

    try:
        serialization = DocumentSerializer().serialize(document, output_format, selected)
    except SerializerError as exc:
        console.print(f"[bold red]✗ Error:[/bold red] {exc}")
        sys.exit(1)

    if output:
        Path(output).write_bytes(serialization)
        console.print(f"[bold green]✓ Wrote {output_format.lower()} output to {output}[/bold green]")
    else:
        click.echo(serialization.decode("utf-8"))

    if visualization:
        try:
            drawn = DocumentVisualizer(password=password).visualize(source, document, selected)
        except VisualizerError as exc:
            console.print(f"[bold red]✗ Error:[/bold red] {exc}")
            sys.exit(1)
        Path(visualization).write_bytes(drawn)
        console.print(f"[bold green]✓ Wrote visualization to {visualization}[/bold green]")


if __name__ == "__main__":
    cli()
