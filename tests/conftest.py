from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Callable
import sys

import pytest
from pypdf import PdfWriter
from pypdf.generic import (
    ArrayObject,
    DecodedStreamObject,
    DictionaryObject,
    NameObject,
    NumberObject,
)

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pdfparsex.config import ParserOptions  # noqa: E402
from pdfparsex.interpreter import ContentStreamInterpreter, InterpretationResult  # noqa: E402
from pdfparsex.resources import ResourceCache, ResourceResolver  # noqa: E402

# Every test font advances 500/1000 em per glyph and spans -250..750.
GLYPH_WIDTH = 500
ASCENT = 750
DESCENT = -250


def make_font(base_font: str = "Helvetica", width: int = GLYPH_WIDTH) -> DictionaryObject:
    descriptor = DictionaryObject(
        {
            NameObject("/Type"): NameObject("/FontDescriptor"),
            NameObject("/FontName"): NameObject(f"/{base_font}"),
            NameObject("/Flags"): NumberObject(32),
            NameObject("/Ascent"): NumberObject(ASCENT),
            NameObject("/Descent"): NumberObject(DESCENT),
            NameObject("/FontBBox"): ArrayObject(
                [NumberObject(0), NumberObject(DESCENT), NumberObject(1000), NumberObject(ASCENT)]
            ),
        }
    )
    return DictionaryObject(
        {
            NameObject("/Type"): NameObject("/Font"),
            NameObject("/Subtype"): NameObject("/Type1"),
            NameObject("/BaseFont"): NameObject(f"/{base_font}"),
            NameObject("/Encoding"): NameObject("/WinAnsiEncoding"),
            NameObject("/FirstChar"): NumberObject(32),
            NameObject("/LastChar"): NumberObject(126),
            NameObject("/Widths"): ArrayObject([NumberObject(width) for _ in range(95)]),
            NameObject("/FontDescriptor"): descriptor,
        }
    )


def make_stream(data: bytes, entries: dict[str, object] | None = None) -> DecodedStreamObject:
    stream = DecodedStreamObject()
    stream.set_data(data)
    for key, value in (entries or {}).items():
        stream[NameObject(key)] = value
    return stream


def make_resources(**groups: dict[str, object]) -> DictionaryObject:
    """Build a resource dictionary; ``F1`` is always a test font."""

    fonts = {"F1": make_font()}
    fonts.update(groups.pop("Font", {}))
    resources = DictionaryObject()
    groups["Font"] = fonts
    for category, entries in groups.items():
        resources[NameObject(f"/{category}")] = DictionaryObject(
            {NameObject(f"/{name}"): value for name, value in entries.items()}
        )
    return resources


@pytest.fixture()
def font_factory() -> Callable[..., DictionaryObject]:
    return make_font


@pytest.fixture()
def stream_factory() -> Callable[..., DecodedStreamObject]:
    return make_stream


@pytest.fixture()
def resources_factory() -> Callable[..., DictionaryObject]:
    return make_resources


@pytest.fixture()
def interpret() -> Callable[..., InterpretationResult]:
    def _interpret(
        content: bytes,
        resources: DictionaryObject | None = None,
        *,
        page_box: tuple[float, float, float, float] = (0.0, 0.0, 612.0, 792.0),
        rotation: int = 0,
        options: ParserOptions | None = None,
        guard=None,
    ) -> InterpretationResult:
        resolver = ResourceResolver(resources if resources is not None else make_resources(), ResourceCache())
        interpreter = ContentStreamInterpreter(resolver, page_box, rotation, options, guard)
        return interpreter.interpret(content)

    return _interpret


@pytest.fixture()
def pdf_factory() -> Callable[..., bytes]:
    def _create(
        *contents: bytes,
        width: float = 612,
        height: float = 792,
        rotate: int | None = None,
        resources: DictionaryObject | None = None,
        metadata: dict[str, str] | None = None,
    ) -> bytes:
        writer = PdfWriter()
        for content in contents:
            page = writer.add_blank_page(width=width, height=height)
            page.replace_contents(make_stream(content))
            page[NameObject("/Resources")] = resources if resources is not None else make_resources()
            if rotate is not None:
                page[NameObject("/Rotate")] = NumberObject(rotate)
        if metadata:
            writer.add_metadata(metadata)
        buffer = BytesIO()
        writer.write(buffer)
        return buffer.getvalue()

    return _create


@pytest.fixture()
def sample_pdf(tmp_path: Path, pdf_factory: Callable[..., bytes]) -> Path:
    pdf_path = tmp_path / "sample.pdf"
    pdf_path.write_bytes(
        pdf_factory(
            b"BT /F1 12 Tf 72 700 Td (Hello world) Tj 0 -14 Td (second line) Tj ET\n"
            b"0 0 1 rg 72 600 100 50 re f\n",
            metadata={"/Title": "Sample", "/Producer": "pdfparsex-tests"},
        )
    )
    return pdf_path
