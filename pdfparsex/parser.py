"""Document level entry points.

:class:`PdfParser` opens a document with ``pypdf``, prepares every page
(geometry, decoded content stream, resources) and interprets and clusters the
pages either sequentially or on a thread pool.  Failures are isolated per
page: only an unreadable container raises (:class:`StructureError`).
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any, Mapping

from pypdf import PdfReader
from pypdf.generic import ArrayObject, NameObject, StreamObject

from .builder import DocumentBuilder
from .config import ParserOptions
from .exceptions import (
    PageProcessingError,
    PdfParserError,
    ResourceResolutionError,
    StructureError,
    TaxonomyError,
)
from .geometry import BoundingBox, transform_box, page_matrix
from .interpreter import ContentStreamInterpreter, PageGuard
from .layout import LayoutClusterer
from .model import ContentElement, PageError, PdfDocument
from .resources import ResourceCache, ResourceResolver
from .utils import resolve_path

__all__ = ["PdfParser", "parse"]

LOGGER = logging.getLogger("pdfparsex.parser")

_DEFAULT_MEDIA_BOX = (0.0, 0.0, 612.0, 792.0)


@dataclass(slots=True)
class _PreparedPage:
    index: int
    media_box: tuple[float, float, float, float]
    rotation: int
    resources: Any
    content: bytes

    @property
    def size(self) -> tuple[float, float]:
        box = transform_box(page_matrix(self.media_box, self.rotation), BoundingBox(*self.media_box))
        return box.width, box.height


@dataclass(slots=True)
class _PageOutcome:
    index: int
    size: tuple[float, float] | None = None
    elements: list[ContentElement] | None = None
    errors: list[PageError] = field(default_factory=list)


def _normalise_metadata(raw: Mapping[str, Any]) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for key, value in raw.items():
        if value is None or value == "":
            continue
        name = str(key)
        cleaned[name[1:] if name.startswith("/") else name] = str(value)
    return cleaned


def _decode_contents(page: Any) -> bytes:
    content = page.get(NameObject("/Contents"))
    if content is None:
        return b""
    content = content.get_object()
    streams: list[StreamObject] = []
    if isinstance(content, StreamObject):
        streams.append(content)
    elif isinstance(content, ArrayObject):
        for item in content:
            candidate = item.get_object()
            if isinstance(candidate, StreamObject):
                streams.append(candidate)
    # Streams of a page form one content stream; tokens never span them.
    return b"\n".join(stream.get_data() for stream in streams)


def _media_box(page: Any) -> tuple[float, float, float, float]:
    try:
        box = page.mediabox
        left, bottom, right, top = (float(box.left), float(box.bottom), float(box.right), float(box.top))
    except Exception as exc:
        LOGGER.warning("Invalid media box (%s); using US Letter", exc)
        return _DEFAULT_MEDIA_BOX
    if right == left or top == bottom:
        LOGGER.warning("Degenerate media box [%s %s %s %s]; using US Letter", left, bottom, right, top)
        return _DEFAULT_MEDIA_BOX
    return (min(left, right), min(bottom, top), max(left, right), max(bottom, top))


class PdfParser:
    """Parse PDF documents into :class:`~pdfparsex.model.PdfDocument` trees."""

    def __init__(self, options: ParserOptions | None = None) -> None:
        self.options = options or ParserOptions()
        self.clusterer = LayoutClusterer(self.options.thresholds)

    # -- Public API -----------------------------------------------------------

    def parse(self, source: bytes | bytearray | str | Path) -> PdfDocument:
        """Parse ``source``, given either as raw bytes or as a file path."""

        if isinstance(source, (bytes, bytearray, memoryview)):
            return self._parse_bytes(bytes(source), "<memory>")
        return self.parse_path(source)

    def parse_path(self, path: str | Path) -> PdfDocument:
        resolved = resolve_path(path)
        try:
            data = resolved.read_bytes()
        except OSError as exc:
            raise StructureError(f"Unable to read {resolved}: {exc}") from exc
        return self._parse_bytes(data, str(resolved))

    # -- Document handling ----------------------------------------------------

    def _open(self, data: bytes, label: str) -> tuple[PdfReader, int]:
        try:
            reader = PdfReader(BytesIO(data), strict=False)
        except Exception as exc:
            raise StructureError(f"Unable to open PDF document {label}: {exc}") from exc
        if reader.is_encrypted:
            try:
                decrypted = reader.decrypt(self.options.password or "")
            except Exception as exc:
                raise StructureError(f"Unable to decrypt {label}: {exc}") from exc
            if not decrypted:
                raise StructureError(f"{label} is encrypted and the password is unknown")
        try:
            page_count = len(reader.pages)
        except Exception as exc:
            raise StructureError(f"{label} has no readable page tree: {exc}") from exc
        return reader, page_count

    def _metadata(self, reader: PdfReader) -> dict[str, str]:
        try:
            return _normalise_metadata(reader.metadata or {})
        except Exception as exc:
            LOGGER.warning("Unable to read document information: %s", exc)
            return {}

    def _parse_bytes(self, data: bytes, label: str) -> PdfDocument:
        reader, page_count = self._open(data, label)
        cache = ResourceCache()
        builder = DocumentBuilder(page_count, self._metadata(reader))
        LOGGER.info("Parsing %d page(s) of %s with %d worker(s)", page_count, label, self.options.workers)

        if self.options.workers == 1 or page_count <= 1:
            outcomes = [self._process_page(reader, index, cache) for index in range(page_count)]
        else:
            outcomes = []
            with ThreadPoolExecutor(max_workers=self.options.workers) as executor:
                futures = [
                    executor.submit(self._process_page, reader, index, cache) for index in range(page_count)
                ]
                for future in as_completed(futures):
                    outcomes.append(future.result())

        for outcome in sorted(outcomes, key=lambda item: item.index):
            self._collect(builder, outcome)
        document = builder.build()
        LOGGER.info(
            "Parsed %s: %d page(s), %d failed, %d error(s), %d resource(s) resolved",
            label,
            page_count,
            len(document.failed_pages),
            len(document.errors),
            cache.resolutions,
        )
        return document

    @staticmethod
    def _collect(builder: DocumentBuilder, outcome: _PageOutcome) -> None:
        width, height = outcome.size or (0.0, 0.0)
        builder.set_page_size(outcome.index, width, height)
        for error in outcome.errors:
            builder.add_error(error)
        if outcome.elements is None:
            return
        try:
            builder.add_page(outcome.index, width, height, outcome.elements)
        except TaxonomyError as exc:
            LOGGER.warning("Page %d rejected: %s", outcome.index + 1, exc)
            builder.add_error(PageError.from_exception(outcome.index, exc))

    # -- Page handling --------------------------------------------------------

    def _prepare(self, reader: PdfReader, index: int, cache: ResourceCache) -> _PreparedPage:
        with cache.lock:
            try:
                page = reader.pages[index]
                media_box = _media_box(page)
                rotation = int(page.rotation or 0)
                resources = page.get(NameObject("/Resources"))
                content = _decode_contents(page)
            except PdfParserError:
                raise
            except Exception as exc:
                raise ResourceResolutionError("contents", f"page {index + 1}", str(exc)) from exc
        return _PreparedPage(index, media_box, rotation, resources, content)

    def _process_page(self, reader: PdfReader, index: int, cache: ResourceCache) -> _PageOutcome:
        outcome = _PageOutcome(index)
        guard = PageGuard.from_options(self.options)
        try:
            prepared = self._prepare(reader, index, cache)
            outcome.size = prepared.size
            interpreter = ContentStreamInterpreter(
                ResourceResolver(prepared.resources, cache),
                prepared.media_box,
                prepared.rotation,
                self.options,
                guard,
            )
            result = interpreter.interpret(prepared.content)
        except PageProcessingError as exc:
            LOGGER.warning("Page %d failed: %s", index + 1, exc)
            outcome.errors.append(PageError.from_exception(index, exc))
            return outcome
        except Exception as exc:
            LOGGER.exception("Unexpected failure on page %d", index + 1)
            outcome.errors.append(PageError.from_exception(index, exc))
            return outcome

        outcome.errors.extend(PageError.from_exception(index, error) for error in result.errors)
        outcome.elements = self.clusterer.cluster(index, result.events)
        LOGGER.debug(
            "Page %d: %d operator(s), %d event(s), %d error(s)",
            index + 1,
            result.operator_count,
            len(result.events),
            len(result.errors),
        )
        return outcome


def parse(
    document_bytes: bytes,
    options: ParserOptions | None = None,
) -> tuple[PdfDocument, list[PageError]]:
    """Parse ``document_bytes`` and return the document and its page errors."""

    document = PdfParser(options).parse(document_bytes)
    return document, list(document.errors)
