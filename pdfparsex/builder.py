"""Assembly of page element trees into a :class:`~pdfparsex.model.PdfDocument`."""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

from .exceptions import TaxonomyError
from .geometry import BoundingBox
from .model import ContentElement, ElementClass, PageError, PdfDocument

__all__ = ["DocumentBuilder"]

LOGGER = logging.getLogger("pdfparsex.builder")

_EMPTY_PAGE_BOX = BoundingBox(0.0, 0.0, 0.0, 0.0)


class DocumentBuilder:
    """Collect page trees, page sizes and errors of one document.

    Pages may be added in any order; :meth:`build` orders them by index.
    """

    def __init__(self, page_count: int, metadata: Mapping[str, str] | None = None) -> None:
        if page_count < 0:
            raise ValueError("page_count must not be negative")
        self.page_count = page_count
        self.metadata = dict(metadata or {})
        self._pages: dict[int, ContentElement] = {}
        self._sizes: list[tuple[float, float]] = [(0.0, 0.0)] * page_count
        self._errors: list[PageError] = []

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.page_count:
            raise IndexError(f"Page index {index} out of range for {self.page_count} page(s)")

    @staticmethod
    def _validate(page_index: int, elements: Sequence[ContentElement]) -> None:
        for element in elements:
            for node in element.walk():
                if not isinstance(node.kind, ElementClass):
                    raise TaxonomyError(f"{node.kind!r} is not a content element class")
                if node.kind is ElementClass.PAGE:
                    raise TaxonomyError("Page elements cannot be nested inside a page")
                if node.page_index != page_index:
                    raise TaxonomyError(
                        f"Element of page {node.page_index + 1} placed on page {page_index + 1}"
                    )

    def add_page(
        self,
        index: int,
        width: float,
        height: float,
        elements: Sequence[ContentElement],
    ) -> ContentElement:
        """Wrap ``elements`` into the page element of page ``index``."""

        self._check_index(index)
        self._validate(index, elements)
        bbox = BoundingBox.union_all(element.bbox for element in elements) if elements else _EMPTY_PAGE_BOX
        page = ContentElement(
            kind=ElementClass.PAGE,
            bbox=bbox,
            page_index=index,
            children=tuple(elements),
        )
        page.attach_children()
        self._pages[index] = page
        self.set_page_size(index, width, height)
        LOGGER.debug("Added page %d with %d top level element(s)", index + 1, len(elements))
        return page

    def add_error(self, error: PageError) -> None:
        self._check_index(error.page_index)
        self._errors.append(error)

    def set_page_size(self, index: int, width: float, height: float) -> None:
        self._check_index(index)
        self._sizes[index] = (float(width), float(height))

    def build(self) -> PdfDocument:
        pages = tuple(self._pages[index] for index in sorted(self._pages))
        errors = tuple(sorted(self._errors, key=lambda error: error.page_index))
        return PdfDocument(
            pages=pages,
            page_count=self.page_count,
            page_sizes=tuple(self._sizes),
            metadata=dict(self.metadata),
            errors=errors,
        )
