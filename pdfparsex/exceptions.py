"""Custom exception types for :mod:`pdfparsex`."""

from __future__ import annotations


class PdfParserError(Exception):
    """Base exception for all pdfparsex related errors."""


class StructureError(PdfParserError):
    """Raised when the document container cannot be located or opened."""


class PageProcessingError(PdfParserError):
    """Base class for errors confined to a single page."""


class MalformedTokenError(PageProcessingError):
    """Raised when a content stream contains an ill-formed lexical token."""

    def __init__(self, message: str, offset: int) -> None:
        self.offset = offset
        super().__init__(f"{message} (at byte offset {offset})")


class UnbalancedStateError(PageProcessingError):
    """Raised when a graphics state restore has no matching save."""

    def __init__(self, message: str, offset: int | None = None) -> None:
        self.offset = offset
        super().__init__(message)


class ResourceResolutionError(PageProcessingError):
    """Raised when a resource reference is dangling or of an unexpected type."""

    def __init__(self, category: str, name: str, reason: str) -> None:
        self.category = category
        self.name = name
        super().__init__(f"Cannot resolve {category} resource '{name}': {reason}")


class PageAbortedError(PageProcessingError):
    """Raised when a page exceeds its size or time guard."""


class TaxonomyError(PageProcessingError):
    """Raised when an element class is not part of the element taxonomy."""


class SerializerError(PdfParserError):
    """Raised when a document cannot be serialized."""


class VisualizerError(PdfParserError):
    """Raised when a document cannot be visualized."""
