"""
pdfparsex - Extract structured, located content elements from PDF content streams.

The engine tokenizes and interprets the content stream of every page,
resolves fonts, XObjects and colour spaces, and clusters the resulting
glyphs and paths into words, text lines, paragraphs, figures and shapes.

Quick Start:
    >>> from pdfparsex import PdfParser, ElementClass
    >>> document = PdfParser().parse_path('input.pdf')
    >>> [word.text for word in document.elements(ElementClass.WORD)]

Main Classes:
    - PdfParser: Parse a document into a PdfDocument
    - ParserOptions / ClusteringThresholds: Parsing and layout configuration
    - DocumentSerializer: JSON and XML output
    - DocumentVisualizer: Bounding box visualization

For CLI usage, use the 'pdfparsex' command after installation.
"""

# Core classes
from pdfparsex.config import ClusteringThresholds, ParserOptions
from pdfparsex.parser import PdfParser, parse

# Document model
from pdfparsex.model import (
    ContentElement,
    ElementClass,
    Glyph,
    ImagePlacement,
    PageError,
    PathSegment,
    PdfDocument,
)

# Exceptions
from pdfparsex.exceptions import (
    MalformedTokenError,
    PageAbortedError,
    PageProcessingError,
    PdfParserError,
    ResourceResolutionError,
    SerializerError,
    StructureError,
    TaxonomyError,
    UnbalancedStateError,
    VisualizerError,
)

# Collaborators
from pdfparsex.serializer import DocumentSerializer, SerializationFormat
from pdfparsex.visualizer import DocumentVisualizer

__version__ = "1.0.0"

__all__ = [
    # Main classes
    "PdfParser",
    "parse",
    "ParserOptions",
    "ClusteringThresholds",
    # Document model
    "ContentElement",
    "ElementClass",
    "Glyph",
    "ImagePlacement",
    "PageError",
    "PathSegment",
    "PdfDocument",
    # Exceptions
    "PdfParserError",
    "StructureError",
    "PageProcessingError",
    "MalformedTokenError",
    "UnbalancedStateError",
    "ResourceResolutionError",
    "PageAbortedError",
    "TaxonomyError",
    "SerializerError",
    "VisualizerError",
    # Collaborators
    "DocumentSerializer",
    "SerializationFormat",
    "DocumentVisualizer",
    # Version info
    "__version__",
]
