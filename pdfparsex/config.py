"""Configuration objects controlling parsing and layout clustering."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any

from .utils import update_dict

__all__ = ["ClusteringThresholds", "ParserOptions"]


@dataclass(slots=True, frozen=True)
class ClusteringThresholds:
    """Heuristic thresholds used by :class:`pdfparsex.layout.LayoutClusterer`.

    Ratios suffixed ``_ratio`` are multiples of the font size of the glyph or
    word under consideration unless stated otherwise.
    """

    #: Gap (× font size) at which two glyphs are no longer part of one word.
    word_gap_font_size_ratio: float = 0.25
    #: Gap (× average character width of the word) that always splits a word.
    word_gap_char_width_ratio: float = 1.0
    #: Leftwards overlap (× font size) tolerated between consecutive glyphs.
    word_max_backtrack_ratio: float = 0.5
    #: Minimum vertical overlap (fraction of the smaller glyph height).
    word_min_vertical_overlap: float = 0.5
    #: Baseline difference (× font size) tolerated inside a text line.
    line_baseline_tolerance_ratio: float = 0.3
    #: Leftwards overlap (× font size) tolerated between consecutive words.
    line_max_overlap_ratio: float = 0.1
    #: Largest gap (× font size) between two words of the same line.
    line_max_word_gap_ratio: float = 3.0
    #: Relative font size difference tolerated inside a paragraph.
    paragraph_font_size_tolerance: float = 0.1
    #: Largest baseline pitch (× line height) between two lines of a paragraph.
    paragraph_max_line_gap_ratio: float = 1.6
    #: Relative deviation from the established pitch tolerated in a paragraph.
    paragraph_pitch_tolerance: float = 0.25
    #: Indentation (× font size) that starts a new paragraph.
    paragraph_indent_ratio: float = 1.0
    #: Fraction of the paragraph width a line may fall short before it closes the paragraph.
    paragraph_short_line_ratio: float = 0.25
    #: Distance in points within which path segments are considered touching.
    shape_touch_tolerance: float = 0.5
    #: Number of clustered segments from which a cluster becomes a figure.
    figure_min_segments: int = 8

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class ParserOptions:
    """Options controlling a document parse."""

    workers: int = 1
    page_timeout: float | None = None
    max_operators_per_page: int | None = 1_000_000
    max_form_depth: int = 12
    password: str | None = None
    thresholds: ClusteringThresholds = field(default_factory=ClusteringThresholds)

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError("workers must be at least 1")
        if self.page_timeout is not None and self.page_timeout <= 0:
            raise ValueError("page_timeout must be positive")
        if self.max_operators_per_page is not None and self.max_operators_per_page < 1:
            raise ValueError("max_operators_per_page must be positive")
        if self.max_form_depth < 0:
            raise ValueError("max_form_depth must not be negative")

    def with_updates(self, **updates: Any) -> "ParserOptions":
        """Return a copy with every non-``None`` update applied."""

        return replace(self, **update_dict({}, **updates))
