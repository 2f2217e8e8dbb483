"""Reconstruction of words, lines, paragraphs and figures from drawing events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from statistics import fmean
from typing import Sequence

from .config import ClusteringThresholds
from .geometry import BoundingBox
from .model import (
    ContentElement,
    DrawingEvent,
    ElementClass,
    Glyph,
    ImagePlacement,
    PathSegment,
    element_text,
)

__all__ = ["LayoutClusterer"]

LOGGER = logging.getLogger("pdfparsex.layout")


@dataclass(slots=True)
class _Run:
    """A word or text line together with the metrics used while grouping."""

    element: ContentElement
    baseline: float
    font_size: float


def _character(page_index: int, glyph: Glyph) -> ContentElement:
    return ContentElement(
        kind=ElementClass.CHARACTER,
        bbox=glyph.bbox,
        page_index=page_index,
        text=glyph.text,
        font_name=glyph.font_name,
        font_size=glyph.font_size,
        color=glyph.color,
    )


def _shape(page_index: int, segments: Sequence[PathSegment]) -> ContentElement:
    first = segments[0]
    return ContentElement(
        kind=ElementClass.SHAPE,
        bbox=BoundingBox.union_all(segment.bbox for segment in segments),
        page_index=page_index,
        color=first.fill_color or first.stroke_color,
        role=first.paint_mode.value,
    )


class _UnionFind:
    def __init__(self, size: int) -> None:
        self.parent = list(range(size))

    def find(self, item: int) -> int:
        while self.parent[item] != item:
            self.parent[item] = self.parent[self.parent[item]]
            item = self.parent[item]
        return item

    def union(self, left: int, right: int) -> None:
        left_root, right_root = self.find(left), self.find(right)
        if left_root != right_root:
            self.parent[max(left_root, right_root)] = min(left_root, right_root)


class LayoutClusterer:
    """Group the drawing events of a page into content elements.

    Top level elements are returned in reading order: paragraphs first, then
    figures, then shapes.  Each group keeps the order in which its first
    event appeared in the content stream.
    """

    def __init__(self, thresholds: ClusteringThresholds | None = None) -> None:
        self.thresholds = thresholds or ClusteringThresholds()

    def cluster(self, page_index: int, events: Sequence[DrawingEvent]) -> list[ContentElement]:
        try:
            return self._cluster(page_index, events)
        except Exception:
            LOGGER.exception("Layout clustering failed on page %d; keeping ungrouped events", page_index + 1)
            return self._ungrouped(page_index, events)

    def _cluster(self, page_index: int, events: Sequence[DrawingEvent]) -> list[ContentElement]:
        glyphs: list[Glyph | None] = []
        segments: list[PathSegment] = []
        images: list[ImagePlacement] = []
        for event in events:
            if isinstance(event, Glyph):
                # Whitespace glyphs only separate words.
                glyphs.append(None if event.is_whitespace else event)
            elif isinstance(event, PathSegment):
                segments.append(event)
            elif isinstance(event, ImagePlacement):
                images.append(event)

        words = self.group_words(page_index, glyphs)
        lines = self.group_lines(page_index, words)
        paragraphs = self.group_paragraphs(page_index, lines)
        figures, shapes = self.group_paths(page_index, segments)
        image_figures = [
            ContentElement(
                kind=ElementClass.FIGURE,
                bbox=image.bbox,
                page_index=page_index,
                role="inline-image" if image.inline else "image",
            )
            for image in images
        ]
        LOGGER.debug(
            "Page %d: %d word(s), %d line(s), %d paragraph(s), %d figure(s), %d shape(s)",
            page_index + 1,
            len(words),
            len(lines),
            len(paragraphs),
            len(figures) + len(image_figures),
            len(shapes),
        )
        return [run.element for run in paragraphs] + image_figures + figures + shapes

    @staticmethod
    def _ungrouped(page_index: int, events: Sequence[DrawingEvent]) -> list[ContentElement]:
        elements: list[ContentElement] = []
        for event in events:
            if isinstance(event, Glyph):
                if not event.is_whitespace:
                    elements.append(_character(page_index, event))
            elif isinstance(event, PathSegment):
                elements.append(_shape(page_index, [event]))
            else:
                elements.append(ContentElement(kind=ElementClass.FIGURE, bbox=event.bbox, page_index=page_index))
        return elements

    # -- Characters to words --------------------------------------------------

    def _joins_word(self, word: list[Glyph], glyph: Glyph) -> bool:
        limits = self.thresholds
        previous = word[-1]
        if glyph.font_name != previous.font_name or glyph.font_size != previous.font_size:
            return False
        if previous.bbox.vertical_overlap(glyph.bbox) < limits.word_min_vertical_overlap:
            return False
        size = glyph.font_size
        average_width = fmean(item.bbox.width for item in word)
        gap = previous.bbox.horizontal_gap(glyph.bbox)
        upper = limits.word_gap_font_size_ratio * size
        if average_width > 0:
            upper = min(upper, limits.word_gap_char_width_ratio * average_width)
        return -limits.word_max_backtrack_ratio * size < gap < upper

    def group_words(self, page_index: int, glyphs: Sequence[Glyph | None]) -> list[_Run]:
        """Group glyphs (``None`` marks a whitespace separator) into words."""

        groups: list[list[Glyph]] = []
        current: list[Glyph] = []
        for glyph in glyphs:
            if glyph is None:
                if current:
                    groups.append(current)
                current = []
                continue
            if current and not self._joins_word(current, glyph):
                groups.append(current)
                current = []
            current.append(glyph)
        if current:
            groups.append(current)

        words: list[_Run] = []
        for group in groups:
            characters = tuple(_character(page_index, glyph) for glyph in group)
            first = group[0]
            element = ContentElement(
                kind=ElementClass.WORD,
                bbox=BoundingBox.union_all(character.bbox for character in characters),
                page_index=page_index,
                children=characters,
                text=element_text(characters, ""),
                font_name=first.font_name,
                font_size=first.font_size,
                color=first.color,
            )
            words.append(_Run(element, first.origin[1], first.font_size))
        return words

    # -- Words to lines -------------------------------------------------------

    def _joins_line(self, line: list[_Run], word: _Run) -> bool:
        limits = self.thresholds
        size = max(word.font_size, line[0].font_size)
        if not abs(word.baseline - line[0].baseline) < limits.line_baseline_tolerance_ratio * size:
            return False
        gap = line[-1].element.bbox.horizontal_gap(word.element.bbox)
        return -limits.line_max_overlap_ratio * size < gap < limits.line_max_word_gap_ratio * size

    def group_lines(self, page_index: int, words: Sequence[_Run]) -> list[_Run]:
        groups: list[list[_Run]] = []
        for word in words:
            if groups and self._joins_line(groups[-1], word):
                groups[-1].append(word)
            else:
                groups.append([word])

        lines: list[_Run] = []
        for group in groups:
            ordered = sorted(group, key=lambda run: run.element.bbox.x0)
            children = tuple(run.element for run in ordered)
            first = group[0]
            element = ContentElement(
                kind=ElementClass.TEXT_LINE,
                bbox=BoundingBox.union_all(child.bbox for child in children),
                page_index=page_index,
                children=children,
                text=element_text(children, " "),
                font_name=first.element.font_name,
                font_size=first.font_size,
                color=first.element.color,
            )
            lines.append(_Run(element, first.baseline, max(run.font_size for run in group)))
        return lines

    # -- Lines to paragraphs --------------------------------------------------

    def _joins_paragraph(self, paragraph: list[_Run], line: _Run) -> bool:
        limits = self.thresholds
        previous = paragraph[-1]
        reference = paragraph[0].font_size
        if abs(line.font_size - reference) > limits.paragraph_font_size_tolerance * reference:
            return False
        pitch = previous.baseline - line.baseline
        if not pitch > 0.0:
            return False
        if not pitch < limits.paragraph_max_line_gap_ratio * previous.font_size:
            return False
        if len(paragraph) >= 2:
            established = paragraph[0].baseline - paragraph[1].baseline
            if not abs(pitch - established) < limits.paragraph_pitch_tolerance * established:
                return False
        area = BoundingBox.union_all(run.element.bbox for run in paragraph)
        box = line.element.bbox
        if not (box.x0 < area.x1 and area.x0 < box.x1):
            return False
        if not box.x0 - area.x0 < limits.paragraph_indent_ratio * line.font_size:
            return False
        if len(paragraph) >= 2:
            shortfall = area.x1 - previous.element.bbox.x1
            if not shortfall < limits.paragraph_short_line_ratio * area.width:
                return False
        return True

    def group_paragraphs(self, page_index: int, lines: Sequence[_Run]) -> list[_Run]:
        groups: list[list[_Run]] = []
        for line in lines:
            if groups and self._joins_paragraph(groups[-1], line):
                groups[-1].append(line)
            else:
                groups.append([line])

        paragraphs: list[_Run] = []
        for group in groups:
            children = tuple(run.element for run in group)
            first = group[0]
            element = ContentElement(
                kind=ElementClass.PARAGRAPH,
                bbox=BoundingBox.union_all(child.bbox for child in children),
                page_index=page_index,
                children=children,
                text=element_text(children, "\n"),
                font_name=first.element.font_name,
                font_size=first.font_size,
                color=first.element.color,
            )
            paragraphs.append(_Run(element, first.baseline, first.font_size))
        return paragraphs

    # -- Paths to shapes and figures ------------------------------------------

    def group_paths(
        self,
        page_index: int,
        segments: Sequence[PathSegment],
    ) -> tuple[list[ContentElement], list[ContentElement]]:
        """Return ``(figures, shapes)`` built from touching path segments."""

        tolerance = self.thresholds.shape_touch_tolerance
        sets = _UnionFind(len(segments))
        expanded = [segment.bbox.expand(tolerance) for segment in segments]
        by_left = sorted(range(len(segments)), key=lambda index: expanded[index].x0)
        for position, index in enumerate(by_left):
            box = expanded[index]
            for other in by_left[position + 1 :]:
                if expanded[other].x0 > box.x1:
                    break
                if (
                    segments[index].paint_signature == segments[other].paint_signature
                    and box.intersects(expanded[other])
                ):
                    sets.union(index, other)

        clusters: dict[int, list[PathSegment]] = {}
        for index, segment in enumerate(segments):
            clusters.setdefault(sets.find(index), []).append(segment)

        figures: list[ContentElement] = []
        shapes: list[ContentElement] = []
        for root in sorted(clusters):
            members = clusters[root]
            if len(members) < self.thresholds.figure_min_segments:
                shapes.append(_shape(page_index, members))
                continue
            children = tuple(_shape(page_index, [segment]) for segment in members)
            figures.append(
                ContentElement(
                    kind=ElementClass.FIGURE,
                    bbox=BoundingBox.union_all(child.bbox for child in children),
                    page_index=page_index,
                    children=children,
                    role="drawing",
                )
            )
        return figures, shapes
