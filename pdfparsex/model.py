"""Drawing events, content elements and the document model."""

from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, Mapping, Sequence, Union

from .geometry import BoundingBox

__all__ = [
    "Color",
    "ContentElement",
    "DrawingEvent",
    "ElementClass",
    "Glyph",
    "ImagePlacement",
    "PageError",
    "PaintMode",
    "PathSegment",
    "PdfDocument",
]

Color = tuple[float, float, float]


# -- Drawing events -----------------------------------------------------------


class PaintMode(Enum):
    STROKE = "stroke"
    FILL = "fill"
    FILL_STROKE = "fill_stroke"


@dataclass(slots=True, frozen=True)
class Glyph:
    """A single character code placed on the page."""

    code: int
    text: str
    font_name: str
    font_size: float
    bbox: BoundingBox
    origin: tuple[float, float]
    color: Color = (0.0, 0.0, 0.0)
    render_mode: int = 0

    @property
    def is_whitespace(self) -> bool:
        return not self.text or self.text.isspace()


@dataclass(slots=True, frozen=True)
class PathSegment:
    """One painted subpath, flattened into page space points."""

    points: tuple[tuple[float, float], ...]
    paint_mode: PaintMode
    bbox: BoundingBox
    fill_rule: str = "nonzero"
    stroke_color: Color | None = None
    fill_color: Color | None = None
    line_width: float = 1.0

    @property
    def paint_signature(self) -> tuple[object, ...]:
        return (self.paint_mode, self.fill_rule, self.stroke_color, self.fill_color)


@dataclass(slots=True, frozen=True)
class ImagePlacement:
    """Placement of an image XObject or inline image."""

    bbox: BoundingBox
    name: str | None = None
    inline: bool = False


DrawingEvent = Union[Glyph, PathSegment, ImagePlacement]


# -- Content elements ---------------------------------------------------------


class ElementClass(Enum):
    """Closed taxonomy of content element classes.

    New members may be added; existing values never change because they are
    part of the serialization format.
    """

    CHARACTER = "character"
    WORD = "word"
    TEXT_LINE = "text_line"
    PARAGRAPH = "paragraph"
    FIGURE = "figure"
    SHAPE = "shape"
    TABLE = "table"
    PAGE = "page"

    @property
    def plural(self) -> str:
        return f"{self.value}s"

    @property
    def is_textual(self) -> bool:
        return self in _TEXTUAL_CLASSES

    @classmethod
    def names(cls) -> list[str]:
        return [member.value for member in cls]

    @classmethod
    def from_string(cls, name: str) -> "ElementClass":
        key = name.strip().lower().replace("-", "_")
        for member in cls:
            if key in {member.value, member.plural}:
                return member
        raise ValueError(f"Unknown element class: {name!r}")

    @classmethod
    def from_strings(cls, names: Iterable[str]) -> list["ElementClass"]:
        result: list[ElementClass] = []
        for name in names:
            member = cls.from_string(name)
            if member not in result:
                result.append(member)
        return result


_TEXTUAL_CLASSES = frozenset(
    {ElementClass.CHARACTER, ElementClass.WORD, ElementClass.TEXT_LINE, ElementClass.PARAGRAPH}
)


@dataclass(frozen=True, eq=True)
class ContentElement:
    """Node of a page's element tree.

    ``children`` are owned by the element; ``parent`` is a weak, non-owning
    back reference wired by :class:`pdfparsex.builder.DocumentBuilder`.
    """

    kind: ElementClass
    bbox: BoundingBox
    page_index: int
    children: tuple["ContentElement", ...] = ()
    text: str | None = None
    font_name: str | None = None
    font_size: float | None = None
    color: Color | None = None
    role: str | None = None
    _parent: "weakref.ReferenceType[ContentElement] | None" = field(
        default=None, repr=False, compare=False
    )

    @property
    def page_number(self) -> int:
        return self.page_index + 1

    @property
    def parent(self) -> "ContentElement | None":
        if self._parent is None:
            return None
        return self._parent()

    def attach_children(self) -> None:
        """Point the parent link of every descendant at its owner."""

        for child in self.children:
            object.__setattr__(child, "_parent", weakref.ref(self))
            child.attach_children()

    def walk(self) -> Iterator["ContentElement"]:
        """Yield this element and all descendants in depth-first order."""

        yield self
        for child in self.children:
            yield from child.walk()

    def iter(self, *kinds: ElementClass) -> Iterator["ContentElement"]:
        for element in self.walk():
            if not kinds or element.kind in kinds:
                yield element


# -- Document -----------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class PageError:
    """Failure recorded for a single page."""

    page_index: int
    kind: str
    message: str
    offset: int | None = None

    @property
    def page_number(self) -> int:
        return self.page_index + 1

    @classmethod
    def from_exception(cls, page_index: int, exc: BaseException) -> "PageError":
        return cls(
            page_index=page_index,
            kind=type(exc).__name__,
            message=str(exc),
            offset=getattr(exc, "offset", None),
        )


@dataclass(slots=True, frozen=True)
class PdfDocument:
    """Root of the extracted document model."""

    pages: tuple[ContentElement, ...]
    page_count: int
    page_sizes: tuple[tuple[float, float], ...]
    metadata: Mapping[str, str] = field(default_factory=dict)
    errors: tuple[PageError, ...] = ()

    def page(self, index: int) -> ContentElement | None:
        """Return the tree of page ``index`` or ``None`` when the page failed."""

        for page in self.pages:
            if page.page_index == index:
                return page
        return None

    def page_size(self, index: int) -> tuple[float, float]:
        return self.page_sizes[index]

    @property
    def failed_pages(self) -> list[int]:
        parsed = {page.page_index for page in self.pages}
        return [index for index in range(self.page_count) if index not in parsed]

    def errors_for(self, index: int) -> list[PageError]:
        return [error for error in self.errors if error.page_index == index]

    def iter_elements(self, *kinds: ElementClass) -> Iterator[ContentElement]:
        for page in self.pages:
            yield from page.iter(*kinds)

    def elements(self, kind: ElementClass) -> list[ContentElement]:
        return list(self.iter_elements(kind))


def element_text(elements: Sequence[ContentElement], separator: str) -> str:
    return separator.join(element.text or "" for element in elements)
