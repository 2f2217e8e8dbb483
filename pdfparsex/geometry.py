"""Matrix and bounding box helpers.

All coordinates produced by pdfparsex live in *page space*: the origin is the
lower-left corner of the (rotated) media box, x grows to the right and y grows
upwards, as in PDF user space.  :func:`page_matrix` builds the base
transformation that maps a page's user space into that convention.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Sequence

__all__ = [
    "IDENTITY",
    "BoundingBox",
    "Matrix",
    "apply",
    "bbox_of_points",
    "flatten_cubic",
    "glyph_box",
    "glyph_origin",
    "invert",
    "multiply",
    "page_matrix",
    "sanitize_matrix",
    "scale_factors",
    "transform_box",
    "translation",
]

LOGGER = logging.getLogger("pdfparsex.geometry")

Matrix = tuple[float, float, float, float, float, float]

IDENTITY: Matrix = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)


@dataclass(slots=True, frozen=True)
class BoundingBox:
    """Axis-aligned rectangle in page space."""

    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def width(self) -> float:
        return max(0.0, self.x1 - self.x0)

    @property
    def height(self) -> float:
        return max(0.0, self.y1 - self.y0)

    @property
    def center(self) -> tuple[float, float]:
        return (self.x0 + self.x1) / 2.0, (self.y0 + self.y1) / 2.0

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.x0, self.y0, self.x1, self.y1)

    def union(self, other: "BoundingBox") -> "BoundingBox":
        return BoundingBox(
            min(self.x0, other.x0),
            min(self.y0, other.y0),
            max(self.x1, other.x1),
            max(self.y1, other.y1),
        )

    def expand(self, amount: float) -> "BoundingBox":
        return BoundingBox(self.x0 - amount, self.y0 - amount, self.x1 + amount, self.y1 + amount)

    def intersects(self, other: "BoundingBox") -> bool:
        return (
            self.x0 <= other.x1
            and other.x0 <= self.x1
            and self.y0 <= other.y1
            and other.y0 <= self.y1
        )

    def intersection(self, other: "BoundingBox") -> "BoundingBox | None":
        if not self.intersects(other):
            return None
        return BoundingBox(
            max(self.x0, other.x0),
            max(self.y0, other.y0),
            min(self.x1, other.x1),
            min(self.y1, other.y1),
        )

    def vertical_overlap(self, other: "BoundingBox") -> float:
        """Overlap of the two y-ranges relative to the smaller height.

        Degenerate (zero height) boxes overlap fully when their y-ranges touch.
        """

        overlap = min(self.y1, other.y1) - max(self.y0, other.y0)
        smaller = min(self.height, other.height)
        if smaller <= 0.0:
            return 1.0 if overlap >= 0.0 else 0.0
        return max(0.0, overlap) / smaller

    def horizontal_gap(self, other: "BoundingBox") -> float:
        """Distance from this box's right edge to ``other``'s left edge."""

        return other.x0 - self.x1

    @classmethod
    def union_all(cls, boxes: Iterable["BoundingBox"]) -> "BoundingBox":
        iterator = iter(boxes)
        try:
            result = next(iterator)
        except StopIteration:
            raise ValueError("union_all() requires at least one bounding box") from None
        for box in iterator:
            result = result.union(box)
        return result


def multiply(lhs: Matrix, rhs: Matrix) -> Matrix:
    """Return ``lhs × rhs`` (apply ``lhs`` first, then ``rhs``)."""

    a1, b1, c1, d1, e1, f1 = lhs
    a2, b2, c2, d2, e2, f2 = rhs
    return (
        a1 * a2 + b1 * c2,
        a1 * b2 + b1 * d2,
        c1 * a2 + d1 * c2,
        c1 * b2 + d1 * d2,
        e1 * a2 + f1 * c2 + e2,
        e1 * b2 + f1 * d2 + f2,
    )


def apply(matrix: Matrix, x: float, y: float) -> tuple[float, float]:
    a, b, c, d, e, f = matrix
    return a * x + c * y + e, b * x + d * y + f


def translation(tx: float, ty: float) -> Matrix:
    return (1.0, 0.0, 0.0, 1.0, tx, ty)


def scale_factors(matrix: Matrix) -> tuple[float, float]:
    """Return the lengths of the transformed unit vectors."""

    a, b, c, d, _e, _f = matrix
    return math.hypot(a, b), math.hypot(c, d)


def sanitize_matrix(values: Sequence[object]) -> Matrix:
    """Coerce ``values`` into a matrix, clamping malformed input to identity."""

    if len(values) != 6:
        LOGGER.warning("Matrix with %d coefficients replaced by identity", len(values))
        return IDENTITY
    coefficients: list[float] = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            LOGGER.warning("Non-numeric matrix coefficient %r replaced by identity", value)
            return IDENTITY
        number = float(value)
        if not math.isfinite(number):
            LOGGER.warning("Non-finite matrix coefficient %r replaced by identity", value)
            return IDENTITY
        coefficients.append(number)
    return tuple(coefficients)  # type: ignore[return-value]


def bbox_of_points(points: Iterable[tuple[float, float]]) -> BoundingBox:
    xs: list[float] = []
    ys: list[float] = []
    for x, y in points:
        xs.append(x)
        ys.append(y)
    if not xs:
        return BoundingBox(0.0, 0.0, 0.0, 0.0)
    return BoundingBox(min(xs), min(ys), max(xs), max(ys))


def transform_box(matrix: Matrix, box: BoundingBox) -> BoundingBox:
    corners = (
        apply(matrix, box.x0, box.y0),
        apply(matrix, box.x1, box.y0),
        apply(matrix, box.x1, box.y1),
        apply(matrix, box.x0, box.y1),
    )
    return bbox_of_points(corners)


def page_matrix(media_box: Sequence[float], rotation: int = 0) -> Matrix:
    """Map PDF user space of a page into page space.

    The media box's lower-left corner becomes the origin and ``/Rotate`` is
    applied clockwise, matching how viewers display the page.
    """

    left, bottom, right, top = (float(value) for value in media_box)
    width = right - left
    height = top - bottom
    base = translation(-left, -bottom)
    rotation = rotation % 360
    if rotation == 90:
        turn: Matrix = (0.0, -1.0, 1.0, 0.0, 0.0, width)
    elif rotation == 180:
        turn = (-1.0, 0.0, 0.0, -1.0, width, height)
    elif rotation == 270:
        turn = (0.0, 1.0, -1.0, 0.0, height, 0.0)
    else:
        return base
    return multiply(base, turn)


def glyph_origin(trm: Matrix) -> tuple[float, float]:
    return apply(trm, 0.0, 0.0)


def glyph_box(trm: Matrix, width: float, ascent: float, descent: float) -> BoundingBox:
    """Bounding box of a glyph in page space.

    ``width``, ``ascent`` and ``descent`` are expressed in text space units
    per unit font size (glyph space divided by 1000); ``trm`` is the text
    rendering matrix that already includes font size, horizontal scaling and
    rise.
    """

    return transform_box(trm, BoundingBox(0.0, descent, width, ascent))


def flatten_cubic(
    p0: tuple[float, float],
    p1: tuple[float, float],
    p2: tuple[float, float],
    p3: tuple[float, float],
    steps: int = 12,
) -> list[tuple[float, float]]:
    """Approximate a cubic Bézier curve by ``steps`` line segments."""

    steps = max(1, steps)
    points: list[tuple[float, float]] = []
    for index in range(steps + 1):
        t = index / steps
        mt = 1.0 - t
        x = mt**3 * p0[0] + 3 * mt**2 * t * p1[0] + 3 * mt * t**2 * p2[0] + t**3 * p3[0]
        y = mt**3 * p0[1] + 3 * mt**2 * t * p1[1] + 3 * mt * t**2 * p2[1] + t**3 * p3[1]
        points.append((x, y))
    return points


def invert(matrix: Matrix) -> Matrix:
    """Return the inverse of ``matrix``; singular matrices yield identity."""

    a, b, c, d, e, f = matrix
    determinant = a * d - b * c
    if determinant == 0.0:
        LOGGER.warning("Singular matrix %r cannot be inverted", matrix)
        return IDENTITY
    ia = d / determinant
    ib = -b / determinant
    ic = -c / determinant
    id_ = a / determinant
    return (ia, ib, ic, id_, -(e * ia + f * ic), -(e * ib + f * id_))
