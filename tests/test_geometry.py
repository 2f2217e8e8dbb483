from __future__ import annotations

import math

import pytest

from pdfparsex.geometry import (
    IDENTITY,
    BoundingBox,
    apply,
    bbox_of_points,
    flatten_cubic,
    glyph_box,
    invert,
    multiply,
    page_matrix,
    sanitize_matrix,
    transform_box,
    translation,
)


def _close(left, right, tolerance=1e-9):
    return all(math.isclose(a, b, abs_tol=tolerance) for a, b in zip(left, right))


def test_multiply_applies_left_operand_first():
    scale = (2.0, 0.0, 0.0, 2.0, 0.0, 0.0)
    combined = multiply(translation(1.0, 0.0), scale)

    assert apply(combined, 0.0, 0.0) == (2.0, 0.0)
    assert multiply(IDENTITY, scale) == scale
    assert multiply(scale, IDENTITY) == scale


def test_invert_round_trips():
    matrix = (2.0, 0.5, -0.25, 3.0, 10.0, -4.0)

    assert _close(multiply(matrix, invert(matrix)), IDENTITY)
    assert invert((0.0, 0.0, 0.0, 0.0, 1.0, 1.0)) == IDENTITY


@pytest.mark.parametrize(
    "values",
    [
        [1, 0, 0, 1, 0],
        [1, 0, 0, 1, 0, float("nan")],
        [1, 0, 0, 1, float("inf"), 0],
        [1, 0, 0, 1, "x", 0],
        [True, 0, 0, 1, 0, 0],
    ],
)
def test_sanitize_matrix_clamps_malformed_input(values):
    assert sanitize_matrix(values) == IDENTITY


def test_sanitize_matrix_keeps_valid_input():
    assert sanitize_matrix([1, 2, 3, 4, 5.5, 6]) == (1.0, 2.0, 3.0, 4.0, 5.5, 6.0)


def test_bounding_box_operations():
    first = BoundingBox(0, 0, 10, 10)
    second = BoundingBox(5, 5, 20, 8)

    assert first.union(second) == BoundingBox(0, 0, 20, 10)
    assert first.intersection(second) == BoundingBox(5, 5, 10, 8)
    assert first.intersects(BoundingBox(10, 10, 12, 12))
    assert first.intersection(BoundingBox(11, 0, 12, 1)) is None
    assert first.expand(1) == BoundingBox(-1, -1, 11, 11)
    assert first.center == (5.0, 5.0)
    assert first.horizontal_gap(BoundingBox(12, 0, 14, 10)) == 2
    assert first.vertical_overlap(second) == pytest.approx(1.0)
    assert first.vertical_overlap(BoundingBox(0, 5, 1, 20)) == pytest.approx(0.5)
    assert BoundingBox.union_all([first, second, BoundingBox(-3, 2, 0, 3)]) == BoundingBox(-3, 0, 20, 10)


def test_union_all_requires_boxes():
    with pytest.raises(ValueError):
        BoundingBox.union_all([])


def test_transform_box_and_points():
    rotate = (0.0, 1.0, -1.0, 0.0, 0.0, 0.0)

    assert transform_box(rotate, BoundingBox(0, 0, 10, 5)) == BoundingBox(-5, 0, 0, 10)
    assert bbox_of_points([(3, 4), (-1, 7), (2, 0)]) == BoundingBox(-1, 0, 3, 7)
    assert bbox_of_points([]) == BoundingBox(0, 0, 0, 0)


def test_page_matrix_translates_media_box_origin():
    matrix = page_matrix((10, 20, 210, 120), 0)

    assert apply(matrix, 10, 20) == (0.0, 0.0)
    assert apply(matrix, 210, 120) == (200.0, 100.0)


@pytest.mark.parametrize(
    ("rotation", "lower_left", "lower_right", "size"),
    [
        (90, (0.0, 200.0), (0.0, 0.0), (100.0, 200.0)),
        (180, (200.0, 100.0), (0.0, 100.0), (200.0, 100.0)),
        (270, (100.0, 0.0), (100.0, 200.0), (100.0, 200.0)),
        (-90, (100.0, 0.0), (100.0, 200.0), (100.0, 200.0)),
    ],
)
def test_page_matrix_rotates_clockwise(rotation, lower_left, lower_right, size):
    media_box = (0, 0, 200, 100)
    matrix = page_matrix(media_box, rotation)

    assert _close(apply(matrix, 0, 0), lower_left)
    assert _close(apply(matrix, 200, 0), lower_right)
    page = transform_box(matrix, BoundingBox(*media_box))
    assert (page.width, page.height) == size
    assert (page.x0, page.y0) == (0.0, 0.0)


def test_glyph_box_uses_text_rendering_matrix():
    trm = (12.0, 0.0, 0.0, 12.0, 100.0, 700.0)

    assert glyph_box(trm, 0.5, 0.75, -0.25) == BoundingBox(100.0, 697.0, 106.0, 709.0)


def test_flatten_cubic_keeps_end_points():
    points = flatten_cubic((0, 0), (0, 10), (10, 10), (10, 0), steps=4)

    assert len(points) == 5
    assert points[0] == (0.0, 0.0)
    assert points[-1] == (10.0, 0.0)
    assert points[2] == pytest.approx((5.0, 7.5))
