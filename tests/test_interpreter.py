from __future__ import annotations

import logging

import pytest
from pypdf.generic import ArrayObject, DictionaryObject, FloatObject, NameObject, NumberObject

from pdfparsex.config import ParserOptions
from pdfparsex.exceptions import (
    MalformedTokenError,
    PageAbortedError,
    ResourceResolutionError,
    UnbalancedStateError,
)
from pdfparsex.geometry import BoundingBox
from pdfparsex.interpreter import PageGuard
from pdfparsex.model import Glyph, ImagePlacement, PaintMode, PathSegment


def glyphs(result):
    return [event for event in result.events if isinstance(event, Glyph)]


def paths(result):
    return [event for event in result.events if isinstance(event, PathSegment)]


def images(result):
    return [event for event in result.events if isinstance(event, ImagePlacement)]


def _array(*values):
    return ArrayObject([NumberObject(value) for value in values])


def _form(stream_factory, content: bytes, bbox=(0, 0, 1000, 1000), matrix=(1, 0, 0, 1, 0, 0)):
    return stream_factory(
        content,
        {
            "/Type": NameObject("/XObject"),
            "/Subtype": NameObject("/Form"),
            "/BBox": _array(*bbox),
            "/Matrix": _array(*matrix),
        },
    )


def _image(stream_factory):
    return stream_factory(
        b"\x00",
        {
            "/Type": NameObject("/XObject"),
            "/Subtype": NameObject("/Image"),
            "/Width": NumberObject(1),
            "/Height": NumberObject(1),
        },
    )


# -- Text ---------------------------------------------------------------------


def test_single_glyph_geometry(interpret):
    result = interpret(b"BT /F1 12 Tf 100 700 Td (A) Tj ET")

    (glyph,) = glyphs(result)
    assert glyph.text == "A"
    assert glyph.code == 65
    assert glyph.font_name == "Helvetica"
    assert glyph.font_size == 12.0
    assert glyph.origin == (100.0, 700.0)
    assert glyph.bbox == BoundingBox(100.0, 697.0, 106.0, 709.0)
    assert glyph.color == (0.0, 0.0, 0.0)
    assert result.errors == []
    assert result.stack_depth == 0


def test_glyphs_advance_by_width(interpret):
    result = interpret(b"BT /F1 12 Tf 100 700 Td (ABCD) Tj ET")

    assert [glyph.bbox.x0 for glyph in glyphs(result)] == [100.0, 106.0, 112.0, 118.0]
    assert sum(glyph.bbox.width for glyph in glyphs(result)) == pytest.approx(24.0)


def test_character_spacing(interpret):
    result = interpret(b"BT /F1 12 Tf 2 Tc 100 700 Td (AB) Tj ET")

    assert glyphs(result)[1].bbox.x0 == pytest.approx(108.0)


def test_word_spacing_applies_to_space_only(interpret):
    result = interpret(b"BT /F1 12 Tf 5 Tw 100 700 Td (A B) Tj ET")

    first, space, last = glyphs(result)
    assert space.text == " "
    assert space.bbox.x0 == pytest.approx(106.0)
    assert last.bbox.x0 == pytest.approx(117.0)


def test_horizontal_scaling(interpret):
    result = interpret(b"BT /F1 12 Tf 50 Tz 100 700 Td (AB) Tj ET")

    first, second = glyphs(result)
    assert first.bbox.width == pytest.approx(3.0)
    assert second.bbox.x0 == pytest.approx(103.0)


def test_text_rise(interpret):
    result = interpret(b"BT /F1 12 Tf 5 Ts 100 700 Td (A) Tj ET")

    (glyph,) = glyphs(result)
    assert glyph.origin == pytest.approx((100.0, 705.0))
    assert glyph.bbox.y0 == pytest.approx(702.0)


@pytest.mark.parametrize(("adjustment", "expected"), [(b"-1000", 118.0), (b"500", 100.0)])
def test_show_array_adjusts_position(interpret, adjustment, expected):
    result = interpret(b"BT /F1 12 Tf 100 700 Td [(A) " + adjustment + b" (B)] TJ ET")

    assert glyphs(result)[1].bbox.x0 == pytest.approx(expected)


def test_leading_and_next_line(interpret):
    result = interpret(b"BT /F1 12 Tf 14 TL 100 700 Td (A) Tj T* (B) Tj (C) ' ET")

    assert [glyph.origin for glyph in glyphs(result)] == [
        (100.0, 700.0),
        (100.0, 686.0),
        (100.0, 672.0),
    ]


def test_move_and_set_leading(interpret):
    result = interpret(b"BT /F1 12 Tf 100 700 Td 0 -20 TD (A) Tj T* (B) Tj ET")

    assert [glyph.origin for glyph in glyphs(result)] == [(100.0, 680.0), (100.0, 660.0)]


def test_spaced_show_sets_spacing(interpret):
    result = interpret(b'BT /F1 12 Tf 14 TL 100 700 Td 3 1 (A B) " ET')

    first, space, last = glyphs(result)
    assert first.origin == (100.0, 686.0)
    assert space.bbox.x0 == pytest.approx(107.0)
    assert last.bbox.x0 == pytest.approx(117.0)


def test_text_matrix(interpret):
    result = interpret(b"BT /F1 12 Tf 1 0 0 1 50 60 Tm (A) Tj ET")

    assert glyphs(result)[0].origin == (50.0, 60.0)


def test_begin_text_resets_matrices(interpret):
    result = interpret(b"BT /F1 12 Tf 100 700 Td (A) Tj ET BT (B) Tj ET")

    assert glyphs(result)[1].origin == (0.0, 0.0)


def test_transformation_scales_effective_font_size(interpret):
    result = interpret(b"q 2 0 0 2 0 0 cm BT /F1 12 Tf 10 10 Td (A) Tj ET Q")

    (glyph,) = glyphs(result)
    assert glyph.origin == (20.0, 20.0)
    assert glyph.font_size == 24.0
    assert glyph.bbox.width == pytest.approx(12.0)


def test_malformed_matrix_is_replaced_by_identity(interpret):
    result = interpret(b"q 1 0 0 cm BT /F1 12 Tf 10 10 Td (A) Tj ET Q")

    assert glyphs(result)[0].origin == (10.0, 10.0)
    assert result.errors == []


def test_rotated_page(interpret):
    result = interpret(b"BT /F1 12 Tf 10 10 Td (A) Tj ET", page_box=(0, 0, 200, 100), rotation=90)

    (glyph,) = glyphs(result)
    assert glyph.origin == pytest.approx((10.0, 190.0))
    assert glyph.font_size == 12.0


def test_missing_font_falls_back_and_is_reported_once(interpret):
    result = interpret(b"BT /F9 12 Tf 100 700 Td (AB) Tj /F9 10 Tf (C) Tj ET")

    assert len(glyphs(result)) == 3
    assert {glyph.font_name for glyph in glyphs(result)} == {"FallbackMonospace"}
    assert glyphs(result)[0].bbox.width == pytest.approx(7.2)
    assert len(result.errors) == 1
    assert isinstance(result.errors[0], ResourceResolutionError)
    assert result.errors[0].name == "F9"
    assert not result.truncated


def test_operator_with_bad_operands_is_skipped(interpret):
    result = interpret(b"BT /F1 12 Tf (x) 700 Td 100 700 Td (A) Tj ET")

    assert glyphs(result)[0].origin == (100.0, 700.0)
    assert result.errors == []


def test_unknown_and_marked_content_operators_are_ignored(interpret):
    result = interpret(b"/Span <</MCID 0>> BDC foo BT /F1 12 Tf 100 700 Td (A) Tj ET EMC")

    assert len(glyphs(result)) == 1
    assert result.errors == []


# -- Graphics state stack -----------------------------------------------------


@pytest.mark.parametrize(
    "data",
    [
        b"q 1 0 0 RG 2 w 0.5 g 2 0 0 2 10 10 cm Q",
        b"q BT /F1 12 Tf 100 700 Td (AB) Tj ET Q",
        b"q q 0 0 1 rg BT /F1 9 Tf 2 Tc 14 TL 72 720 Td (one) Tj T* (two) Tj ET Q 1 w Q",
    ],
)
def test_save_restore_returns_to_initial_state(interpret, data):
    initial = interpret(b"").state
    result = interpret(data)

    assert result.state == initial
    assert result.stack_depth == 0


def test_end_text_resets_text_matrices(interpret):
    result = interpret(b"BT /F1 12 Tf 100 700 Td (AB) Tj ET")

    assert len(glyphs(result)) == 2
    assert result.state.text_matrix == (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)
    assert result.state.line_matrix == result.state.text_matrix


def test_unbalanced_restore_keeps_partial_events(interpret):
    data = b"BT /F1 12 Tf 100 700 Td (ABC) Tj ET Q BT (D) Tj ET"
    result = interpret(data)

    assert len(glyphs(result)) == 3
    assert len(result.errors) == 1
    error = result.errors[0]
    assert isinstance(error, UnbalancedStateError)
    assert error.offset == data.index(b" Q") + 1
    assert result.truncated


def test_unmatched_save_is_tolerated(interpret):
    result = interpret(b"q q BT /F1 12 Tf (A) Tj ET")

    assert len(glyphs(result)) == 1
    assert result.errors == []
    assert result.stack_depth == 2


def test_malformed_token_keeps_partial_events(interpret):
    data = b"BT /F1 12 Tf 100 700 Td (AB) Tj 1.2.3 Td (C) Tj ET"
    result = interpret(data)

    assert [glyph.text for glyph in glyphs(result)] == ["A", "B"]
    assert isinstance(result.errors[0], MalformedTokenError)
    assert result.errors[0].offset == data.index(b"1.2.3")


def test_operator_inside_array_is_malformed(interpret):
    result = interpret(b"[(A) Tj] TJ")

    assert isinstance(result.errors[0], MalformedTokenError)


# -- Paths --------------------------------------------------------------------


def test_filled_rectangle(interpret):
    result = interpret(b"1 0 0 rg 10 20 100 50 re f")

    (segment,) = paths(result)
    assert segment.paint_mode is PaintMode.FILL
    assert segment.bbox == BoundingBox(10.0, 20.0, 110.0, 70.0)
    assert segment.fill_color == (1.0, 0.0, 0.0)
    assert segment.stroke_color is None
    assert len(segment.points) == 5


def test_stroked_line(interpret):
    result = interpret(b"0 0 1 RG 2 w 0 0 m 100 0 l S")

    (segment,) = paths(result)
    assert segment.paint_mode is PaintMode.STROKE
    assert segment.stroke_color == (0.0, 0.0, 1.0)
    assert segment.fill_color is None
    assert segment.line_width == 2.0
    assert segment.points == ((0.0, 0.0), (100.0, 0.0))


def test_curve_is_flattened(interpret):
    result = interpret(b"0 0 m 0 10 10 10 10 0 c S")

    (segment,) = paths(result)
    assert len(segment.points) == 13
    assert segment.points[-1] == pytest.approx((10.0, 0.0))
    assert segment.bbox.y1 == pytest.approx(7.5)


def test_close_fill_stroke(interpret):
    result = interpret(b"0 0 m 10 0 l 10 10 l b*")

    (segment,) = paths(result)
    assert segment.paint_mode is PaintMode.FILL_STROKE
    assert segment.fill_rule == "evenodd"
    assert segment.points[0] == segment.points[-1]


def test_end_path_and_lone_points_paint_nothing(interpret):
    result = interpret(b"0 0 m 10 10 l n 5 5 m S")

    assert paths(result) == []


def test_each_subpath_is_one_segment(interpret):
    result = interpret(b"0 0 10 10 re 20 20 10 10 re f")

    assert [segment.bbox for segment in paths(result)] == [
        BoundingBox(0.0, 0.0, 10.0, 10.0),
        BoundingBox(20.0, 20.0, 30.0, 30.0),
    ]


@pytest.mark.parametrize(
    ("operator", "expected"),
    [
        (b"0.5 g", (0.5, 0.5, 0.5)),
        (b"0 0 0 1 k", (0.0, 0.0, 0.0)),
        (b"1 0 0 0 k", (0.0, 1.0, 1.0)),
        (b"0 1 0 rg", (0.0, 1.0, 0.0)),
    ],
)
def test_device_colors(interpret, operator, expected):
    result = interpret(operator + b" 0 0 10 10 re f")

    assert paths(result)[0].fill_color == pytest.approx(expected)


def test_line_width_from_graphics_state_parameters(interpret, resources_factory):
    state = DictionaryObject({NameObject("/LW"): FloatObject(3)})
    resources = resources_factory(ExtGState={"GS1": state})

    result = interpret(b"/GS1 gs 0 0 m 10 0 l S", resources)

    assert paths(result)[0].line_width == 3.0


def test_color_space_operators(interpret, resources_factory, stream_factory):
    icc = stream_factory(b"", {"/N": NumberObject(4)})
    resources = resources_factory(ColorSpace={"CS0": ArrayObject([NameObject("/ICCBased"), icc])})

    result = interpret(
        b"/CS0 cs 0 1 1 0 sc 0 0 10 10 re f /Pattern cs /P1 scn 0 0 10 10 re f",
        resources,
    )

    first, second = paths(result)
    assert first.fill_color == pytest.approx((1.0, 0.0, 0.0))
    assert second.fill_color == (0.0, 0.0, 0.0)
    assert result.errors == []


def test_missing_color_space_is_reported(interpret):
    result = interpret(b"/CS9 cs 0 0 1 sc 0 0 10 10 re f")

    assert paths(result)[0].fill_color == (0.0, 0.0, 1.0)
    (error,) = result.errors
    assert error.category == "ColorSpace"


# -- Clipping -----------------------------------------------------------------


def test_clip_drops_invisible_elements(interpret):
    result = interpret(b"0 0 50 50 re W n BT /F1 12 Tf 10 10 Td (A) Tj 100 100 Td (B) Tj ET")

    assert [glyph.text for glyph in glyphs(result)] == ["A"]
    assert paths(result) == []


def test_clip_is_restored_with_graphics_state(interpret):
    result = interpret(b"q 0 0 50 50 re W n Q BT /F1 12 Tf 110 110 Td (B) Tj ET")

    assert [glyph.text for glyph in glyphs(result)] == ["B"]


def test_elements_outside_page_are_dropped(interpret):
    result = interpret(b"BT /F1 12 Tf 1000 1000 Td (A) Tj ET 2000 0 10 10 re f")

    assert result.events == []


# -- XObjects and inline images -------------------------------------------------


def test_image_xobject(interpret, resources_factory, stream_factory):
    resources = resources_factory(XObject={"Im1": _image(stream_factory)})

    result = interpret(b"q 100 0 0 50 10 20 cm /Im1 Do Q", resources)

    (image,) = images(result)
    assert image.bbox == BoundingBox(10.0, 20.0, 110.0, 70.0)
    assert image.name == "Im1"
    assert not image.inline


def test_form_xobject_is_interpreted_in_place(interpret, resources_factory, stream_factory):
    form = _form(stream_factory, b"BT /F1 12 Tf 0 0 Td (A) Tj ET", matrix=(1, 0, 0, 1, 5, 6))
    resources = resources_factory(XObject={"Fm1": form})

    result = interpret(b"q 1 0 0 1 100 100 cm /Fm1 Do Q BT /F1 12 Tf 0 0 Td (B) Tj ET", resources)

    first, second = glyphs(result)
    assert first.origin == (105.0, 106.0)
    assert second.origin == (0.0, 0.0)


def test_form_bbox_clips_content(interpret, resources_factory, stream_factory):
    form = _form(stream_factory, b"BT /F1 12 Tf 50 50 Td (A) Tj ET", bbox=(0, 0, 10, 10))
    resources = resources_factory(XObject={"Fm1": form})

    result = interpret(b"/Fm1 Do", resources)

    assert glyphs(result) == []


def test_form_nesting_is_limited(interpret, resources_factory, stream_factory):
    form = _form(stream_factory, b"BT /F1 12 Tf 0 0 Td (A) Tj ET /Fm1 Do")
    resources = resources_factory(XObject={"Fm1": form})

    result = interpret(b"/Fm1 Do", resources, options=ParserOptions(max_form_depth=3))

    assert len(glyphs(result)) == 3
    assert result.errors == []


def test_missing_xobject_is_reported(interpret):
    result = interpret(b"/Im9 Do /Im9 Do BT /F1 12 Tf (A) Tj ET")

    assert len(result.errors) == 1
    assert result.errors[0].name == "Im9"
    assert len(glyphs(result)) == 1


def test_inline_image(interpret):
    result = interpret(b"q 20 0 0 10 5 5 cm BI /W 1 /H 1 /BPC 8 /CS /G ID \x00 EI Q")

    (image,) = images(result)
    assert image.bbox == BoundingBox(5.0, 5.0, 25.0, 15.0)
    assert image.inline
    assert image.name is None


def test_inline_image_operators_are_not_reported_as_unsupported(interpret, caplog, monkeypatch):
    monkeypatch.setattr(logging.getLogger("pdfparsex"), "propagate", True)
    caplog.set_level(logging.DEBUG, logger="pdfparsex.interpreter")

    interpret(b"q 20 0 0 10 5 5 cm BI /W 1 /H 1 /BPC 8 /CS /G ID \x00 EI Q BT ET foo")

    unsupported = [record.getMessage() for record in caplog.records if "unsupported" in record.getMessage()]
    assert unsupported == ["Skipping unsupported operator 'foo'"]


# -- Guards ---------------------------------------------------------------------


def test_operator_limit_aborts_page(interpret):
    with pytest.raises(PageAbortedError):
        interpret(b"q Q q Q q Q", options=ParserOptions(max_operators_per_page=3))


def test_deadline_aborts_page(interpret):
    times = iter([0.0, 0.5, 2.0])
    guard = PageGuard(timeout=1.0, clock=lambda: next(times))

    with pytest.raises(PageAbortedError):
        interpret(b"q Q q Q", guard=guard)

    assert guard.operators == 2


def test_cancelled_guard_aborts_page(interpret):
    guard = PageGuard()
    guard.cancel()

    with pytest.raises(PageAbortedError):
        interpret(b"q Q", guard=guard)

    assert guard.cancelled


def test_operator_count_is_reported(interpret):
    result = interpret(b"q 1 w Q")

    assert result.operator_count == 3
