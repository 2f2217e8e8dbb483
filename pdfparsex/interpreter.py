"""Execution of page content streams.

The interpreter walks the token stream of one page, maintains the graphics
state stack and emits :data:`~pdfparsex.model.DrawingEvent` objects whose
geometry is already expressed in page space.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, field, replace
from functools import partial
from typing import Callable, Sequence

from .config import ParserOptions
from .exceptions import (
    MalformedTokenError,
    PageAbortedError,
    PageProcessingError,
    ResourceResolutionError,
    UnbalancedStateError,
)
from .geometry import (
    IDENTITY,
    BoundingBox,
    Matrix,
    apply,
    bbox_of_points,
    flatten_cubic,
    glyph_box,
    glyph_origin,
    multiply,
    page_matrix,
    sanitize_matrix,
    scale_factors,
    transform_box,
    translation,
)
from .model import Color, DrawingEvent, Glyph, ImagePlacement, PaintMode, PathSegment
from .resources import FALLBACK_FONT, FontMetrics, ResourceResolver, XObject
from .tokenizer import ContentStreamTokenizer, TokenType

__all__ = [
    "ContentStreamInterpreter",
    "GraphicsState",
    "InterpretationResult",
    "PageGuard",
]

LOGGER = logging.getLogger("pdfparsex.interpreter")

BLACK: Color = (0.0, 0.0, 0.0)

_EMPTY_CLIP = BoundingBox(math.inf, math.inf, -math.inf, -math.inf)
_UNIT_SQUARE = BoundingBox(0.0, 0.0, 1.0, 1.0)
_KEYWORDS = {"true": True, "false": False, "null": None}
_IGNORED_OPERATORS = frozenset(
    {"BMC", "BDC", "EMC", "MP", "DP", "BX", "EX", "BI", "ID"}
    | {"d0", "d1", "sh", "ri", "i", "j", "J", "M", "d"}
)


@dataclass(slots=True)
class GraphicsState:
    """Mutable graphics and text state of a content stream."""

    ctm: Matrix = IDENTITY
    text_matrix: Matrix = IDENTITY
    line_matrix: Matrix = IDENTITY
    fill_color: Color = BLACK
    stroke_color: Color = BLACK
    fill_components: int = 1
    stroke_components: int = 1
    font: FontMetrics | None = None
    font_size: float = 0.0
    char_spacing: float = 0.0
    word_spacing: float = 0.0
    horizontal_scale: float = 100.0
    leading: float = 0.0
    rise: float = 0.0
    render_mode: int = 0
    line_width: float = 1.0
    clip: BoundingBox | None = None

    def copy(self) -> "GraphicsState":
        return replace(self)


class PageGuard:
    """Operator and wall-clock budget of a single page.

    The deadline starts counting when the guard is created.  :meth:`cancel`
    may be called from another thread; the interpreter notices it before the
    next operator.
    """

    def __init__(
        self,
        max_operators: int | None = None,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_operators = max_operators
        self._clock = clock
        self.deadline = None if timeout is None else clock() + timeout
        self._cancelled = threading.Event()
        self.operators = 0

    @classmethod
    def from_options(cls, options: ParserOptions) -> "PageGuard":
        return cls(options.max_operators_per_page, options.page_timeout)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def check(self) -> None:
        self.operators += 1
        if self._cancelled.is_set():
            raise PageAbortedError("Page processing was cancelled")
        if self.max_operators is not None and self.operators > self.max_operators:
            raise PageAbortedError(f"Page exceeded the limit of {self.max_operators} operators")
        if self.deadline is not None and self._clock() > self.deadline:
            raise PageAbortedError("Page exceeded its processing time budget")


@dataclass(slots=True)
class InterpretationResult:
    events: list[DrawingEvent]
    errors: list[PageProcessingError] = field(default_factory=list)
    state: GraphicsState = field(default_factory=GraphicsState)
    stack_depth: int = 0
    operator_count: int = 0

    @property
    def truncated(self) -> bool:
        return any(isinstance(error, (MalformedTokenError, UnbalancedStateError)) for error in self.errors)


class _OperandError(ValueError):
    """Operands of an operator are missing or have the wrong type."""


# -- Colour helpers -----------------------------------------------------------


def _clamp(value: float) -> float:
    return max(0.0, min(value, 1.0))


def _gray_color(values: Sequence[float]) -> Color:
    value = _clamp(values[0]) if values else 0.0
    return (value, value, value)


def _rgb_color(values: Sequence[float]) -> Color:
    red, green, blue = (_clamp(value) for value in values[:3])
    return (red, green, blue)


def _cmyk_color(values: Sequence[float]) -> Color:
    c, m, y, k = (_clamp(value) for value in values[:4])
    return (1.0 - min(1.0, c + k), 1.0 - min(1.0, m + k), 1.0 - min(1.0, y + k))


def _component_color(values: Sequence[float]) -> Color | None:
    count = len(values)
    if count == 1:
        return _gray_color(values)
    if count == 3:
        return _rgb_color(values)
    if count == 4:
        return _cmyk_color(values)
    return None


# -- Operand helpers ----------------------------------------------------------


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _numbers(operands: Sequence[object], count: int) -> list[float]:
    if len(operands) < count:
        raise _OperandError(f"expected {count} operand(s), got {len(operands)}")
    values = operands[len(operands) - count :]
    for value in values:
        if not _is_number(value):
            raise _OperandError(f"operand {value!r} is not a number")
    return [float(value) for value in values]  # type: ignore[arg-type]


def _name(operands: Sequence[object]) -> str:
    if not operands or not isinstance(operands[-1], str):
        raise _OperandError("expected a name operand")
    return operands[-1]


def _string(operands: Sequence[object]) -> bytes:
    if not operands or not isinstance(operands[-1], bytes):
        raise _OperandError("expected a string operand")
    return operands[-1]


class ContentStreamInterpreter:
    """Interpret the content stream of one page.

    ``page_box`` is the page's media box and ``rotation`` its ``/Rotate``
    value; together they define the base transformation into page space and
    the initial clipping rectangle.  One interpreter owns one state stack and
    must not be shared between pages.
    """

    def __init__(
        self,
        resolver: ResourceResolver,
        page_box: Sequence[float] = (0.0, 0.0, 612.0, 792.0),
        rotation: int = 0,
        options: ParserOptions | None = None,
        guard: PageGuard | None = None,
    ) -> None:
        self.resolver = resolver
        self.options = options or ParserOptions()
        self.guard = guard or PageGuard.from_options(self.options)
        self.base_matrix = page_matrix(page_box, rotation)
        left, bottom, right, top = (float(value) for value in page_box)
        self.page_clip = transform_box(
            self.base_matrix,
            BoundingBox(min(left, right), min(bottom, top), max(left, right), max(bottom, top)),
        )
        self._handlers: dict[str, Callable[[list[object]], None]] = {
            "q": self._op_save,
            "Q": self._op_restore,
            "cm": self._op_concat,
            "w": self._op_line_width,
            "gs": self._op_ext_gstate,
            "G": partial(self._op_device_color, stroke=True, count=1),
            "g": partial(self._op_device_color, stroke=False, count=1),
            "RG": partial(self._op_device_color, stroke=True, count=3),
            "rg": partial(self._op_device_color, stroke=False, count=3),
            "K": partial(self._op_device_color, stroke=True, count=4),
            "k": partial(self._op_device_color, stroke=False, count=4),
            "CS": partial(self._op_color_space, stroke=True),
            "cs": partial(self._op_color_space, stroke=False),
            "SC": partial(self._op_color, stroke=True),
            "SCN": partial(self._op_color, stroke=True),
            "sc": partial(self._op_color, stroke=False),
            "scn": partial(self._op_color, stroke=False),
            "Tc": partial(self._op_text_number, attribute="char_spacing"),
            "Tw": partial(self._op_text_number, attribute="word_spacing"),
            "Tz": partial(self._op_text_number, attribute="horizontal_scale"),
            "TL": partial(self._op_text_number, attribute="leading"),
            "Ts": partial(self._op_text_number, attribute="rise"),
            "Tr": self._op_render_mode,
            "Tf": self._op_font,
            "BT": self._op_begin_text,
            "ET": self._op_end_text,
            "Td": self._op_move_text,
            "TD": self._op_move_text_leading,
            "Tm": self._op_text_matrix,
            "T*": self._op_next_line,
            "Tj": self._op_show,
            "TJ": self._op_show_array,
            "'": self._op_next_line_show,
            '"': self._op_spaced_show,
            "m": self._op_move_to,
            "l": self._op_line_to,
            "c": partial(self._op_curve, variant="c"),
            "v": partial(self._op_curve, variant="v"),
            "y": partial(self._op_curve, variant="y"),
            "h": self._op_close_path,
            "re": self._op_rectangle,
            "S": partial(self._op_paint, mode=PaintMode.STROKE),
            "s": partial(self._op_paint, mode=PaintMode.STROKE, close=True),
            "f": partial(self._op_paint, mode=PaintMode.FILL),
            "F": partial(self._op_paint, mode=PaintMode.FILL),
            "f*": partial(self._op_paint, mode=PaintMode.FILL, evenodd=True),
            "B": partial(self._op_paint, mode=PaintMode.FILL_STROKE),
            "B*": partial(self._op_paint, mode=PaintMode.FILL_STROKE, evenodd=True),
            "b": partial(self._op_paint, mode=PaintMode.FILL_STROKE, close=True),
            "b*": partial(self._op_paint, mode=PaintMode.FILL_STROKE, close=True, evenodd=True),
            "n": partial(self._op_paint, mode=None),
            "W": self._op_clip,
            "W*": self._op_clip,
            "Do": self._op_xobject,
            "EI": self._op_end_inline_image,
        }
        self._reset()

    # -- Public API -----------------------------------------------------------

    def interpret(self, data: bytes) -> InterpretationResult:
        """Interpret ``data`` and return the events of the page.

        Malformed tokens and unbalanced restores stop the interpretation; the
        events emitted up to that point are returned together with the error.
        :class:`PageAbortedError` propagates to the caller.
        """

        self._reset()
        try:
            self._execute(data)
        except (MalformedTokenError, UnbalancedStateError) as exc:
            LOGGER.warning("Content stream interpretation stopped: %s", exc)
            self._errors.append(exc)
        if self._stack:
            LOGGER.debug("Discarding %d unmatched q operator(s) at end of stream", len(self._stack))
        return InterpretationResult(
            events=list(self._events),
            errors=list(self._errors),
            state=self.state,
            stack_depth=len(self._stack),
            operator_count=self.guard.operators,
        )

    # -- Execution ------------------------------------------------------------

    def _reset(self) -> None:
        self.state = GraphicsState(ctm=self.base_matrix, clip=self.page_clip)
        self._stack: list[GraphicsState] = []
        self._events: list[DrawingEvent] = []
        self._errors: list[PageProcessingError] = []
        self._reported: set[tuple[str, str]] = set()
        self._unknown: set[str] = set()
        self._resolver = self.resolver
        self._depth = 0
        self._offset = 0
        self._clear_path()

    def _clear_path(self) -> None:
        self._path: list[list[tuple[float, float]]] = []
        self._current_point: tuple[float, float] | None = None
        self._subpath_start: tuple[float, float] | None = None
        self._pending_clip = False

    def _execute(self, data: bytes) -> None:
        operands: list[object] = []
        containers: list[tuple[TokenType, list[object]]] = []

        def push(value: object) -> None:
            if containers:
                containers[-1][1].append(value)
            else:
                operands.append(value)

        for token in ContentStreamTokenizer(data):
            kind = token.type
            if kind is TokenType.COMMENT or kind is TokenType.INLINE_DATA:
                continue
            if kind in (TokenType.NUMBER, TokenType.NAME, TokenType.STRING):
                push(token.value)
            elif kind in (TokenType.ARRAY_START, TokenType.DICT_START):
                containers.append((kind, []))
            elif kind is TokenType.ARRAY_END:
                if not containers or containers[-1][0] is not TokenType.ARRAY_START:
                    raise MalformedTokenError("Unexpected ']'", token.offset)
                push(containers.pop()[1])
            elif kind is TokenType.DICT_END:
                if not containers or containers[-1][0] is not TokenType.DICT_START:
                    raise MalformedTokenError("Unexpected '>>'", token.offset)
                items = containers.pop()[1]
                push({key: value for key, value in zip(items[0::2], items[1::2]) if isinstance(key, str)})
            else:
                operator = str(token.value)
                if operator in _KEYWORDS:
                    push(_KEYWORDS[operator])
                    continue
                if containers:
                    raise MalformedTokenError(
                        f"Operator {operator!r} inside an array or dictionary", token.offset
                    )
                self.guard.check()
                self._offset = token.offset
                self._dispatch(operator, operands)
                operands = []

    def _dispatch(self, operator: str, operands: list[object]) -> None:
        handler = self._handlers.get(operator)
        if handler is None:
            if operator not in _IGNORED_OPERATORS and operator not in self._unknown:
                self._unknown.add(operator)
                LOGGER.debug("Skipping unsupported operator %r", operator)
            return
        try:
            handler(operands)
        except _OperandError as exc:
            LOGGER.warning("Skipping %s at byte offset %d: %s", operator, self._offset, exc)
        except ResourceResolutionError as exc:
            self._record(exc)

    def _record(self, error: ResourceResolutionError) -> None:
        key = (error.category, error.name)
        if key in self._reported:
            return
        self._reported.add(key)
        LOGGER.warning("%s", error)
        self._errors.append(error)

    def _visible(self, bbox: BoundingBox) -> bool:
        clip = self.state.clip
        return clip is None or clip.intersects(bbox)

    # -- Graphics state -------------------------------------------------------

    def _op_save(self, operands: list[object]) -> None:
        self._stack.append(self.state.copy())

    def _op_restore(self, operands: list[object]) -> None:
        if not self._stack:
            raise UnbalancedStateError(
                f"Q without matching q at byte offset {self._offset}", self._offset
            )
        self.state = self._stack.pop()

    def _op_concat(self, operands: list[object]) -> None:
        matrix = sanitize_matrix(operands[-6:] if len(operands) >= 6 else operands)
        self.state.ctm = multiply(matrix, self.state.ctm)

    def _op_line_width(self, operands: list[object]) -> None:
        (self.state.line_width,) = _numbers(operands, 1)

    def _op_ext_gstate(self, operands: list[object]) -> None:
        ext = self._resolver.ext_gstate(_name(operands))
        if ext.line_width is not None:
            self.state.line_width = ext.line_width
        if ext.font is not None:
            self.state.font = ext.font
            self.state.font_size = ext.font_size or 0.0

    def _op_device_color(self, operands: list[object], *, stroke: bool, count: int) -> None:
        color = _component_color(_numbers(operands, count))
        if stroke:
            self.state.stroke_color, self.state.stroke_components = color, count
        else:
            self.state.fill_color, self.state.fill_components = color, count

    def _op_color_space(self, operands: list[object], *, stroke: bool) -> None:
        name = _name(operands)
        try:
            components = self._resolver.color_space_components(name)
        except ResourceResolutionError as exc:
            self._record(exc)
            components = 3
        if stroke:
            self.state.stroke_components, self.state.stroke_color = components, BLACK
        else:
            self.state.fill_components, self.state.fill_color = components, BLACK

    def _op_color(self, operands: list[object], *, stroke: bool) -> None:
        components = self.state.stroke_components if stroke else self.state.fill_components
        values = [float(value) for value in operands if _is_number(value)]  # type: ignore[arg-type]
        if components == 0 or not values:
            return
        if len(values) < components:
            raise _OperandError(f"expected {components} colour component(s), got {len(values)}")
        color = _component_color(values[-components:])
        if color is None:
            return
        if stroke:
            self.state.stroke_color = color
        else:
            self.state.fill_color = color

    # -- Text state and positioning -------------------------------------------

    def _op_text_number(self, operands: list[object], *, attribute: str) -> None:
        (value,) = _numbers(operands, 1)
        setattr(self.state, attribute, value)

    def _op_render_mode(self, operands: list[object]) -> None:
        (value,) = _numbers(operands, 1)
        self.state.render_mode = int(value)

    def _op_font(self, operands: list[object]) -> None:
        if len(operands) < 2 or not isinstance(operands[-2], str):
            raise _OperandError("expected a font name and size")
        (size,) = _numbers(operands, 1)
        name = operands[-2]
        try:
            font = self._resolver.font(name)
        except ResourceResolutionError as exc:
            self._record(exc)
            font = FALLBACK_FONT
        self.state.font = font
        self.state.font_size = size

    def _op_begin_text(self, operands: list[object]) -> None:
        self.state.text_matrix = IDENTITY
        self.state.line_matrix = IDENTITY

    def _op_end_text(self, operands: list[object]) -> None:
        # Text matrices are undefined outside a text object.
        self.state.text_matrix = IDENTITY
        self.state.line_matrix = IDENTITY

    def _move_text(self, tx: float, ty: float) -> None:
        self.state.line_matrix = multiply(translation(tx, ty), self.state.line_matrix)
        self.state.text_matrix = self.state.line_matrix

    def _op_move_text(self, operands: list[object]) -> None:
        tx, ty = _numbers(operands, 2)
        self._move_text(tx, ty)

    def _op_move_text_leading(self, operands: list[object]) -> None:
        tx, ty = _numbers(operands, 2)
        self.state.leading = -ty
        self._move_text(tx, ty)

    def _op_text_matrix(self, operands: list[object]) -> None:
        matrix = sanitize_matrix(operands[-6:] if len(operands) >= 6 else operands)
        self.state.text_matrix = matrix
        self.state.line_matrix = matrix

    def _op_next_line(self, operands: list[object]) -> None:
        self._move_text(0.0, -self.state.leading)

    # -- Text showing ---------------------------------------------------------

    def _op_show(self, operands: list[object]) -> None:
        self._show(_string(operands))

    def _op_show_array(self, operands: list[object]) -> None:
        if not operands or not isinstance(operands[-1], list):
            raise _OperandError("expected an array operand")
        state = self.state
        for item in operands[-1]:
            if isinstance(item, bytes):
                self._show(item)
            elif _is_number(item):
                shift = -float(item) / 1000.0 * state.font_size * state.horizontal_scale / 100.0  # type: ignore[arg-type]
                state.text_matrix = multiply(translation(shift, 0.0), state.text_matrix)

    def _op_next_line_show(self, operands: list[object]) -> None:
        data = _string(operands)
        self._op_next_line(operands)
        self._show(data)

    def _op_spaced_show(self, operands: list[object]) -> None:
        data = _string(operands)
        word_spacing, char_spacing = _numbers(operands[:-1], 2)
        self.state.word_spacing = word_spacing
        self.state.char_spacing = char_spacing
        self._op_next_line(operands)
        self._show(data)

    def _show(self, data: bytes) -> None:
        state = self.state
        font = state.font
        if font is None:
            if ("font", "") not in self._reported:
                self._reported.add(("font", ""))
                LOGGER.warning("Text shown before any font was selected; using fallback metrics")
            font = FALLBACK_FONT
        size = state.font_size
        scale = state.horizontal_scale / 100.0
        ascent = font.ascent / 1000.0
        descent = font.descent / 1000.0
        for code in font.codes(data):
            text_to_page = multiply(state.text_matrix, state.ctm)
            trm = multiply((size * scale, 0.0, 0.0, size, 0.0, state.rise), text_to_page)
            width = font.width(code) / 1000.0
            bbox = glyph_box(trm, width, ascent, descent)
            if self._visible(bbox):
                effective_size = abs(size) * scale_factors(text_to_page)[1]
                self._events.append(
                    Glyph(
                        code=code,
                        text=font.to_unicode(code),
                        font_name=font.name,
                        font_size=round(effective_size, 3),
                        bbox=bbox,
                        origin=glyph_origin(trm),
                        color=state.fill_color,
                        render_mode=state.render_mode,
                    )
                )
            advance = width * size + state.char_spacing
            if font.bytes_per_code == 1 and code == 32:
                advance += state.word_spacing
            state.text_matrix = multiply(translation(advance * scale, 0.0), state.text_matrix)

    # -- Path construction and painting ---------------------------------------

    def _to_page(self, x: float, y: float) -> tuple[float, float]:
        return apply(self.state.ctm, x, y)

    def _op_move_to(self, operands: list[object]) -> None:
        x, y = _numbers(operands, 2)
        self._path.append([self._to_page(x, y)])
        self._current_point = (x, y)
        self._subpath_start = (x, y)

    def _op_line_to(self, operands: list[object]) -> None:
        x, y = _numbers(operands, 2)
        if self._current_point is None or not self._path:
            self._op_move_to(operands)
            return
        self._path[-1].append(self._to_page(x, y))
        self._current_point = (x, y)

    def _op_curve(self, operands: list[object], *, variant: str) -> None:
        if self._current_point is None or not self._path:
            raise _OperandError("curve without a current point")
        start = self._current_point
        if variant == "c":
            x1, y1, x2, y2, x3, y3 = _numbers(operands, 6)
            control1, control2, end = (x1, y1), (x2, y2), (x3, y3)
        else:
            xa, ya, x3, y3 = _numbers(operands, 4)
            end = (x3, y3)
            if variant == "v":
                control1, control2 = start, (xa, ya)
            else:
                control1, control2 = (xa, ya), end
        points = flatten_cubic(start, control1, control2, end)
        self._path[-1].extend(self._to_page(x, y) for x, y in points[1:])
        self._current_point = end

    def _close_subpath(self) -> None:
        if not self._path or self._subpath_start is None:
            return
        subpath = self._path[-1]
        first = subpath[0]
        if subpath[-1] != first:
            subpath.append(first)
        self._current_point = self._subpath_start

    def _op_close_path(self, operands: list[object]) -> None:
        self._close_subpath()

    def _op_rectangle(self, operands: list[object]) -> None:
        x, y, width, height = _numbers(operands, 4)
        corners = ((x, y), (x + width, y), (x + width, y + height), (x, y + height), (x, y))
        self._path.append([self._to_page(px, py) for px, py in corners])
        self._current_point = (x, y)
        self._subpath_start = (x, y)

    def _op_clip(self, operands: list[object]) -> None:
        self._pending_clip = True

    def _op_paint(
        self,
        operands: list[object],
        *,
        mode: PaintMode | None,
        close: bool = False,
        evenodd: bool = False,
    ) -> None:
        if close:
            self._close_subpath()
        state = self.state
        subpaths = [subpath for subpath in self._path if len(subpath) >= 2]
        if self._pending_clip and subpaths:
            area = bbox_of_points(point for subpath in subpaths for point in subpath)
            state.clip = self._intersect_clip(state.clip, area)
        if mode is not None:
            stroke = mode in (PaintMode.STROKE, PaintMode.FILL_STROKE)
            fill = mode in (PaintMode.FILL, PaintMode.FILL_STROKE)
            for subpath in subpaths:
                bbox = bbox_of_points(subpath)
                if not self._visible(bbox):
                    continue
                self._events.append(
                    PathSegment(
                        points=tuple(subpath),
                        paint_mode=mode,
                        bbox=bbox,
                        fill_rule="evenodd" if evenodd else "nonzero",
                        stroke_color=state.stroke_color if stroke else None,
                        fill_color=state.fill_color if fill else None,
                        line_width=state.line_width,
                    )
                )
        self._clear_path()

    @staticmethod
    def _intersect_clip(clip: BoundingBox | None, area: BoundingBox) -> BoundingBox:
        if clip is None:
            return area
        return clip.intersection(area) or _EMPTY_CLIP

    # -- XObjects and inline images -------------------------------------------

    def _op_xobject(self, operands: list[object]) -> None:
        name = _name(operands)
        xobject = self._resolver.xobject(name)
        if xobject.is_image:
            self._place_image(name, inline=False)
        else:
            self._run_form(xobject)

    def _place_image(self, name: str | None, *, inline: bool) -> None:
        bbox = transform_box(self.state.ctm, _UNIT_SQUARE)
        if self._visible(bbox):
            self._events.append(ImagePlacement(bbox=bbox, name=name, inline=inline))

    def _run_form(self, xobject: XObject) -> None:
        if self._depth >= self.options.max_form_depth:
            LOGGER.warning(
                "Form XObject %s not drawn: nesting deeper than %d levels",
                xobject.name,
                self.options.max_form_depth,
            )
            return
        outer_state = self.state
        outer_stack = self._stack
        outer_resolver = self._resolver
        outer_path = (self._path, self._current_point, self._subpath_start, self._pending_clip)

        form_state = outer_state.copy()
        form_state.ctm = multiply(xobject.matrix, outer_state.ctm)
        if xobject.bbox is not None:
            form_state.clip = self._intersect_clip(
                form_state.clip, transform_box(form_state.ctm, xobject.bbox)
            )
        self.state = form_state
        self._stack = []
        self._resolver = outer_resolver.child(xobject.resources)
        self._clear_path()
        self._depth += 1
        LOGGER.debug("Entering form XObject %s at depth %d", xobject.name, self._depth)
        try:
            self._execute(xobject.data)
        finally:
            self._depth -= 1
            self.state = outer_state
            self._stack = outer_stack
            self._resolver = outer_resolver
            self._path, self._current_point, self._subpath_start, self._pending_clip = outer_path

    def _op_end_inline_image(self, operands: list[object]) -> None:
        self._place_image(None, inline=True)
