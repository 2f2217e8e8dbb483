"""Resolution of page resources (fonts, XObjects, colour spaces, graphics states).

Resolved resources are cached per document in a :class:`ResourceCache`.  The
cache is shared by all page workers of one parse; every access to the
underlying ``pypdf`` objects happens while holding the cache lock because the
reader is not safe for concurrent use.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, Mapping, TypeVar

from pypdf import _cmap
from pypdf._codecs.core_font_metrics import CORE_FONT_METRICS
from pypdf.generic import (
    ArrayObject,
    DictionaryObject,
    IndirectObject,
    NameObject,
    StreamObject,
)

from .exceptions import ResourceResolutionError
from .geometry import IDENTITY, BoundingBox, Matrix, sanitize_matrix

__all__ = [
    "DEFAULT_ASCENT",
    "DEFAULT_DESCENT",
    "FALLBACK_FONT",
    "ExtGState",
    "FontMetrics",
    "ResourceCache",
    "ResourceResolver",
    "XObject",
    "load_font_metrics",
]

LOGGER = logging.getLogger("pdfparsex.resources")

DEFAULT_ASCENT = 750.0
DEFAULT_DESCENT = -250.0
DEFAULT_WIDTH = 500.0
FALLBACK_WIDTH = 600.0

_T = TypeVar("_T")


# -- Resolved resource types --------------------------------------------------


@dataclass(slots=True, frozen=True)
class FontMetrics:
    """Metric and text mapping data of a font, in glyph space (1/1000 em)."""

    name: str
    widths: Mapping[int, float] = field(default_factory=dict)
    default_width: float = DEFAULT_WIDTH
    unicode_map: Mapping[int, str] = field(default_factory=dict)
    ascent: float = DEFAULT_ASCENT
    descent: float = DEFAULT_DESCENT
    bytes_per_code: int = 1
    is_fallback: bool = False

    def width(self, code: int) -> float:
        return self.widths.get(code, self.default_width)

    def to_unicode(self, code: int) -> str:
        mapped = self.unicode_map.get(code)
        if mapped is not None:
            return mapped
        if 0 <= code < 0x110000 and not 0xD800 <= code <= 0xDFFF:
            return chr(code)
        return "�"

    def codes(self, data: bytes) -> list[int]:
        """Split a shown string into character codes."""

        if self.bytes_per_code == 1:
            return list(data)
        step = self.bytes_per_code
        codes = [int.from_bytes(data[index : index + step], "big") for index in range(0, len(data), step)]
        return codes

    @property
    def average_width(self) -> float:
        if not self.widths:
            return self.default_width
        positive = [width for width in self.widths.values() if width > 0]
        if not positive:
            return self.default_width
        return sum(positive) / len(positive)


FALLBACK_FONT = FontMetrics(
    name="FallbackMonospace",
    default_width=FALLBACK_WIDTH,
    is_fallback=True,
)


@dataclass(slots=True, frozen=True)
class XObject:
    """An external object referenced by the ``Do`` operator."""

    name: str
    subtype: str
    matrix: Matrix = IDENTITY
    bbox: BoundingBox | None = None
    data: bytes = b""
    resources: DictionaryObject | None = None
    key: Hashable | None = None

    @property
    def is_image(self) -> bool:
        return self.subtype == "Image"

    @property
    def is_form(self) -> bool:
        return self.subtype == "Form"


@dataclass(slots=True, frozen=True)
class ExtGState:
    """Subset of an external graphics state relevant for extraction."""

    line_width: float | None = None
    font: FontMetrics | None = None
    font_size: float | None = None
    stroke_alpha: float | None = None
    fill_alpha: float | None = None


# -- Cache --------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class _Failure:
    error: ResourceResolutionError


class ResourceCache:
    """Document scoped arena with initialise-once entries.

    The first caller asking for a key runs the factory while holding the lock
    and publishes its result (or its failure); concurrent callers block on the
    lock and then read the published entry, so each resource is resolved
    exactly once per document.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[Hashable, Any] = {}
        self.resolutions = 0

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def get_or_create(self, key: Hashable, factory: Callable[[], _T]) -> _T:
        with self._lock:
            if key in self._entries:
                entry = self._entries[key]
            else:
                self.resolutions += 1
                try:
                    entry = factory()
                except ResourceResolutionError as exc:
                    entry = _Failure(exc)
                self._entries[key] = entry
        if isinstance(entry, _Failure):
            raise entry.error
        return entry

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# -- Helpers ------------------------------------------------------------------


def _resolve_indirect(obj: object | None) -> object | None:
    if isinstance(obj, IndirectObject):
        try:
            return obj.get_object()
        except Exception:
            return None
    return obj


def _object_key(obj: object) -> Hashable:
    if isinstance(obj, IndirectObject):
        return ("ref", obj.idnum, obj.generation)
    return ("id", id(obj))


def _clean_name(name: object) -> str:
    raw = str(name)
    return raw[1:] if raw.startswith("/") else raw


def _to_float(value: object, default: float = 0.0) -> float:
    value = _resolve_indirect(value)
    try:
        return float(value)  # type: ignore[arg-type]
    except Exception:
        return default


def _glyph_name_to_unicode(name: str) -> str | None:
    if not name:
        return None
    if not name.startswith("/"):
        name = f"/{name}"
    mapped = _cmap.adobe_glyphs.get(name)
    if mapped is not None:
        return mapped
    if name.startswith("/uni") and len(name) == 8:
        try:
            return chr(int(name[4:], 16))
        except ValueError:
            return None
    return None


# -- Font metrics -------------------------------------------------------------


def _unicode_map(font: DictionaryObject, bytes_per_code: int) -> dict[int, str]:
    try:
        encoding, cmap = _cmap.get_encoding(font)
    except Exception as exc:
        LOGGER.debug("Cannot decode encoding of font %s: %s", font.get("/BaseFont"), exc)
        encoding, cmap = None, {}
    mapping: dict[int, str] = {}
    if bytes_per_code == 1 and isinstance(encoding, dict):
        for raw_code, value in encoding.items():
            if not isinstance(raw_code, int) or not isinstance(value, str):
                continue
            if value.startswith("/"):
                translated = _glyph_name_to_unicode(value)
                if translated is None:
                    continue
                value = translated
            mapping[raw_code] = value
    if isinstance(cmap, dict):
        for key, value in cmap.items():
            if not isinstance(key, str) or len(key) != 1:
                continue
            if isinstance(value, bytes):
                value = value.decode("utf-16-be", "surrogatepass")
            mapping[ord(key)] = str(value)
    return mapping


def _simple_widths(font: DictionaryObject, scale: float) -> dict[int, float]:
    widths: dict[int, float] = {}
    first_char = int(_to_float(font.get("/FirstChar"), 0.0))
    raw_widths = _resolve_indirect(font.get("/Widths"))
    if isinstance(raw_widths, ArrayObject):
        for offset, value in enumerate(raw_widths):
            widths[first_char + offset] = _to_float(value) * scale
    return widths


def _cid_widths(descendant: DictionaryObject) -> dict[int, float]:
    widths: dict[int, float] = {}
    raw = _resolve_indirect(descendant.get("/W"))
    if not isinstance(raw, ArrayObject):
        return widths
    items = [_resolve_indirect(item) for item in raw]
    index = 0
    while index + 1 < len(items):
        first = int(_to_float(items[index]))
        following = items[index + 1]
        if isinstance(following, ArrayObject):
            for offset, value in enumerate(following):
                widths[first + offset] = _to_float(value)
            index += 2
            continue
        if index + 2 >= len(items):
            break
        last = int(_to_float(following))
        width = _to_float(items[index + 2])
        for code in range(first, last + 1):
            widths[code] = width
        index += 3
    return widths


def _descriptor_extents(
    descriptor: object | None,
    scale: float,
) -> tuple[float | None, float | None]:
    descriptor = _resolve_indirect(descriptor)
    if not isinstance(descriptor, DictionaryObject):
        return None, None
    ascent = _to_float(descriptor.get("/Ascent"), 0.0) * scale
    descent = _to_float(descriptor.get("/Descent"), 0.0) * scale
    if not ascent:
        bbox = _resolve_indirect(descriptor.get("/FontBBox"))
        if isinstance(bbox, ArrayObject) and len(bbox) == 4:
            ascent = _to_float(bbox[3]) * scale
            descent = _to_float(bbox[1]) * scale
    return (ascent or None), (-abs(descent) if descent else None)


def load_font_metrics(font: DictionaryObject) -> FontMetrics:
    """Extract :class:`FontMetrics` from a font dictionary."""

    subtype = _clean_name(font.get("/Subtype", "/Type1"))
    base_font = _clean_name(font.get("/BaseFont", "")) or _clean_name(font.get("/Name", "")) or "Unknown"
    core_name = base_font.split("+", 1)[-1]
    core = CORE_FONT_METRICS.get(core_name)

    if subtype == "Type0":
        descendants = _resolve_indirect(font.get("/DescendantFonts"))
        descendant = None
        if isinstance(descendants, ArrayObject) and descendants:
            descendant = _resolve_indirect(descendants[0])
        if not isinstance(descendant, DictionaryObject):
            raise ResourceResolutionError("font", base_font, "Type0 font without descendant font")
        widths = _cid_widths(descendant)
        default_width = _to_float(descendant.get("/DW"), 1000.0)
        ascent, descent = _descriptor_extents(descendant.get("/FontDescriptor"), 1.0)
        bytes_per_code = 2
    else:
        scale = 1.0
        if subtype == "Type3":
            font_matrix = _resolve_indirect(font.get("/FontMatrix"))
            if isinstance(font_matrix, ArrayObject) and len(font_matrix) == 6:
                scale = _to_float(font_matrix[0], 0.001) * 1000.0
                scale = scale or 1.0
        widths = _simple_widths(font, scale)
        descriptor = _resolve_indirect(font.get("/FontDescriptor"))
        default_width = DEFAULT_WIDTH
        if isinstance(descriptor, DictionaryObject) and "/MissingWidth" in descriptor:
            default_width = _to_float(descriptor.get("/MissingWidth"), DEFAULT_WIDTH) * scale
        elif core is not None:
            default_width = float(core.character_widths.get("default", DEFAULT_WIDTH))
        ascent, descent = _descriptor_extents(descriptor, scale)
        if subtype == "Type3" and ascent is None:
            bbox = _resolve_indirect(font.get("/FontBBox"))
            if isinstance(bbox, ArrayObject) and len(bbox) == 4:
                ascent = _to_float(bbox[3]) * scale or None
                descent = _to_float(bbox[1]) * scale or None
        bytes_per_code = 1

    unicode_map = _unicode_map(font, bytes_per_code)

    if not widths and core is not None and bytes_per_code == 1:
        for code in range(256):
            text = unicode_map.get(code, chr(code))
            width = core.character_widths.get(text)
            if width is not None:
                widths[code] = float(width)
    if core is not None:
        if ascent is None:
            ascent = float(core.font_descriptor.ascent)
        if descent is None:
            descent = float(core.font_descriptor.descent)

    return FontMetrics(
        name=base_font,
        widths=widths,
        default_width=default_width,
        unicode_map=unicode_map,
        ascent=ascent if ascent is not None else DEFAULT_ASCENT,
        descent=descent if descent is not None else DEFAULT_DESCENT,
        bytes_per_code=bytes_per_code,
    )


# -- Colour spaces ------------------------------------------------------------

_DEVICE_COMPONENTS = {
    "DeviceGray": 1,
    "G": 1,
    "CalGray": 1,
    "DeviceRGB": 3,
    "RGB": 3,
    "CalRGB": 3,
    "Lab": 3,
    "DeviceCMYK": 4,
    "CMYK": 4,
    "Pattern": 0,
    "Indexed": 1,
    "I": 1,
    "Separation": 1,
}


def _color_space_components(space: object) -> int | None:
    space = _resolve_indirect(space)
    if isinstance(space, NameObject) or isinstance(space, str):
        return _DEVICE_COMPONENTS.get(_clean_name(space))
    if isinstance(space, ArrayObject) and space:
        family = _clean_name(_resolve_indirect(space[0]))
        if family == "ICCBased" and len(space) > 1:
            stream = _resolve_indirect(space[1])
            if isinstance(stream, DictionaryObject):
                return int(_to_float(stream.get("/N"), 3.0))
            return 3
        if family == "DeviceN" and len(space) > 1:
            names = _resolve_indirect(space[1])
            if isinstance(names, ArrayObject):
                return len(names)
        if family == "Pattern" and len(space) > 1:
            return _color_space_components(space[1])
        return _DEVICE_COMPONENTS.get(family)
    return None


# -- Resolver -----------------------------------------------------------------


class ResourceResolver:
    """Resolve named resources of one page or form XObject."""

    def __init__(self, resources: object | None, cache: ResourceCache) -> None:
        self._resources = resources
        self.cache = cache

    def child(self, resources: object | None) -> "ResourceResolver":
        """Resolver for a form XObject, inheriting this scope when it has none."""

        if resources is None:
            return self
        return ResourceResolver(resources, self.cache)

    def _entry(self, category: str, name: str) -> object:
        with self.cache.lock:
            resources = _resolve_indirect(self._resources)
            if not isinstance(resources, DictionaryObject):
                raise ResourceResolutionError(category, name, "page has no resource dictionary")
            group = _resolve_indirect(resources.get(NameObject(f"/{category}")))
            if not isinstance(group, DictionaryObject):
                raise ResourceResolutionError(category, name, f"no /{category} resources")
            key = NameObject(f"/{name}")
            if key not in group:
                raise ResourceResolutionError(category, name, "no such resource")
            return group.raw_get(key)

    def font(self, name: str) -> FontMetrics:
        raw = self._entry("Font", name)
        return self.font_from_object(raw, name)

    def font_from_object(self, raw: object, name: str) -> FontMetrics:
        def factory() -> FontMetrics:
            resolved = _resolve_indirect(raw)
            if not isinstance(resolved, DictionaryObject):
                raise ResourceResolutionError("font", name, "reference does not point to a font dictionary")
            try:
                metrics = load_font_metrics(resolved)
            except ResourceResolutionError:
                raise
            except Exception as exc:
                raise ResourceResolutionError("font", name, f"cannot read font dictionary: {exc}") from exc
            LOGGER.debug("Resolved font %s as %s", name, metrics.name)
            return metrics

        return self.cache.get_or_create(("font", _object_key(raw)), factory)

    def xobject(self, name: str) -> XObject:
        raw = self._entry("XObject", name)
        key = _object_key(raw)

        def factory() -> XObject:
            resolved = _resolve_indirect(raw)
            if not isinstance(resolved, StreamObject):
                raise ResourceResolutionError("xobject", name, "reference does not point to a stream")
            subtype = _clean_name(resolved.get("/Subtype", ""))
            if subtype == "Image":
                return XObject(name=name, subtype=subtype, key=key)
            if subtype != "Form":
                raise ResourceResolutionError("xobject", name, f"unsupported subtype {subtype!r}")
            matrix = IDENTITY
            raw_matrix = _resolve_indirect(resolved.get("/Matrix"))
            if isinstance(raw_matrix, ArrayObject):
                matrix = sanitize_matrix([_to_float(value) for value in raw_matrix])
            bbox = None
            raw_bbox = _resolve_indirect(resolved.get("/BBox"))
            if isinstance(raw_bbox, ArrayObject) and len(raw_bbox) == 4:
                x0, y0, x1, y1 = (_to_float(value) for value in raw_bbox)
                bbox = BoundingBox(min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1))
            try:
                data = resolved.get_data()
            except Exception as exc:
                raise ResourceResolutionError("xobject", name, f"cannot decode stream: {exc}") from exc
            return XObject(
                name=name,
                subtype=subtype,
                matrix=matrix,
                bbox=bbox,
                data=data,
                resources=resolved.get("/Resources"),
                key=key,
            )

        return self.cache.get_or_create(("xobject", key), factory)

    def color_space_components(self, name: str) -> int:
        if name == "Pattern":
            return 0
        device = _DEVICE_COMPONENTS.get(name)
        if device is not None:
            return device
        raw = self._entry("ColorSpace", name)

        def factory() -> int:
            with self.cache.lock:
                components = _color_space_components(raw)
            if components is None:
                raise ResourceResolutionError("colorspace", name, "unsupported colour space")
            return components

        return self.cache.get_or_create(("colorspace", _object_key(raw)), factory)

    def ext_gstate(self, name: str) -> ExtGState:
        raw = self._entry("ExtGState", name)

        def factory() -> ExtGState:
            resolved = _resolve_indirect(raw)
            if not isinstance(resolved, DictionaryObject):
                raise ResourceResolutionError("extgstate", name, "reference does not point to a dictionary")
            line_width = resolved.get("/LW")
            stroke_alpha = resolved.get("/CA")
            fill_alpha = resolved.get("/ca")
            font = None
            font_size = None
            font_entry = _resolve_indirect(resolved.get("/Font"))
            if isinstance(font_entry, ArrayObject) and len(font_entry) == 2:
                font = self.font_from_object(font_entry[0], f"{name}.Font")
                font_size = _to_float(font_entry[1], 0.0)
            return ExtGState(
                line_width=_to_float(line_width) if line_width is not None else None,
                font=font,
                font_size=font_size,
                stroke_alpha=_to_float(stroke_alpha) if stroke_alpha is not None else None,
                fill_alpha=_to_float(fill_alpha) if fill_alpha is not None else None,
            )

        return self.cache.get_or_create(("extgstate", _object_key(raw)), factory)
