"""JSON and XML serialization of parsed documents."""

from __future__ import annotations

import json
import logging
import re
import xml.etree.ElementTree as ET
from enum import Enum
from typing import Any, Iterable

from .exceptions import SerializerError
from .model import ContentElement, ElementClass, PdfDocument

__all__ = ["DocumentSerializer", "SerializationFormat"]

LOGGER = logging.getLogger("pdfparsex.serializer")

_PRECISION = 2
_XML_INVALID = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


class SerializationFormat(Enum):
    JSON = "json"
    XML = "xml"

    @classmethod
    def names(cls) -> list[str]:
        return [member.value for member in cls]

    @classmethod
    def from_string(cls, name: str) -> "SerializationFormat":
        key = name.strip().lower()
        for member in cls:
            if member.value == key:
                return member
        raise SerializerError(f"Unknown serialization format {name!r}; choose from {', '.join(cls.names())}")


def _element_record(element: ContentElement) -> dict[str, Any]:
    bbox = element.bbox
    record: dict[str, Any] = {
        "page": element.page_number,
        "minX": round(bbox.x0, _PRECISION),
        "minY": round(bbox.y0, _PRECISION),
        "maxX": round(bbox.x1, _PRECISION),
        "maxY": round(bbox.y1, _PRECISION),
    }
    if element.text is not None:
        record["text"] = element.text
    if element.font_name is not None:
        record["font"] = element.font_name
    if element.font_size is not None:
        record["fontSize"] = round(element.font_size, _PRECISION)
    if element.color is not None:
        record["color"] = [round(component, 3) for component in element.color]
    if element.role is not None:
        record["role"] = element.role
    return record


def _format_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class DocumentSerializer:
    """Serialize the elements of selected classes of a :class:`PdfDocument`.

    Elements are grouped per class, each entry carrying its page number, its
    bounding box (``minX minY maxX maxY`` in page space) and, where present,
    text, font, font size and colour.  Page sizes and page errors are always
    included.
    """

    def serialize(
        self,
        document: PdfDocument,
        format: SerializationFormat | str = SerializationFormat.JSON,
        classes: Iterable[ElementClass] | None = None,
    ) -> bytes:
        if isinstance(format, str):
            format = SerializationFormat.from_string(format)
        selected = list(classes) if classes is not None else list(ElementClass)
        payload = self.to_dict(document, selected)
        LOGGER.debug("Serializing %d element class(es) as %s", len(selected), format.value)
        try:
            if format is SerializationFormat.JSON:
                return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")
            if format is SerializationFormat.XML:
                return self._to_xml(payload)
        except (TypeError, ValueError) as exc:
            raise SerializerError(f"Unable to serialize document: {exc}") from exc
        raise SerializerError(f"Unsupported serialization format {format!r}")

    def to_dict(self, document: PdfDocument, classes: Iterable[ElementClass]) -> dict[str, Any]:
        elements: dict[str, list[dict[str, Any]]] = {}
        for element_class in classes:
            elements[element_class.plural] = [
                _element_record(element) for element in document.iter_elements(element_class)
            ]
        return {
            "document": {
                "pageCount": document.page_count,
                "metadata": dict(document.metadata),
                "pages": [
                    {"page": index + 1, "width": round(width, _PRECISION), "height": round(height, _PRECISION)}
                    for index, (width, height) in enumerate(document.page_sizes)
                ],
                "errors": [
                    {
                        "page": error.page_number,
                        "kind": error.kind,
                        "message": error.message,
                        "offset": error.offset,
                    }
                    for error in document.errors
                ],
            },
            "elements": elements,
        }

    @staticmethod
    def _to_xml(payload: dict[str, Any]) -> bytes:
        info = payload["document"]
        root = ET.Element("document", pageCount=str(info["pageCount"]))

        metadata = ET.SubElement(root, "metadata")
        for key, value in info["metadata"].items():
            entry = ET.SubElement(metadata, "entry", key=key)
            entry.text = _XML_INVALID.sub("", value)

        pages = ET.SubElement(root, "pages")
        for page in info["pages"]:
            ET.SubElement(pages, "page", {key: _format_number(value) for key, value in page.items()})

        errors = ET.SubElement(root, "errors")
        for error in info["errors"]:
            attributes = {"page": str(error["page"]), "kind": error["kind"]}
            if error["offset"] is not None:
                attributes["offset"] = str(error["offset"])
            node = ET.SubElement(errors, "error", attributes)
            node.text = _XML_INVALID.sub("", error["message"])

        elements = ET.SubElement(root, "elements")
        for group_name, records in payload["elements"].items():
            group = ET.SubElement(elements, group_name)
            tag = ElementClass.from_string(group_name).value
            for record in records:
                attributes = {
                    key: _XML_INVALID.sub("", _format_number(value))
                    for key, value in record.items()
                    if key not in {"text", "color"}
                }
                if "color" in record:
                    attributes["color"] = " ".join(_format_number(value) for value in record["color"])
                node = ET.SubElement(group, tag, attributes)
                if "text" in record:
                    node.text = _XML_INVALID.sub("", record["text"])

        ET.indent(root)
        return ET.tostring(root, encoding="utf-8", xml_declaration=True)
