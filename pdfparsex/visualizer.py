"""Drawing of element bounding boxes onto a copy of the source PDF."""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Iterable

from pypdf import PdfReader, PdfWriter
from pypdf.annotations import Rectangle
from pypdf.generic import ArrayObject, DictionaryObject, FloatObject, NameObject, NumberObject

from .exceptions import VisualizerError
from .geometry import BoundingBox, invert, page_matrix, transform_box
from .model import Color, ElementClass, PdfDocument

__all__ = ["CLASS_COLORS", "DocumentVisualizer"]

LOGGER = logging.getLogger("pdfparsex.visualizer")

CLASS_COLORS: dict[ElementClass, Color] = {
    ElementClass.CHARACTER: (0.6, 0.6, 0.6),
    ElementClass.WORD: (0.0, 0.5, 1.0),
    ElementClass.TEXT_LINE: (0.0, 0.7, 0.3),
    ElementClass.PARAGRAPH: (1.0, 0.0, 0.0),
    ElementClass.FIGURE: (0.6, 0.0, 0.8),
    ElementClass.SHAPE: (1.0, 0.6, 0.0),
    ElementClass.TABLE: (0.0, 0.6, 0.6),
    ElementClass.PAGE: (0.2, 0.2, 0.2),
}


def _border(color: Color) -> dict[NameObject, object]:
    return {
        NameObject("/C"): ArrayObject([FloatObject(component) for component in color]),
        NameObject("/BS"): DictionaryObject(
            {NameObject("/W"): FloatObject(0.5), NameObject("/S"): NameObject("/S")}
        ),
        # Print flag.
        NameObject("/F"): NumberObject(4),
    }


class DocumentVisualizer:
    """Annotate the source PDF with one rectangle per selected element."""

    def __init__(self, colors: dict[ElementClass, Color] | None = None, password: str | None = None) -> None:
        self.colors = dict(CLASS_COLORS)
        if colors:
            self.colors.update(colors)
        self.password = password

    def visualize(
        self,
        source: bytes,
        document: PdfDocument,
        classes: Iterable[ElementClass] | None = None,
    ) -> bytes:
        selected = list(classes) if classes is not None else [
            element_class for element_class in ElementClass if element_class is not ElementClass.PAGE
        ]
        try:
            reader = PdfReader(BytesIO(source), strict=False)
            if reader.is_encrypted:
                reader.decrypt(self.password or "")
            writer = PdfWriter(clone_from=reader)
        except Exception as exc:
            raise VisualizerError(f"Unable to copy the source document: {exc}") from exc
        if len(writer.pages) != document.page_count:
            raise VisualizerError(
                f"Source has {len(writer.pages)} page(s) but the document model has {document.page_count}"
            )

        count = 0
        for page in document.pages:
            target = writer.pages[page.page_index]
            to_user_space = invert(page_matrix(self._media_box(target), int(target.rotation or 0)))
            for element_class in selected:
                color = self.colors.get(element_class, (0.0, 0.0, 0.0))
                for element in page.iter(element_class):
                    box = transform_box(to_user_space, element.bbox)
                    annotation = Rectangle(rect=box.as_tuple())
                    annotation.update(_border(color))
                    writer.add_annotation(page_number=page.page_index, annotation=annotation)
                    count += 1
        LOGGER.info("Drew %d bounding box(es) on %d page(s)", count, len(document.pages))

        output = BytesIO()
        try:
            writer.write(output)
        except Exception as exc:
            raise VisualizerError(f"Unable to write the visualization: {exc}") from exc
        return output.getvalue()

    @staticmethod
    def _media_box(page) -> tuple[float, float, float, float]:
        box = page.mediabox
        bounds = BoundingBox(
            min(float(box.left), float(box.right)),
            min(float(box.bottom), float(box.top)),
            max(float(box.left), float(box.right)),
            max(float(box.bottom), float(box.top)),
        )
        return bounds.as_tuple()
