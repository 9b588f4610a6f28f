"""
Vector compositor: scene graph -> flat list of draw operations.

Draw ops are backend-agnostic primitives in scene coordinates. Their order
is paint order: groups are flattened depth-first, pre-order, with children
translated by the group position.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from app.models.scene import (
    BaseElement,
    CircleElement,
    FontStyle,
    FontWeight,
    GroupElement,
    ImageElement,
    LineElement,
    RectangleElement,
    Scene,
    SkipElement,
    TextAlign,
    TextElement,
)
from app.services.colors import Color, parse_color

logger = logging.getLogger(__name__)


# Line advance as a multiple of font size for multi-line text
LINE_HEIGHT = 1.16


# ============================================================
# Draw Ops
# ============================================================

@dataclass(frozen=True)
class FillRect:
    """Axis-aligned rectangle with optional fill and centered stroke."""
    x: float
    y: float
    width: float
    height: float
    fill: Optional[Color] = None
    stroke: Optional[Color] = None
    stroke_width: float = 0.0


@dataclass(frozen=True)
class FillCircle:
    """Circle with optional fill and centered stroke."""
    cx: float
    cy: float
    radius: float
    fill: Optional[Color] = None
    stroke: Optional[Color] = None
    stroke_width: float = 0.0


@dataclass(frozen=True)
class StrokeLine:
    x1: float
    y1: float
    x2: float
    y2: float
    color: Color
    width: float = 1.0


@dataclass(frozen=True)
class DrawText:
    """
    One line of text. (x, baseline) is the anchor; align says whether the
    anchor is the left edge, the center or the right edge of the line.
    """
    x: float
    baseline: float
    text: str
    font_family: str
    font_size: int
    color: Color
    bold: bool = False
    italic: bool = False
    underline: bool = False
    align: TextAlign = TextAlign.LEFT


@dataclass(frozen=True)
class DrawImage:
    """
    Image placement. width/height select the source window after the crop
    offset (None means up to the natural edge); the drawn size is the window
    times scale_x/scale_y.
    """
    x: float
    y: float
    source: str
    width: Optional[float] = None
    height: Optional[float] = None
    crop_x: float = 0.0
    crop_y: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0


DrawOp = Union[FillRect, FillCircle, StrokeLine, DrawText, DrawImage]


def _describe(element: BaseElement) -> str:
    return element.name or element.id or element.type


class VectorCompositor:
    """Translates scenes into draw ops."""

    def compose(self, scene: Scene) -> List[DrawOp]:
        ops: List[DrawOp] = []
        self._compose_elements(scene.elements, 0.0, 0.0, ops)
        return ops

    def _compose_elements(
        self,
        elements: List[BaseElement],
        offset_x: float,
        offset_y: float,
        ops: List[DrawOp],
    ) -> None:
        for element in elements:
            if not element.visible:
                continue

            x = offset_x + element.position.left
            y = offset_y + element.position.top

            if isinstance(element, GroupElement):
                self._compose_elements(element.children, x, y, ops)
            elif isinstance(element, TextElement):
                ops.extend(self._compose_text(element, x, y))
            elif isinstance(element, RectangleElement):
                ops.extend(self._compose_rect(element, x, y))
            elif isinstance(element, CircleElement):
                ops.extend(self._compose_circle(element, x, y))
            elif isinstance(element, LineElement):
                ops.extend(self._compose_line(element, x, y))
            elif isinstance(element, ImageElement):
                ops.extend(self._compose_image(element, x, y))
            elif isinstance(element, SkipElement):
                logger.warning(
                    f"Skipping element {_describe(element)}: unsupported type {element.original_type!r}"
                )

    def _compose_text(self, element: TextElement, x: float, y: float) -> List[DrawOp]:
        if not element.text:
            logger.warning(f"Skipping text element {_describe(element)}: empty text")
            return []
        color = parse_color(element.fill)
        if color is None:
            return []

        anchor_x = x
        if element.width is not None:
            if element.text_align == TextAlign.CENTER:
                anchor_x = x + element.width / 2
            elif element.text_align == TextAlign.RIGHT:
                anchor_x = x + element.width

        ops = []
        for line_number, line in enumerate(element.text.split("\n")):
            if not line:
                continue
            ops.append(DrawText(
                x=anchor_x,
                baseline=y + element.font_size + line_number * element.font_size * LINE_HEIGHT,
                text=line,
                font_family=element.font_family,
                font_size=element.font_size,
                color=color,
                bold=element.font_weight == FontWeight.BOLD,
                italic=element.font_style == FontStyle.ITALIC,
                underline=element.underline,
                align=element.text_align if element.width is not None else TextAlign.LEFT,
            ))
        return ops

    def _paints(self, element, fill: Optional[str], stroke: Optional[str], stroke_width: float):
        fill_color = parse_color(fill)
        stroke_color = parse_color(stroke) if stroke_width > 0 else None
        if fill_color is None and stroke_color is None:
            logger.debug(f"Element {_describe(element)} has no fill or stroke; nothing to draw")
        return fill_color, stroke_color

    def _compose_rect(self, element: RectangleElement, x: float, y: float) -> List[DrawOp]:
        fill, stroke = self._paints(element, element.fill, element.stroke, element.stroke_width)
        if fill is None and stroke is None:
            return []
        return [FillRect(
            x=x,
            y=y,
            width=element.width,
            height=element.height,
            fill=fill,
            stroke=stroke,
            stroke_width=element.stroke_width if stroke is not None else 0.0,
        )]

    def _compose_circle(self, element: CircleElement, x: float, y: float) -> List[DrawOp]:
        fill, stroke = self._paints(element, element.fill, element.stroke, element.stroke_width)
        if fill is None and stroke is None:
            return []
        return [FillCircle(
            cx=x + element.radius,
            cy=y + element.radius,
            radius=element.radius,
            fill=fill,
            stroke=stroke,
            stroke_width=element.stroke_width if stroke is not None else 0.0,
        )]

    def _compose_line(self, element: LineElement, x: float, y: float) -> List[DrawOp]:
        color = parse_color(element.stroke)
        if color is None or element.stroke_width <= 0:
            logger.debug(f"Line {_describe(element)} has no visible stroke")
            return []
        return [StrokeLine(
            x1=x + element.x1,
            y1=y + element.y1,
            x2=x + element.x2,
            y2=y + element.y2,
            color=color,
            width=element.stroke_width,
        )]

    def _compose_image(self, element: ImageElement, x: float, y: float) -> List[DrawOp]:
        if not element.source:
            logger.warning(f"Skipping image element {_describe(element)}: no source")
            return []
        return [DrawImage(
            x=x,
            y=y,
            source=element.source,
            width=element.width,
            height=element.height,
            crop_x=element.crop_x,
            crop_y=element.crop_y,
            scale_x=element.scale_x,
            scale_y=element.scale_y,
        )]


def compose(scene: Scene) -> List[DrawOp]:
    return compositor.compose(scene)


# Global compositor instance
compositor = VectorCompositor()
