"""
Scene graph models.

A scene is the declarative description of a canvas: its size, background and
an ordered list of elements. List order is paint order (first = bottom,
last = top), recursively inside groups.

Two serialized forms are accepted:
- the native form: {"width", "height", "background_color", "elements"}
- the canvas editor export: {"version", "objects", "background"}, with
  element type tags such as "rect", "i-text" or "textbox" and flat
  "left"/"top" coordinates.
"""

import logging
from collections import defaultdict
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)


# Editor canvas size used when an export carries no dimensions
DEFAULT_CANVAS_WIDTH = 800
DEFAULT_CANVAS_HEIGHT = 600

MIN_FONT_SIZE = 8
MAX_FONT_SIZE = 200


class ElementType(str, Enum):
    """Canonical element variant tags."""
    TEXT = "text"
    RECTANGLE = "rectangle"
    CIRCLE = "circle"
    LINE = "line"
    IMAGE = "image"
    GROUP = "group"
    SKIP = "skip"       # Unknown/unsupported kinds, passed over at render time


class TextAlign(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class FontWeight(str, Enum):
    NORMAL = "normal"
    BOLD = "bold"


class FontStyle(str, Enum):
    NORMAL = "normal"
    ITALIC = "italic"


# Type tag aliases, lower-cased
TYPE_ALIASES = {
    "text": ElementType.TEXT,
    "i-text": ElementType.TEXT,
    "itext": ElementType.TEXT,
    "textbox": ElementType.TEXT,
    "rect": ElementType.RECTANGLE,
    "rectangle": ElementType.RECTANGLE,
    "circle": ElementType.CIRCLE,
    "line": ElementType.LINE,
    "image": ElementType.IMAGE,
    "group": ElementType.GROUP,
}

# Systematic-name prefix per variant; shapes share one counter
NAME_CATEGORIES = {
    ElementType.TEXT: "text",
    ElementType.RECTANGLE: "shape",
    ElementType.CIRCLE: "shape",
    ElementType.LINE: "shape",
    ElementType.IMAGE: "image",
    ElementType.GROUP: "group",
    ElementType.SKIP: "element",
}


def clamp(value: float, low: float, high: Optional[float] = None) -> float:
    """Clamp a number into [low, high] (high optional)."""
    value = max(low, value)
    if high is not None:
        value = min(high, value)
    return value


def number(value: Any, default: float) -> float:
    """Coerce a serialized number; None means the default."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"not a number: {value!r}")


def clamp_font_size(value: float) -> int:
    return int(round(clamp(float(value), MIN_FONT_SIZE, MAX_FONT_SIZE)))


def normalize_element_data(data: Any) -> Any:
    """
    Normalize one serialized element into the native form.

    - resolves the type tag (case-insensitive, editor aliases) and maps
      unknown tags to the skip variant, keeping the original tag
    - lifts flat "left"/"top" into "position"
    - uses an editor "systematicName" when no explicit name is set
    """
    if not isinstance(data, dict):
        return data

    data = dict(data)
    raw_type = str(data.get("type", "")).strip()
    element_type = TYPE_ALIASES.get(raw_type.lower())
    if element_type is None:
        data["original_type"] = raw_type or None
        element_type = ElementType.SKIP
    data["type"] = element_type.value

    if "position" not in data:
        data["position"] = {
            "left": data.pop("left", 0.0) or 0.0,
            "top": data.pop("top", 0.0) or 0.0,
        }

    if not data.get("name") and data.get("systematicName"):
        data["name"] = data["systematicName"]

    return data


def _coerce_paint(value: Any) -> Optional[str]:
    """Paint values are color strings; gradients/patterns are not supported."""
    if value is None or isinstance(value, str):
        return value
    logger.warning(f"Unsupported paint value {value!r}; treating as unpainted")
    return None


# ============================================================
# Element Models
# ============================================================

class Position(BaseModel):
    """Top-left anchor in canvas pixel space (relative to the parent group)."""
    left: float = 0.0
    top: float = 0.0


class BaseElement(BaseModel):
    """Fields shared by every element variant."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = Field(default=None, description="Stable cross-reference for selectors")
    name: Optional[str] = Field(
        default=None,
        description="Explicit or systematic name; assigned at parse time when absent",
    )
    position: Position = Field(default_factory=Position)
    visible: bool = True

    @field_validator("id", "name", mode="before")
    @classmethod
    def _stringify_identifier(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)


class TextElement(BaseElement):
    """A single-run text element."""
    type: Literal["text"] = "text"
    text: str = ""
    font_size: int = Field(default=40, alias="fontSize")
    font_family: str = Field(default="Arial", alias="fontFamily")
    fill: Optional[str] = "#000000"
    font_weight: FontWeight = Field(default=FontWeight.NORMAL, alias="fontWeight")
    font_style: FontStyle = Field(default=FontStyle.NORMAL, alias="fontStyle")
    underline: bool = False
    text_align: TextAlign = Field(default=TextAlign.LEFT, alias="textAlign")
    width: Optional[float] = Field(default=None, description="Layout box width for center/right alignment")

    @field_validator("text", mode="before")
    @classmethod
    def _text_to_str(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("font_size", mode="before")
    @classmethod
    def _clamp_font_size(cls, value: Any) -> int:
        return clamp_font_size(number(value, 40))

    @field_validator("font_weight", mode="before")
    @classmethod
    def _normalize_weight(cls, value: Any) -> FontWeight:
        # Editors emit "bold", "700" or 700
        text = str(value).strip().lower()
        if text.isdigit():
            return FontWeight.BOLD if int(text) >= 600 else FontWeight.NORMAL
        return FontWeight.BOLD if text in ("bold", "bolder") else FontWeight.NORMAL

    @field_validator("font_style", mode="before")
    @classmethod
    def _normalize_style(cls, value: Any) -> FontStyle:
        text = str(value).strip().lower()
        return FontStyle.ITALIC if text in ("italic", "oblique") else FontStyle.NORMAL

    @field_validator("text_align", mode="before")
    @classmethod
    def _normalize_align(cls, value: Any) -> TextAlign:
        text = str(value).strip().lower()
        if text in ("center", "right"):
            return TextAlign(text)
        return TextAlign.LEFT

    @field_validator("fill", mode="before")
    @classmethod
    def _paint(cls, value: Any) -> Optional[str]:
        return _coerce_paint(value)


class RectangleElement(BaseElement):
    """An axis-aligned rectangle."""
    type: Literal["rectangle"] = "rectangle"
    width: float = 100.0
    height: float = 100.0
    fill: Optional[str] = "#000000"
    stroke: Optional[str] = None
    stroke_width: float = Field(default=1.0, alias="strokeWidth")

    @field_validator("width", "height", mode="before")
    @classmethod
    def _min_size(cls, value: Any) -> float:
        return clamp(number(value, 100.0), 1.0)

    @field_validator("stroke_width", mode="before")
    @classmethod
    def _non_negative(cls, value: Any) -> float:
        return clamp(number(value, 0.0), 0.0)

    @field_validator("fill", "stroke", mode="before")
    @classmethod
    def _paint(cls, value: Any) -> Optional[str]:
        return _coerce_paint(value)


class CircleElement(BaseElement):
    """A circle whose bounding box starts at the element position."""
    type: Literal["circle"] = "circle"
    radius: float = 50.0
    fill: Optional[str] = "#000000"
    stroke: Optional[str] = None
    stroke_width: float = Field(default=1.0, alias="strokeWidth")

    @field_validator("radius", mode="before")
    @classmethod
    def _min_radius(cls, value: Any) -> float:
        return clamp(number(value, 50.0), 1.0)

    @field_validator("stroke_width", mode="before")
    @classmethod
    def _non_negative(cls, value: Any) -> float:
        return clamp(number(value, 0.0), 0.0)

    @field_validator("fill", "stroke", mode="before")
    @classmethod
    def _paint(cls, value: Any) -> Optional[str]:
        return _coerce_paint(value)


class LineElement(BaseElement):
    """A straight segment; endpoints are relative to the element position."""
    type: Literal["line"] = "line"
    x1: float = 0.0
    y1: float = 0.0
    x2: float = 0.0
    y2: float = 0.0
    stroke: Optional[str] = "#000000"
    stroke_width: float = Field(default=1.0, alias="strokeWidth")

    @field_validator("stroke_width", mode="before")
    @classmethod
    def _non_negative(cls, value: Any) -> float:
        return clamp(number(value, 0.0), 0.0)

    @field_validator("stroke", mode="before")
    @classmethod
    def _paint(cls, value: Any) -> Optional[str]:
        return _coerce_paint(value)


class ImageElement(BaseElement):
    """
    A raster image placed on the canvas.

    width/height describe the source window (after cropX/cropY); the drawn
    size is width*scaleX by height*scaleY. Missing width/height mean the
    natural image size.
    """
    type: Literal["image"] = "image"
    source: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("source", "src"),
        description="data: URI, http(s) URL or storage-relative path",
    )
    width: Optional[float] = None
    height: Optional[float] = None
    crop_x: float = Field(default=0.0, alias="cropX")
    crop_y: float = Field(default=0.0, alias="cropY")
    scale_x: float = Field(default=1.0, alias="scaleX")
    scale_y: float = Field(default=1.0, alias="scaleY")

    @field_validator("width", "height", mode="before")
    @classmethod
    def _min_size(cls, value: Any) -> Optional[float]:
        if value is None:
            return None
        return clamp(number(value, 1.0), 1.0)

    @field_validator("crop_x", "crop_y", mode="before")
    @classmethod
    def _non_negative(cls, value: Any) -> float:
        return clamp(number(value, 0.0), 0.0)


class SkipElement(BaseElement):
    """Element of an unknown or unsupported kind."""
    type: Literal["skip"] = "skip"
    original_type: Optional[str] = None


class GroupElement(BaseElement):
    """A group whose children are positioned relative to the group."""
    type: Literal["group"] = "group"
    children: List["SceneElement"] = Field(
        default_factory=list,
        validation_alias=AliasChoices("children", "objects"),
    )

    @field_validator("children", mode="before")
    @classmethod
    def _normalize_children(cls, value: Any) -> Any:
        if value is None:
            return []
        return [normalize_element_data(item) for item in value]


SceneElement = Annotated[
    Union[
        TextElement,
        RectangleElement,
        CircleElement,
        LineElement,
        ImageElement,
        GroupElement,
        SkipElement,
    ],
    Field(discriminator="type"),
]

GroupElement.model_rebuild()


# ============================================================
# Scene Model
# ============================================================

class Scene(BaseModel):
    """
    A canvas and its ordered elements.

    Elements without a name receive a systematic name on validation, so
    repeated renders of an unmodified scene select stably.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    width: int = Field(default=DEFAULT_CANVAS_WIDTH, gt=0, description="Canvas width in pixels")
    height: int = Field(default=DEFAULT_CANVAS_HEIGHT, gt=0, description="Canvas height in pixels")
    background_color: str = Field(
        default="#ffffff",
        validation_alias=AliasChoices("background_color", "backgroundColor", "background"),
    )
    elements: List[SceneElement] = Field(
        default_factory=list,
        validation_alias=AliasChoices("elements", "objects"),
    )

    @field_validator("background_color", mode="before")
    @classmethod
    def _background(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip():
            return value
        return "#ffffff"

    @field_validator("elements", mode="before")
    @classmethod
    def _normalize_elements(cls, value: Any) -> Any:
        if value is None:
            return []
        return [normalize_element_data(item) for item in value]

    @model_validator(mode="after")
    def _assign_systematic_names(self) -> "Scene":
        assign_systematic_names(self.elements)
        return self

    def iter_elements(self):
        """Depth-first, pre-order walk over every element."""
        yield from iter_elements(self.elements)


def assign_systematic_names(elements: List[BaseElement]) -> None:
    """
    Name unnamed elements by category and sibling order (text_1, shape_2...).

    Indices count every sibling of the same category, named or not, so an
    element's systematic name does not depend on whether its siblings carry
    explicit names.
    """
    counters: dict[str, int] = defaultdict(int)
    for element in elements:
        category = NAME_CATEGORIES[ElementType(element.type)]
        counters[category] += 1
        if element.name is None:
            element.name = f"{category}_{counters[category]}"
        if isinstance(element, GroupElement):
            assign_systematic_names(element.children)


def iter_elements(elements: List[BaseElement]):
    for element in elements:
        yield element
        if isinstance(element, GroupElement):
            yield from iter_elements(element.children)
