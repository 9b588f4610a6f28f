"""
Mutation request models.

A mutation selects elements by id or name and patches their text, position
or shape properties before rendering.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.scene import TextAlign


class ShapeKind(str, Enum):
    """Shape types a shape mutation may be restricted to."""
    RECTANGLE = "rectangle"
    CIRCLE = "circle"


class Selector(BaseModel):
    """
    Element selector. At least one of id/name is required; an element
    matches when its id equals `id` OR its name equals `name`.
    """
    id: Optional[str] = None
    name: Optional[str] = None

    @model_validator(mode="after")
    def _require_key(self) -> "Selector":
        if not self.id and not self.name:
            raise ValueError("selector requires at least one of 'id' or 'name'")
        return self

    def describe(self) -> str:
        parts = []
        if self.id:
            parts.append(f"id={self.id!r}")
        if self.name:
            parts.append(f"name={self.name!r}")
        return " or ".join(parts)


class TextMutation(BaseModel):
    """Text patch; applies to text elements only."""
    model_config = ConfigDict(populate_by_name=True)

    value: Optional[str] = None
    font_family: Optional[str] = Field(default=None, alias="fontFamily")
    font_size: Optional[float] = Field(default=None, alias="fontSize", description="Clamped to 8-200")
    color: Optional[str] = None
    align: Optional[TextAlign] = None
    bold: Optional[bool] = None
    italic: Optional[bool] = None
    underline: Optional[bool] = None


class PositionMutation(BaseModel):
    """Geometry patch. x/y apply to every element; width/height where supported."""
    x: Optional[float] = Field(default=None, description="Clamped to >= 0")
    y: Optional[float] = Field(default=None, description="Clamped to >= 0")
    width: Optional[float] = Field(default=None, description="Clamped to >= 1")
    height: Optional[float] = Field(default=None, description="Clamped to >= 1")


class ShapeMutation(BaseModel):
    """Shape patch; applies to rectangles and circles only."""
    model_config = ConfigDict(populate_by_name=True)

    type: Optional[ShapeKind] = Field(
        default=None,
        description="When set, only elements of this shape type are patched",
    )
    fill: Optional[str] = None
    stroke: Optional[str] = None
    stroke_width: Optional[float] = Field(default=None, alias="strokeWidth", description="Clamped to >= 0")
    radius: Optional[float] = Field(default=None, description="Circles only; clamped to >= 1")


class Mutation(BaseModel):
    """One selector plus the patches to apply to every matched element."""
    selector: Selector
    text: Optional[TextMutation] = None
    position: Optional[PositionMutation] = None
    shape: Optional[ShapeMutation] = None


class MutationReport(BaseModel):
    """Outcome of one mutation, returned for diagnostics."""
    index: int = Field(description="Position of the mutation in the request list")
    selector: Selector
    matched: int = Field(description="Number of elements the selector matched")
    applied: int = Field(description="Number of matched elements actually patched")
    skipped: List[str] = Field(
        default_factory=list,
        description="Names of matched elements the patch did not apply to",
    )
