"""
Template models.

A template is a persisted scene plus metadata. The raw scene document is
kept as submitted (editor exports carry fields the renderer ignores) and
parsed into a Scene whenever it is rendered.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EditableElement(BaseModel):
    """Summary of one element a mutation can target."""
    id: Optional[str] = None
    name: str = Field(description="Explicit or systematic element name")
    type: str = Field(description="Element type tag (text, rectangle, circle, ...)")
    properties: Dict[str, Any] = Field(
        default_factory=dict,
        description="Current values of the mutable properties",
    )


class Template(BaseModel):
    """A stored template."""
    id: str = Field(description="Unique template identifier")
    name: str = Field(description="User-friendly display name")
    description: Optional[str] = None
    width: int
    height: int

    scene_path: str
    thumbnail_path: Optional[str] = None

    created_at: datetime
    updated_at: datetime


class TemplateIndex(BaseModel):
    """Index of all stored templates."""
    version: str = "1.0.0"
    templates: List[Template] = Field(default_factory=list)
    updated_at: datetime


# ============================================================
# API Models
# ============================================================

class CreateTemplateRequest(BaseModel):
    """Request body for POST /api/v1/templates."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1, description="Display name")
    description: Optional[str] = None
    scene: Dict[str, Any] = Field(
        alias="templateData",
        description="Scene document, native or canvas-editor export",
    )


class TemplateResponse(BaseModel):
    """Single template with its editable elements."""
    template: Template
    editable_elements: List[EditableElement] = Field(default_factory=list)


class TemplateListResponse(BaseModel):
    """Response listing stored templates."""
    templates: List[TemplateResponse]
    total: int


class SystematicNamesResponse(BaseModel):
    """Response from POST /api/v1/templates/{id}/systematic-names."""
    template_id: str
    names_assigned: int = Field(description="Number of elements that received a stored name")
    message: str
