"""
Render request/response models.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.mutation import Mutation, MutationReport


class OutputSpec(BaseModel):
    """
    Requested output.

    Dimensions default to the scene's own size; giving only one of them keeps
    the scene aspect ratio. Values are checked by the render service so an
    invalid output is reported as INVALID_OUTPUT_SPEC rather than a schema error.
    """
    format: str = Field(default="png", description="png, jpeg, jpg or webp")
    width: Optional[int] = Field(default=None, description="Output width in pixels")
    height: Optional[int] = Field(default=None, description="Output height in pixels")


class RenderRequest(BaseModel):
    """
    Request body for POST /api/v1/render.

    Exactly one of templateId (stored template) or templateScene (inline scene
    document) must be given.
    """
    model_config = ConfigDict(populate_by_name=True)

    template_id: Optional[str] = Field(default=None, alias="templateId")
    template_scene: Optional[Dict[str, Any]] = Field(default=None, alias="templateScene")
    mutations: List[Mutation] = Field(default_factory=list)
    output: OutputSpec = Field(default_factory=OutputSpec)

    @model_validator(mode="after")
    def _one_source(self) -> "RenderRequest":
        if (self.template_id is None) == (self.template_scene is None):
            raise ValueError("exactly one of 'templateId' or 'templateScene' is required")
        return self


class TemplateRenderRequest(BaseModel):
    """Request body for POST /api/v1/templates/{template_id}/render."""
    mutations: List[Mutation] = Field(default_factory=list)
    output: OutputSpec = Field(default_factory=OutputSpec)


class TemplateRenderResponse(BaseModel):
    """Response from POST /api/v1/templates/{template_id}/render."""
    status: str = "completed"
    template_id: str
    render_id: str
    image_url: str
    format: str
    width: int
    height: int
    size_bytes: int
    processing_time_ms: int
    mutations: List[MutationReport] = Field(default_factory=list)
