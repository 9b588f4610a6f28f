"""
Pydantic models for scenes, mutations and request/response schemas.
"""

from app.models.scene import (
    ElementType,
    TextAlign,
    FontWeight,
    FontStyle,
    Position,
    TextElement,
    RectangleElement,
    CircleElement,
    LineElement,
    ImageElement,
    SkipElement,
    GroupElement,
    Scene,
)
from app.models.mutation import (
    Selector,
    TextMutation,
    PositionMutation,
    ShapeMutation,
    Mutation,
    MutationReport,
)
from app.models.render import (
    OutputSpec,
    RenderRequest,
    TemplateRenderRequest,
    TemplateRenderResponse,
)
from app.models.templates import (
    EditableElement,
    Template,
    TemplateIndex,
    CreateTemplateRequest,
    TemplateResponse,
    TemplateListResponse,
    SystematicNamesResponse,
)
from app.models.usage import UsageResponse
from app.models.responses import ErrorDetail, ErrorResponse

__all__ = [
    "ElementType",
    "TextAlign",
    "FontWeight",
    "FontStyle",
    "Position",
    "TextElement",
    "RectangleElement",
    "CircleElement",
    "LineElement",
    "ImageElement",
    "SkipElement",
    "GroupElement",
    "Scene",
    "Selector",
    "TextMutation",
    "PositionMutation",
    "ShapeMutation",
    "Mutation",
    "MutationReport",
    "OutputSpec",
    "RenderRequest",
    "TemplateRenderRequest",
    "TemplateRenderResponse",
    "EditableElement",
    "Template",
    "TemplateIndex",
    "CreateTemplateRequest",
    "TemplateResponse",
    "TemplateListResponse",
    "SystematicNamesResponse",
    "UsageResponse",
    "ErrorDetail",
    "ErrorResponse",
]
