"""
Business logic services.
"""

from app.services.errors import (
    RenderError,
    InvalidOutputSpecError,
    EncodingFailureError,
    TemplateNotFoundError,
    InvalidSceneError,
)
from app.services.colors import Color, parse_color
from app.services.context import RendererContext
from app.services.mutations import MutationEngine, MutationResult
from app.services.compositor import VectorCompositor
from app.services.rasterizer import Rasterizer, PixelBuffer
from app.services.encoder import ImageEncoder
from app.services.render import RenderService, RenderResult
from app.services.storage import StorageService
from app.services.templates import TemplateService
from app.services.usage import UsageService

__all__ = [
    "RenderError",
    "InvalidOutputSpecError",
    "EncodingFailureError",
    "TemplateNotFoundError",
    "InvalidSceneError",
    "Color",
    "parse_color",
    "RendererContext",
    "MutationEngine",
    "MutationResult",
    "VectorCompositor",
    "Rasterizer",
    "PixelBuffer",
    "ImageEncoder",
    "RenderService",
    "RenderResult",
    "StorageService",
    "TemplateService",
    "UsageService",
]
