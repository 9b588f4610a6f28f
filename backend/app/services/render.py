"""
Render pipeline: output spec validation, then
copy -> mutate -> compose -> rasterize -> encode.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from app.config import settings
from app.models.mutation import Mutation, MutationReport
from app.models.render import OutputSpec
from app.models.scene import Scene
from app.services.colors import parse_background
from app.services.compositor import VectorCompositor, compositor
from app.services.context import RendererContext, renderer_context
from app.services.encoder import ImageEncoder, content_type_for, image_encoder, normalize_format
from app.services.errors import InvalidOutputSpecError, InvalidSceneError
from app.services.mutations import MutationEngine, mutation_engine
from app.services.rasterizer import PixelBuffer, Rasterizer, rasterizer

logger = logging.getLogger(__name__)


@dataclass
class RenderResult:
    """Encoded image plus render diagnostics."""
    image_bytes: bytes
    content_type: str
    width: int
    height: int
    format: str
    reports: List[MutationReport] = field(default_factory=list)
    processing_time_ms: int = 0


def parse_scene(data: Dict[str, Any]) -> Scene:
    """
    Validate a serialized scene (native or editor export).

    Raises:
        InvalidSceneError: If the document is not a valid scene
    """
    try:
        return Scene.model_validate(data)
    except ValidationError as e:
        raise InvalidSceneError(
            "Scene document failed validation",
            {"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        )


class RenderService:
    """Runs the render pipeline against a shared renderer context."""

    def __init__(
        self,
        context: Optional[RendererContext] = None,
        engine: Optional[MutationEngine] = None,
        vector_compositor: Optional[VectorCompositor] = None,
        pixel_rasterizer: Optional[Rasterizer] = None,
        encoder: Optional[ImageEncoder] = None,
        max_dimension: Optional[int] = None,
    ):
        self.context = context or renderer_context
        self.engine = engine or mutation_engine
        self.compositor = vector_compositor or compositor
        self.rasterizer = pixel_rasterizer or rasterizer
        self.encoder = encoder or image_encoder
        self.max_dimension = max_dimension or settings.max_render_dimension

    def resolve_output(self, scene: Scene, output: OutputSpec) -> Tuple[str, int, int]:
        """
        Validate the output spec and resolve final (format, width, height).

        Missing dimensions default to the scene size (one given keeps the
        scene aspect ratio). Dimensions above the cap are clamped.

        Raises:
            InvalidOutputSpecError: On an unsupported format or a
                non-positive dimension
        """
        fmt = normalize_format(output.format or settings.default_output_format)
        if fmt not in settings.supported_output_formats:
            raise InvalidOutputSpecError(
                f"Unsupported output format: {output.format!r}",
                {"format": output.format, "supported": settings.supported_output_formats},
            )

        for axis, value in (("width", output.width), ("height", output.height)):
            if value is not None and value <= 0:
                raise InvalidOutputSpecError(
                    f"Output {axis} must be positive, got {value}",
                    {axis: value},
                )

        width, height = output.width, output.height
        if width is None and height is None:
            width, height = scene.width, scene.height
        elif height is None:
            height = max(1, round(width * scene.height / scene.width))
        elif width is None:
            width = max(1, round(height * scene.width / scene.height))

        if width > self.max_dimension or height > self.max_dimension:
            logger.info(
                f"Clamping output {width}x{height} to the {self.max_dimension}px limit"
            )
            width = min(width, self.max_dimension)
            height = min(height, self.max_dimension)

        return fmt, width, height

    def rasterize(self, scene: Scene, width: int, height: int) -> PixelBuffer:
        """Compose and rasterize a scene at the given output size."""
        ops = self.compositor.compose(scene)
        return self.rasterizer.rasterize(
            ops,
            width,
            height,
            parse_background(scene.background_color),
            self.context,
            scale_x=width / scene.width,
            scale_y=height / scene.height,
        )

    def render(
        self,
        scene: Scene,
        mutations: Optional[List[Mutation]] = None,
        output: Optional[OutputSpec] = None,
    ) -> RenderResult:
        """
        Render a scene with mutations applied.

        The input scene is not modified.

        Raises:
            InvalidOutputSpecError: Before any work, on a bad output spec
            EncodingFailureError: If the image cannot be encoded
        """
        start_time = time.time()
        output = output or OutputSpec()
        fmt, width, height = self.resolve_output(scene, output)

        result = self.engine.apply(scene, mutations or [])
        buffer = self.rasterize(result.scene, width, height)
        image_bytes = self.encoder.encode(buffer, fmt, self.context)

        processing_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Rendered {width}x{height} {fmt} ({len(mutations or [])} mutations, "
            f"{len(image_bytes)} bytes) in {processing_time_ms}ms"
        )

        return RenderResult(
            image_bytes=image_bytes,
            content_type=content_type_for(fmt),
            width=width,
            height=height,
            format=fmt,
            reports=result.reports,
            processing_time_ms=processing_time_ms,
        )

    def render_thumbnail(self, scene: Scene, scale: Optional[float] = None) -> RenderResult:
        """Render an unmodified scene as a reduced-size PNG."""
        scale = scale or settings.thumbnail_scale
        output = OutputSpec(
            format="png",
            width=max(1, round(scene.width * scale)),
            height=max(1, round(scene.height * scale)),
        )
        return self.render(scene, [], output)


# Global service instance
render_service = RenderService()
