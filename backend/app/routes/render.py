"""
Render endpoint.

Renders an inline scene or a stored template with mutations and returns the
encoded image directly. Route functions are sync so renders run in the
threadpool rather than on the event loop.
"""

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import Response

from app.models.render import RenderRequest
from app.models.responses import ErrorResponse
from app.services.errors import RenderError
from app.services.render import parse_scene, render_service
from app.services.templates import template_service
from app.services.usage import usage_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["render"])


ERROR_STATUS = {
    "INVALID_OUTPUT_SPEC": status.HTTP_400_BAD_REQUEST,
    "TEMPLATE_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_SCENE": 422,
    "ENCODING_FAILURE": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def to_http_exception(exc: RenderError) -> HTTPException:
    """Translate a service error into the API error shape."""
    return HTTPException(
        status_code=ERROR_STATUS.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=exc.to_detail(),
    )


@router.post(
    "/render",
    response_class=Response,
    responses={
        200: {
            "content": {"image/png": {}, "image/jpeg": {}, "image/webp": {}},
            "description": "Rendered image",
        },
        400: {"model": ErrorResponse, "description": "Invalid output spec"},
        404: {"model": ErrorResponse, "description": "Template not found"},
        422: {"model": ErrorResponse, "description": "Invalid scene document"},
        500: {"model": ErrorResponse, "description": "Encoding failure"},
    },
)
def render(request: RenderRequest) -> Response:
    """
    Render a scene with mutations applied.

    The scene is either a stored template (templateId) or an inline scene
    document (templateScene). Mutations that match nothing are ignored.
    """
    try:
        if request.template_id is not None:
            scene = template_service.load_scene(request.template_id)
        else:
            scene = parse_scene(request.template_scene)

        result = render_service.render(scene, request.mutations, request.output)
    except RenderError as e:
        logger.warning(f"Render failed: {e.code} {e.message}")
        raise to_http_exception(e)

    usage_service.record("render")

    applied = sum(report.applied for report in result.reports)
    return Response(
        content=result.image_bytes,
        media_type=result.content_type,
        headers={
            "X-Render-Width": str(result.width),
            "X-Render-Height": str(result.height),
            "X-Mutations-Applied": str(applied),
            "X-Processing-Time-Ms": str(result.processing_time_ms),
        },
    )
