"""
Template routes.

These endpoints allow users to:
- Store a scene as a reusable template
- List templates with their editable elements
- Render a template with mutations into stored images
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import FileResponse

from app.models.render import TemplateRenderRequest, TemplateRenderResponse
from app.models.responses import ErrorResponse
from app.models.templates import (
    CreateTemplateRequest,
    SystematicNamesResponse,
    TemplateListResponse,
    TemplateResponse,
)
from app.routes.render import to_http_exception
from app.services.errors import RenderError
from app.services.render import render_service
from app.services.storage import storage_service
from app.services.templates import describe_elements, template_service
from app.services.usage import usage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/templates", tags=["templates"])


def _not_found(template_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "code": "TEMPLATE_NOT_FOUND",
            "message": f"Template not found: {template_id}",
        },
    )


def _template_response(template_id: str) -> TemplateResponse:
    template = template_service.get_template(template_id)
    if template is None:
        raise _not_found(template_id)
    try:
        elements = describe_elements(template_service.load_scene(template_id))
    except RenderError as e:
        logger.error(f"Stored scene for template {template_id} is unreadable: {e.message}")
        elements = []
    return TemplateResponse(template=template, editable_elements=elements)


# ============================================================
# Create / Read / Delete
# ============================================================

@router.post(
    "",
    response_model=TemplateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse, "description": "Invalid scene"}},
)
def create_template(request: CreateTemplateRequest) -> TemplateResponse:
    """
    Store a scene as a template.

    Accepts native scenes and canvas-editor exports. A thumbnail is rendered
    at creation; a failed thumbnail does not fail the request.
    """
    logger.info(f"Creating template: {request.name}")
    try:
        template = template_service.create_template(
            name=request.name,
            scene_data=request.scene,
            description=request.description,
        )
    except RenderError as e:
        raise to_http_exception(e)
    return _template_response(template.id)


@router.get(
    "",
    response_model=TemplateListResponse,
)
def list_templates(
    search: Optional[str] = Query(default=None, description="Search in name/description"),
) -> TemplateListResponse:
    """List stored templates, newest first."""
    templates = template_service.list_templates(search=search)
    responses = [_template_response(t.id) for t in templates]
    return TemplateListResponse(templates=responses, total=len(responses))


@router.get(
    "/{template_id}",
    response_model=TemplateResponse,
    responses={404: {"model": ErrorResponse, "description": "Template not found"}},
)
def get_template(template_id: str) -> TemplateResponse:
    """Get template details and its editable elements."""
    return _template_response(template_id)


@router.delete(
    "/{template_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse, "description": "Template not found"}},
)
def delete_template(template_id: str) -> None:
    """Delete a template and its stored files."""
    if not template_service.delete_template(template_id):
        raise _not_found(template_id)


@router.get(
    "/{template_id}/thumbnail",
    responses={
        200: {"content": {"image/png": {}}, "description": "Thumbnail PNG"},
        404: {"model": ErrorResponse, "description": "Template or thumbnail not found"},
    },
)
def get_template_thumbnail(template_id: str) -> FileResponse:
    """Serve the template thumbnail."""
    path = template_service.get_thumbnail_path(template_id)
    if path is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "code": "THUMBNAIL_NOT_FOUND",
                "message": f"No thumbnail for template '{template_id}'",
            },
        )
    return FileResponse(path=path, media_type="image/png")


# ============================================================
# Render / Names
# ============================================================

@router.post(
    "/{template_id}/render",
    response_model=TemplateRenderResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid output spec"},
        404: {"model": ErrorResponse, "description": "Template not found"},
        500: {"model": ErrorResponse, "description": "Encoding failure"},
    },
)
def render_template(template_id: str, request: TemplateRenderRequest) -> TemplateRenderResponse:
    """
    Render a template with mutations and store the output.

    Returns the URL the image can be fetched from.
    """
    try:
        scene = template_service.load_scene(template_id)
        result = render_service.render(scene, request.mutations, request.output)
    except RenderError as e:
        logger.warning(f"Template render failed: {e.code} {e.message}")
        raise to_http_exception(e)

    stored = storage_service.save_render(result.image_bytes, result.format)
    usage_service.record("template_render")

    return TemplateRenderResponse(
        status="completed",
        template_id=template_id,
        render_id=stored.render_id,
        image_url=stored.url,
        format=result.format,
        width=result.width,
        height=result.height,
        size_bytes=stored.size_bytes,
        processing_time_ms=result.processing_time_ms,
        mutations=result.reports,
    )


@router.post(
    "/{template_id}/systematic-names",
    response_model=SystematicNamesResponse,
    responses={404: {"model": ErrorResponse, "description": "Template not found"}},
)
def assign_systematic_names(template_id: str) -> SystematicNamesResponse:
    """
    Write systematic names (text_1, shape_1, ...) into the stored scene for
    every element without a name, so clients can see the names selectors use.
    """
    try:
        assigned = template_service.assign_systematic_names(template_id)
    except RenderError as e:
        raise to_http_exception(e)

    return SystematicNamesResponse(
        template_id=template_id,
        names_assigned=assigned,
        message=f"Assigned {assigned} systematic names",
    )
