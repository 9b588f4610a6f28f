"""
Stored render serving endpoint.
"""

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import FileResponse

from app.services.storage import storage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["images"])


@router.get(
    "/{render_id}",
    responses={
        200: {
            "content": {"image/png": {}, "image/jpeg": {}, "image/webp": {}},
            "description": "Stored render",
        },
        404: {"description": "Image not found"},
    },
)
async def get_image(render_id: str) -> FileResponse:
    """
    Serve a stored render by its ID.

    Render IDs follow the format: render_{hex}.{png|jpg|webp}
    """
    logger.debug(f"Image request: {render_id}")

    image_path = storage_service.get_render_path(render_id)

    if image_path is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "code": "IMAGE_NOT_FOUND",
                "message": f"Image '{render_id}' does not exist",
            },
        )

    return FileResponse(
        path=image_path,
        media_type=storage_service.media_type(render_id),
        filename=render_id,
    )
