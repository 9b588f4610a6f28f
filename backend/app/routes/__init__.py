"""
API route modules.
"""

from app.routes.render import router as render_router
from app.routes.templates import router as templates_router
from app.routes.images import router as images_router
from app.routes.usage import router as usage_router

__all__ = [
    "render_router",
    "templates_router",
    "images_router",
    "usage_router",
]
