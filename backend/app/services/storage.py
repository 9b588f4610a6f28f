"""
Object storage for rendered images on the local filesystem.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from app.config import settings
from app.services.encoder import CONTENT_TYPES, normalize_format

logger = logging.getLogger(__name__)


# render_{32 hex chars}.{ext}
_RENDER_ID = re.compile(r"^render_[0-9a-f]{32}\.(png|jpe?g|webp)$")


@dataclass
class StoredRender:
    """A render written to storage."""
    render_id: str
    path: Path
    url: str
    size_bytes: int


class StorageService:
    """Writes rendered bytes under the storage root and resolves them by ID."""

    def __init__(self, base_dir: Optional[Path] = None, url_prefix: Optional[str] = None):
        self.base_dir = base_dir or settings.renders_dir
        self.url_prefix = settings.api_v1_prefix if url_prefix is None else url_prefix
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def generate_render_id(self, fmt: str) -> str:
        """Generate a unique render ID; the extension follows the format."""
        ext = "jpg" if normalize_format(fmt) == "jpeg" else normalize_format(fmt)
        return f"render_{uuid.uuid4().hex}.{ext}"

    def image_url(self, render_id: str) -> str:
        return f"{self.url_prefix}/images/{render_id}"

    def save_render(self, image_bytes: bytes, fmt: str) -> StoredRender:
        """Persist rendered bytes and return their ID and URL."""
        render_id = self.generate_render_id(fmt)
        path = self.base_dir / render_id
        path.write_bytes(image_bytes)

        logger.info(f"Saved render {render_id} ({len(image_bytes)} bytes)")
        return StoredRender(
            render_id=render_id,
            path=path,
            url=self.image_url(render_id),
            size_bytes=len(image_bytes),
        )

    def get_render_path(self, render_id: str) -> Optional[Path]:
        """
        Find a stored render by ID.

        Returns None for unknown or malformed IDs (which also keeps lookups
        inside the renders directory).
        """
        if not _RENDER_ID.match(render_id):
            return None
        path = self.base_dir / render_id
        if not path.is_file():
            return None
        return path

    @staticmethod
    def media_type(render_id: str) -> str:
        return CONTENT_TYPES.get(render_id.rsplit(".", 1)[-1], "application/octet-stream")


# Global service instance
storage_service = StorageService()
