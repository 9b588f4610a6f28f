"""
Image encoder: pixel buffer -> PNG/JPEG/WebP bytes via Pillow.
"""

import io
import logging

from PIL import Image

from app.services.context import RendererContext
from app.services.errors import EncodingFailureError
from app.services.rasterizer import PixelBuffer

logger = logging.getLogger(__name__)


CONTENT_TYPES = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "webp": "image/webp",
}


def normalize_format(fmt: str) -> str:
    return (fmt or "").strip().lower()


def content_type_for(fmt: str) -> str:
    return CONTENT_TYPES[normalize_format(fmt)]


class ImageEncoder:
    """Encodes pixel buffers. PNG and lossless WebP round-trip exactly."""

    def encode(self, buffer: PixelBuffer, fmt: str, context: RendererContext) -> bytes:
        """
        Encode a pixel buffer.

        Raises:
            EncodingFailureError: On an unsupported format or any encoder error
        """
        fmt = normalize_format(fmt)
        if fmt not in CONTENT_TYPES:
            raise EncodingFailureError(f"Unsupported output format: {fmt!r}", {"format": fmt})

        try:
            image = Image.fromarray(buffer.pixels)
            output = io.BytesIO()
            if fmt == "png":
                image.save(output, format="PNG")
            elif fmt in ("jpeg", "jpg"):
                # JPEG has no alpha channel
                image.convert("RGB").save(output, format="JPEG", quality=context.jpeg_quality)
            else:
                image.save(output, format="WEBP", lossless=True)
            data = output.getvalue()
        except Exception as e:
            logger.error(f"Encoding {fmt} failed: {e}")
            raise EncodingFailureError(f"Failed to encode {fmt} image: {e}", {"format": fmt})

        logger.debug(f"Encoded {buffer.width}x{buffer.height} {fmt}: {len(data)} bytes")
        return data


# Global encoder instance
image_encoder = ImageEncoder()
