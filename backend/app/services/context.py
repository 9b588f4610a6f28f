"""
Renderer context: process-scoped font resolution and image-source loading.

The context is shared by every render. Its configuration is fixed at
construction; the font index is built once (lazily, under a lock) and the
per-size font cache is only ever added to.
"""

import base64
import io
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote_to_bytes, urlsplit

import cv2
import httpx
import numpy as np
from PIL import Image, ImageFont

from app.config import settings

logger = logging.getLogger(__name__)


FONT_SUFFIXES = {".ttf", ".otf", ".ttc"}

# Families tried, in order, when a requested family is not installed
GENERIC_FONT_FALLBACKS = {
    "sans-serif": ["Helvetica", "Arial", "Liberation Sans", "DejaVu Sans"],
    "arial": ["Arial", "Liberation Sans", "DejaVu Sans"],
    "helvetica": ["Helvetica", "Liberation Sans", "DejaVu Sans"],
    "serif": ["Times New Roman", "Times", "Liberation Serif", "DejaVu Serif"],
    "times new roman": ["Times New Roman", "Liberation Serif", "DejaVu Serif"],
    "georgia": ["Georgia", "Liberation Serif", "DejaVu Serif"],
    "monospace": ["Courier New", "Courier", "Liberation Mono", "DejaVu Sans Mono"],
    "courier new": ["Courier New", "Liberation Mono", "DejaVu Sans Mono"],
}


def family_key(family: str) -> str:
    """Case- and space-insensitive family lookup key."""
    return "".join(family.lower().split())


@dataclass
class ResolvedFont:
    """A loaded font plus the styles the rasterizer must synthesize."""
    font: ImageFont.FreeTypeFont
    synthetic_bold: bool = False
    synthetic_italic: bool = False


class RendererContext:
    """
    Fonts and image sources for the rasterizer, plus encoder settings.

    Safe to share between concurrent renders.
    """

    def __init__(
        self,
        font_dirs: Optional[List[Path]] = None,
        default_font_family: Optional[str] = None,
        storage_root: Optional[Path] = None,
        allow_remote_images: Optional[bool] = None,
        image_fetch_timeout_s: Optional[float] = None,
        max_image_bytes: Optional[int] = None,
        max_image_pixels: Optional[int] = None,
        remote_image_hosts: Optional[List[str]] = None,
        jpeg_quality: Optional[int] = None,
        http_transport: Optional[httpx.BaseTransport] = None,
    ):
        self.font_dirs = list(settings.font_dirs if font_dirs is None else font_dirs)
        self.default_font_family = default_font_family or settings.default_font_family
        self.storage_root = storage_root or settings.storage_root
        self.allow_remote_images = (
            settings.allow_remote_images if allow_remote_images is None else allow_remote_images
        )
        self.image_fetch_timeout_s = image_fetch_timeout_s or settings.image_fetch_timeout_s
        self.max_image_bytes = max_image_bytes or settings.max_image_bytes
        self.max_image_pixels = max_image_pixels or settings.max_image_pixels
        hosts = settings.remote_image_hosts if remote_image_hosts is None else remote_image_hosts
        self.remote_image_hosts = [host.strip().lower() for host in hosts if host.strip()]
        self.jpeg_quality = jpeg_quality or settings.jpeg_quality
        self.http_transport = http_transport

        self._lock = threading.Lock()
        self._initialized = False
        # family key -> {(bold, italic): font file}
        self._faces: Dict[str, Dict[Tuple[bool, bool], str]] = {}
        self._font_cache: Dict[tuple, ResolvedFont] = {}

    # ============================================================
    # Fonts
    # ============================================================

    def initialize(self) -> None:
        """Index installed font faces. Idempotent."""
        with self._lock:
            if self._initialized:
                return
            for font_dir in self.font_dirs:
                if font_dir.is_dir():
                    self._index_font_dir(font_dir)
            self._initialized = True
        logger.info(
            f"Renderer context ready: {len(self._faces)} font families "
            f"from {len(self.font_dirs)} directories"
        )

    def _index_font_dir(self, font_dir: Path) -> None:
        for path in sorted(font_dir.rglob("*")):
            if path.suffix.lower() not in FONT_SUFFIXES:
                continue
            try:
                family, style = ImageFont.truetype(str(path), 12).getname()
            except OSError as e:
                logger.debug(f"Skipping unreadable font {path}: {e}")
                continue
            if not family:
                continue
            style = (style or "").lower()
            bold = "bold" in style or "black" in style or "heavy" in style
            italic = "italic" in style or "oblique" in style
            faces = self._faces.setdefault(family_key(family), {})
            faces.setdefault((bold, italic), str(path))

    @property
    def families(self) -> List[str]:
        self.initialize()
        return sorted(self._faces)

    def _candidate_families(self, family: str) -> List[str]:
        candidates = [family]
        candidates.extend(GENERIC_FONT_FALLBACKS.get(family.strip().lower(), []))
        candidates.append(self.default_font_family)
        return candidates

    def get_font(self, family: str, size: int, bold: bool = False, italic: bool = False) -> ResolvedFont:
        """
        Resolve a font for (family, size, weight, style).

        Falls back through generic alternatives and the default family, and
        finally to Pillow's built-in font. Styles with no installed face are
        flagged for synthesis.
        """
        self.initialize()
        size = max(1, int(size))
        cache_key = (family_key(family), size, bold, italic)
        cached = self._font_cache.get(cache_key)
        if cached is not None:
            return cached

        resolved = None
        for candidate in self._candidate_families(family):
            faces = self._faces.get(family_key(candidate))
            if not faces:
                continue
            # Exact face first, then the closest face with synthesized styles
            for want_bold, want_italic in ((bold, italic), (bold, False), (False, italic), (False, False)):
                path = faces.get((want_bold, want_italic))
                if path is None:
                    continue
                try:
                    font = ImageFont.truetype(path, size)
                except OSError as e:
                    logger.warning(f"Failed to load font {path}: {e}")
                    continue
                resolved = ResolvedFont(
                    font=font,
                    synthetic_bold=bold and not want_bold,
                    synthetic_italic=italic and not want_italic,
                )
                break
            if resolved is not None:
                break

        if resolved is None:
            logger.warning(f"No installed face for font family {family!r}; using built-in font")
            resolved = ResolvedFont(
                font=ImageFont.load_default(size=size),
                synthetic_bold=bold,
                synthetic_italic=italic,
            )

        with self._lock:
            self._font_cache.setdefault(cache_key, resolved)
        return resolved

    # ============================================================
    # Images
    # ============================================================

    def load_image(self, source: str) -> np.ndarray:
        """
        Load an image source as an RGBA uint8 array.

        Accepts data: URIs, http(s) URLs (when enabled) and paths relative to
        the storage root.

        Raises:
            ValueError: If the source cannot be fetched or decoded
        """
        if source.startswith("data:"):
            data = self._read_data_uri(source)
        elif source.startswith(("http://", "https://")):
            data = self._fetch_remote(source)
        else:
            data = self._read_local(source)

        if len(data) > self.max_image_bytes:
            raise ValueError(f"Image exceeds {self.max_image_bytes} bytes")

        # Header check before any pixels are decoded
        width, height = image_dimensions(data)
        if width * height > self.max_image_pixels:
            raise ValueError(
                f"Image is {width}x{height}, over the {self.max_image_pixels} pixel limit"
            )
        return decode_rgba(data)

    def _read_data_uri(self, source: str) -> bytes:
        header, sep, payload = source.partition(",")
        if not sep:
            raise ValueError("Malformed data URI")
        if header.endswith(";base64"):
            try:
                return base64.b64decode(payload, validate=False)
            except ValueError as e:
                raise ValueError(f"Invalid base64 image data: {e}")
        return unquote_to_bytes(payload)

    def _fetch_remote(self, url: str) -> bytes:
        if not self.allow_remote_images:
            raise ValueError("Remote image sources are disabled")
        self._check_remote_host(urlsplit(url).hostname)

        chunks = []
        total = 0
        client = httpx.Client(
            timeout=self.image_fetch_timeout_s,
            follow_redirects=True,
            transport=self.http_transport,
            # Runs for the first request and for every redirect hop
            event_hooks={"request": [lambda request: self._check_remote_host(request.url.host)]},
        )
        try:
            with client, client.stream("GET", url) as response:
                response.raise_for_status()
                for chunk in response.iter_bytes():
                    total += len(chunk)
                    if total > self.max_image_bytes:
                        raise ValueError(f"Image at {url} exceeds {self.max_image_bytes} bytes")
                    chunks.append(chunk)
        except httpx.HTTPError as e:
            raise ValueError(f"Failed to fetch {url}: {e}")
        return b"".join(chunks)

    def _check_remote_host(self, host: Optional[str]) -> None:
        """Reject hosts outside remote_image_hosts (subdomains of an entry match)."""
        if not host:
            raise ValueError("Remote image URL has no host")
        if not self.remote_image_hosts:
            return
        host = host.lower()
        for allowed in self.remote_image_hosts:
            if host == allowed or host.endswith("." + allowed):
                return
        raise ValueError(f"Remote image host {host!r} is not allowed")

    def _read_local(self, source: str) -> bytes:
        root = Path(self.storage_root).resolve()
        path = (root / source).resolve()
        try:
            path.relative_to(root)
        except ValueError:
            raise ValueError(f"Image path escapes the storage root: {source}")
        if not path.is_file():
            raise ValueError(f"Image not found: {source}")
        return path.read_bytes()


def image_dimensions(data: bytes) -> Tuple[int, int]:
    """(width, height) from the image header, without decoding pixels."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except (OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"Unrecognized image data: {e}")


def decode_rgba(data: bytes) -> np.ndarray:
    """Decode encoded image bytes to an (H, W, 4) uint8 RGBA array."""
    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ValueError("Unrecognized image data")

    if image.dtype == np.uint16:
        image = (image >> 8).astype(np.uint8)

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)


# Global context instance
renderer_context = RendererContext()
