"""
Application configuration settings.
"""

from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # API Settings
    api_v1_prefix: str = "/api/v1"
    debug: bool = False

    # Storage Root for templates, renders and the usage ledger
    storage_root: Path = Path("./storage")

    # ============================================================
    # RENDER SETTINGS
    # ============================================================

    # Output dimensions above this are clamped (not rejected)
    max_render_dimension: int = 2048

    default_output_format: str = "png"
    supported_output_formats: List[str] = ["png", "jpeg", "jpg", "webp"]
    jpeg_quality: int = 90

    # Thumbnail size as a fraction of the template canvas
    thumbnail_scale: float = 0.3

    # --- Fonts ---
    # Extra directories searched for .ttf/.otf faces (in order)
    font_dirs: List[Path] = [
        Path("/usr/share/fonts"),
        Path("/usr/local/share/fonts"),
        Path("/Library/Fonts"),
        Path("C:/Windows/Fonts"),
    ]
    default_font_family: str = "DejaVu Sans"

    # --- Image sources ---
    # Remote URLs are fetched only when enabled; a non-empty host list
    # restricts them (and every redirect) to those hosts and their subdomains
    allow_remote_images: bool = False
    remote_image_hosts: List[str] = []
    image_fetch_timeout_s: float = 10.0
    max_image_bytes: int = 20 * 1024 * 1024
    # Checked from the image header before decoding
    max_image_pixels: int = 25_000_000

    # ============================================================
    # USAGE SETTINGS
    # ============================================================

    # Reported alongside usage; not enforced by the render endpoints
    monthly_render_quota: int = 70

    @property
    def templates_dir(self) -> Path:
        return self.storage_root / "templates"

    @property
    def renders_dir(self) -> Path:
        return self.storage_root / "renders"

    @property
    def usage_path(self) -> Path:
        return self.storage_root / "usage.json"

    class Config:
        env_prefix = "CANVAS_"
        env_file = ".env"
        extra = "ignore"


# Global settings instance
settings = Settings()
