"""
Color parsing.

Colors are normalized to opaque RGB. Parsing is delegated to Pillow's
ImageColor, which covers #rgb, #rrggbb, #rrggbbaa, rgb(), rgba(), hsl() and
CSS color names. CSS-style fractional alpha (rgba(0, 0, 0, 0.5)) is handled
here since ImageColor only accepts integer alpha.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from PIL import ImageColor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Color:
    """Opaque RGB color, components in [0, 255]."""
    r: int
    g: int
    b: int

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)

    def as_rgba(self) -> tuple[int, int, int, int]:
        return (self.r, self.g, self.b, 255)


BLACK = Color(0, 0, 0)
WHITE = Color(255, 255, 255)

# Values that mean "do not paint"
UNPAINTED = {"", "transparent", "none"}

_CSS_RGBA = re.compile(
    r"^rgba\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d*\.\d+|\d+)\s*\)$"
)


def _channel(value: int) -> int:
    return max(0, min(255, int(value)))


def parse_color(value: Optional[str]) -> Optional[Color]:
    """
    Parse a color string.

    Returns None for unpainted values (None, "", "transparent", "none" or
    zero alpha). Unparsable strings fall back to black with a warning.
    """
    if value is None:
        return None

    text = value.strip().lower()
    if text in UNPAINTED:
        return None

    match = _CSS_RGBA.match(text)
    if match:
        r, g, b, alpha = match.groups()
        if float(alpha) == 0:
            return None
        return Color(_channel(r), _channel(g), _channel(b))

    try:
        rgb = ImageColor.getrgb(text)
    except ValueError:
        logger.warning(f"Unparsable color {value!r}; falling back to black")
        return BLACK

    if len(rgb) == 4 and rgb[3] == 0:
        return None
    return Color(_channel(rgb[0]), _channel(rgb[1]), _channel(rgb[2]))


def parse_background(value: Optional[str]) -> Color:
    """Background colors are always painted; unpainted values mean white."""
    color = parse_color(value)
    return WHITE if color is None else color
