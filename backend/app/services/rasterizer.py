"""
Rasterizer: draw ops -> RGBA pixel buffer.

Shapes are filled with numpy slice and mask writes, aliased so that colors
are exact. Text goes through Pillow's FreeType rendering with anti-aliasing
disabled; images are decoded and resized with OpenCV. Every write is
clipped to the canvas and every op runs in its own error boundary, so one
bad element never spoils the rest of the render.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw

from app.models.scene import TextAlign
from app.services.colors import Color
from app.services.compositor import (
    DrawImage,
    DrawOp,
    DrawText,
    FillCircle,
    FillRect,
    StrokeLine,
)
from app.services.context import RendererContext, ResolvedFont

logger = logging.getLogger(__name__)


# Horizontal shear applied to synthesize italics
ITALIC_SHEAR = 0.2

# Largest glyph mask rasterized in one piece; bigger text is drawn smaller
# and sampled back up with nearest-neighbour
MAX_TEXT_MASK_PIXELS = 4096 * 4096

_TEXT_ANCHORS = {
    TextAlign.LEFT: "ls",
    TextAlign.CENTER: "ms",
    TextAlign.RIGHT: "rs",
}


def _to_px(value: float) -> int:
    """Round half up to the pixel grid."""
    return int(math.floor(value + 0.5))


@dataclass
class _TextLayout:
    """Glyph mask geometry for one text op at one pixel size."""
    resolved: ResolvedFont
    size: int
    stroke: int
    left: int
    top: int
    right: int
    bottom: int
    margin: int
    underline_gap: int
    underline_height: int

    @classmethod
    def measure(cls, op: DrawText, context: RendererContext, size: int) -> "_TextLayout":
        resolved = context.get_font(op.font_family, size, op.bold, op.italic)
        stroke = max(1, _to_px(size / 30)) if resolved.synthetic_bold else 0
        left, top, right, bottom = resolved.font.getbbox(
            op.text, anchor=_TEXT_ANCHORS[op.align], stroke_width=stroke,
        )
        underline_gap = max(1, _to_px(size * 0.1))
        underline_height = max(1, _to_px(size / 15))
        if op.underline:
            bottom = max(bottom, underline_gap + underline_height)
        margin = 2 + (math.ceil(ITALIC_SHEAR * (bottom - top)) if resolved.synthetic_italic else 0)
        return cls(
            resolved=resolved,
            size=size,
            stroke=stroke,
            left=left,
            top=top,
            right=right,
            bottom=bottom,
            margin=margin,
            underline_gap=underline_gap,
            underline_height=underline_height,
        )

    @property
    def mask_width(self) -> int:
        return self.right - self.left + 2 * self.margin

    @property
    def mask_height(self) -> int:
        return self.bottom - self.top + 2 * self.margin

    @property
    def area(self) -> int:
        if self.mask_width <= 0 or self.mask_height <= 0:
            return 0
        return self.mask_width * self.mask_height


class PixelBuffer:
    """RGBA image, row-major, 8 bits per channel."""

    def __init__(self, pixels: np.ndarray):
        if pixels.ndim != 3 or pixels.shape[2] != 4 or pixels.dtype != np.uint8:
            raise ValueError(f"Expected (H, W, 4) uint8 pixels, got {pixels.shape} {pixels.dtype}")
        self.pixels = pixels

    @classmethod
    def blank(cls, width: int, height: int, background: Color) -> "PixelBuffer":
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :] = background.as_rgba()
        return cls(pixels)

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    def pixel(self, x: int, y: int) -> Tuple[int, int, int, int]:
        return tuple(int(c) for c in self.pixels[y, x])

    def to_bytes(self) -> bytes:
        """Raw RGBA bytes, width * height * 4 long."""
        return self.pixels.tobytes()


def clip_segment(
    x1: float, y1: float, x2: float, y2: float,
    xmin: float, ymin: float, xmax: float, ymax: float,
) -> Optional[Tuple[float, float, float, float]]:
    """Liang-Barsky clip of a segment to a rectangle; None if fully outside."""
    dx = x2 - x1
    dy = y2 - y1
    t0, t1 = 0.0, 1.0
    for p, q in ((-dx, x1 - xmin), (dx, xmax - x1), (-dy, y1 - ymin), (dy, ymax - y1)):
        if p == 0:
            if q < 0:
                return None
            continue
        t = q / p
        if p < 0:
            if t > t1:
                return None
            t0 = max(t0, t)
        else:
            if t < t0:
                return None
            t1 = min(t1, t)
    return (x1 + t0 * dx, y1 + t0 * dy, x1 + t1 * dx, y1 + t1 * dy)


def bresenham(x0: int, y0: int, x1: int, y1: int) -> List[Tuple[int, int]]:
    """Integer points of the segment, endpoints included."""
    points = []
    dx = abs(x1 - x0)
    dy = -abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx + dy
    while True:
        points.append((x0, y0))
        if x0 == x1 and y0 == y1:
            break
        e2 = 2 * err
        if e2 >= dy:
            err += dy
            x0 += sx
        if e2 <= dx:
            err += dx
            y0 += sy
    return points


class Rasterizer:
    """Executes draw ops against a pixel buffer."""

    def rasterize(
        self,
        ops: List[DrawOp],
        width: int,
        height: int,
        background: Color,
        context: RendererContext,
        scale_x: float = 1.0,
        scale_y: float = 1.0,
    ) -> PixelBuffer:
        """
        Paint ops in order onto a width x height canvas.

        Op coordinates are in scene units and are mapped to output pixels
        with scale_x/scale_y. Failing ops are logged and skipped.
        """
        buffer = PixelBuffer.blank(width, height, background)
        for index, op in enumerate(ops):
            try:
                self._draw(buffer, op, context, scale_x, scale_y)
            except Exception as e:
                logger.warning(f"Draw op {index} ({type(op).__name__}) failed and was skipped: {e}")
        return buffer

    def _draw(self, buffer: PixelBuffer, op: DrawOp, context: RendererContext, sx: float, sy: float) -> None:
        if isinstance(op, FillRect):
            self._draw_rect(buffer, op, sx, sy)
        elif isinstance(op, FillCircle):
            self._draw_circle(buffer, op, sx, sy)
        elif isinstance(op, StrokeLine):
            self._draw_line(buffer, op, sx, sy)
        elif isinstance(op, DrawText):
            self._draw_text(buffer, op, context, sx, sy)
        elif isinstance(op, DrawImage):
            self._draw_image(buffer, op, context, sx, sy)
        else:
            raise TypeError(f"Unknown draw op: {op!r}")

    # ============================================================
    # Shapes
    # ============================================================

    def _fill_box(
        self,
        buffer: PixelBuffer,
        left: float, top: float, right: float, bottom: float,
        color: Color, sx: float, sy: float,
    ) -> None:
        """Fill a scene-space box, clipped to the canvas."""
        x0 = max(0, _to_px(left * sx))
        y0 = max(0, _to_px(top * sy))
        x1 = min(buffer.width, _to_px(right * sx))
        y1 = min(buffer.height, _to_px(bottom * sy))
        if x0 >= x1 or y0 >= y1:
            return
        buffer.pixels[y0:y1, x0:x1] = color.as_rgba()

    def _draw_rect(self, buffer: PixelBuffer, op: FillRect, sx: float, sy: float) -> None:
        left, top = op.x, op.y
        right, bottom = op.x + op.width, op.y + op.height

        if op.fill is not None:
            self._fill_box(buffer, left, top, right, bottom, op.fill, sx, sy)

        if op.stroke is None or op.stroke_width <= 0:
            return

        half = op.stroke_width / 2
        outer = (left - half, top - half, right + half, bottom + half)
        inner = (left + half, top + half, right - half, bottom - half)
        if inner[0] >= inner[2] or inner[1] >= inner[3]:
            self._fill_box(buffer, *outer, op.stroke, sx, sy)
            return

        # Four bands centered on the outline
        self._fill_box(buffer, outer[0], outer[1], outer[2], inner[1], op.stroke, sx, sy)
        self._fill_box(buffer, outer[0], inner[3], outer[2], outer[3], op.stroke, sx, sy)
        self._fill_box(buffer, outer[0], inner[1], inner[0], inner[3], op.stroke, sx, sy)
        self._fill_box(buffer, inner[2], inner[1], outer[2], inner[3], op.stroke, sx, sy)

    def _draw_circle(self, buffer: PixelBuffer, op: FillCircle, sx: float, sy: float) -> None:
        half = op.stroke_width / 2 if op.stroke is not None else 0.0
        extent = op.radius + half

        x0 = max(0, _to_px((op.cx - extent) * sx) - 1)
        y0 = max(0, _to_px((op.cy - extent) * sy) - 1)
        x1 = min(buffer.width, _to_px((op.cx + extent) * sx) + 1)
        y1 = min(buffer.height, _to_px((op.cy + extent) * sy) + 1)
        if x0 >= x1 or y0 >= y1:
            return

        # Distances measured from pixel centers, in scene units
        ys, xs = np.ogrid[y0:y1, x0:x1]
        dist = np.hypot((xs + 0.5) / sx - op.cx, (ys + 0.5) / sy - op.cy)
        region = buffer.pixels[y0:y1, x0:x1]

        if op.fill is not None:
            region[dist <= op.radius] = op.fill.as_rgba()
        if op.stroke is not None and op.stroke_width > 0:
            region[np.abs(dist - op.radius) <= half] = op.stroke.as_rgba()

    def _draw_line(self, buffer: PixelBuffer, op: StrokeLine, sx: float, sy: float) -> None:
        thickness = max(1, _to_px(op.width * (sx + sy) / 2))
        below = (thickness - 1) // 2
        above = thickness // 2

        px1, py1, px2, py2 = op.x1 * sx, op.y1 * sy, op.x2 * sx, op.y2 * sy
        x_major = abs(px2 - px1) >= abs(py2 - py1)

        # The band widens across the minor axis only, so the major axis clips
        # to the canvas and the point count stays within one canvas side
        if x_major:
            bounds = (0, -above - 1, buffer.width - 1, buffer.height + below)
        else:
            bounds = (-above - 1, 0, buffer.width + below, buffer.height - 1)
        clipped = clip_segment(px1, py1, px2, py2, *bounds)
        if clipped is None:
            return

        x0, y0, x1, y1 = (_to_px(v) for v in clipped)
        points = np.array(bresenham(x0, y0, x1, y1), dtype=np.float64)
        if x_major:
            major, minor = points[:, 0], points[:, 1]
            extent, span = buffer.width, buffer.height
        else:
            major, minor = points[:, 1], points[:, 0]
            extent, span = buffer.height, buffer.width

        keep = (major >= 0) & (major < extent)
        major = major[keep].astype(np.int64)
        lo = np.clip(minor[keep] - below, 0, span).astype(np.int64)
        hi = np.clip(minor[keep] + above + 1, 0, span).astype(np.int64)

        # Band coverage per point, clipped to the canvas
        cells = np.arange(span)[:, None]
        along, index = np.nonzero((cells >= lo[None, :]) & (cells < hi[None, :]))
        if x_major:
            buffer.pixels[along, major[index]] = op.color.as_rgba()
        else:
            buffer.pixels[major[index], along] = op.color.as_rgba()

    # ============================================================
    # Text
    # ============================================================

    def _draw_text(
        self,
        buffer: PixelBuffer,
        op: DrawText,
        context: RendererContext,
        sx: float,
        sy: float,
    ) -> None:
        size = max(1, _to_px(op.font_size * sy))
        anchor_x = _to_px(op.x * sx)
        anchor_y = _to_px(op.baseline * sy)

        layout = _TextLayout.measure(op, context, size)
        while layout.area > MAX_TEXT_MASK_PIXELS and layout.size > 1:
            reduced = min(layout.size - 1, int(layout.size / math.sqrt(layout.area / MAX_TEXT_MASK_PIXELS)))
            layout = _TextLayout.measure(op, context, max(1, reduced))
        if layout.area <= 0:
            return
        if layout.area > MAX_TEXT_MASK_PIXELS:
            logger.warning(f"Text {op.text[:32]!r} is too large to rasterize; skipped")
            return

        coverage, origin_x, origin_y = self._text_mask(op, layout)
        factor = size / layout.size
        if layout.size == size:
            self._paint_mask(buffer, coverage, anchor_x - origin_x, anchor_y - origin_y, op.color)
            return

        mask_h, mask_w = coverage.shape
        left_px = anchor_x - origin_x * factor
        top_px = anchor_y - origin_y * factor
        x0 = max(0, math.floor(left_px))
        y0 = max(0, math.floor(top_px))
        x1 = min(buffer.width, math.ceil(left_px + mask_w * factor))
        y1 = min(buffer.height, math.ceil(top_px + mask_h * factor))
        if x0 >= x1 or y0 >= y1:
            return

        cols = np.clip(((np.arange(x0, x1) + 0.5 - left_px) / factor).astype(np.int64), 0, mask_w - 1)
        rows = np.clip(((np.arange(y0, y1) + 0.5 - top_px) / factor).astype(np.int64), 0, mask_h - 1)
        visible = coverage[rows[:, None], cols[None, :]]
        buffer.pixels[y0:y1, x0:x1][visible] = op.color.as_rgba()

    def _text_mask(self, op: DrawText, layout: "_TextLayout") -> Tuple[np.ndarray, int, int]:
        """Boolean glyph coverage plus the anchor position inside it."""
        # Anchor position inside the mask
        origin_x = layout.margin - layout.left
        origin_y = layout.margin - layout.top

        mask = Image.new("L", (layout.mask_width, layout.mask_height), 0)
        draw = ImageDraw.Draw(mask)
        draw.fontmode = "1"
        draw.text(
            (origin_x, origin_y),
            op.text,
            fill=255,
            font=layout.resolved.font,
            anchor=_TEXT_ANCHORS[op.align],
            stroke_width=layout.stroke,
            stroke_fill=255,
        )

        if layout.resolved.synthetic_italic:
            # Output (x, y) samples input (x + shear * (y - baseline), y)
            mask = mask.transform(
                mask.size,
                Image.Transform.AFFINE,
                (1, ITALIC_SHEAR, -ITALIC_SHEAR * origin_y, 0, 1, 0),
                resample=Image.Resampling.NEAREST,
            )

        if op.underline:
            ImageDraw.Draw(mask).rectangle(
                (
                    origin_x + layout.left,
                    origin_y + layout.underline_gap,
                    origin_x + layout.right - 1,
                    origin_y + layout.underline_gap + layout.underline_height - 1,
                ),
                fill=255,
            )

        return np.asarray(mask) > 0, origin_x, origin_y

    def _paint_mask(self, buffer: PixelBuffer, mask: np.ndarray, x: int, y: int, color: Color) -> None:
        """Paint `color` wherever mask is set, with the mask's top-left at (x, y)."""
        h, w = mask.shape
        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(buffer.width, x + w), min(buffer.height, y + h)
        if x0 >= x1 or y0 >= y1:
            return
        visible = mask[y0 - y:y1 - y, x0 - x:x1 - x]
        buffer.pixels[y0:y1, x0:x1][visible] = color.as_rgba()

    # ============================================================
    # Images
    # ============================================================

    def _draw_image(
        self,
        buffer: PixelBuffer,
        op: DrawImage,
        context: RendererContext,
        sx: float,
        sy: float,
    ) -> None:
        if op.scale_x <= 0 or op.scale_y <= 0:
            logger.warning(f"Image {op.source[:64]!r} has non-positive scale; skipped")
            return

        rgba = context.load_image(op.source)
        natural_h, natural_w = rgba.shape[:2]

        cx0 = min(natural_w, _to_px(op.crop_x))
        cy0 = min(natural_h, _to_px(op.crop_y))
        window_w = natural_w - cx0 if op.width is None else min(natural_w - cx0, _to_px(op.width))
        window_h = natural_h - cy0 if op.height is None else min(natural_h - cy0, _to_px(op.height))
        if window_w <= 0 or window_h <= 0:
            logger.warning(f"Image crop window is empty for {op.source[:64]!r}")
            return
        window = rgba[cy0:cy0 + window_h, cx0:cx0 + window_w]

        draw_w = (op.width if op.width is not None else window_w) * op.scale_x
        draw_h = (op.height if op.height is not None else window_h) * op.scale_y
        x0 = _to_px(op.x * sx)
        y0 = _to_px(op.y * sy)
        target_w = _to_px((op.x + draw_w) * sx) - x0
        target_h = _to_px((op.y + draw_h) * sy) - y0
        if target_w <= 0 or target_h <= 0:
            return

        resized = cv2.resize(window, (target_w, target_h), interpolation=cv2.INTER_NEAREST)

        # Clip to canvas
        dx0, dy0 = max(0, x0), max(0, y0)
        dx1 = min(buffer.width, x0 + target_w)
        dy1 = min(buffer.height, y0 + target_h)
        if dx0 >= dx1 or dy0 >= dy1:
            return
        src = resized[dy0 - y0:dy1 - y0, dx0 - x0:dx1 - x0].astype(np.float32)
        dst = buffer.pixels[dy0:dy1, dx0:dx1]

        alpha = src[:, :, 3:4] / 255.0
        blended = src[:, :, :3] * alpha + dst[:, :, :3].astype(np.float32) * (1.0 - alpha)
        dst[:, :, :3] = np.rint(blended).astype(np.uint8)


# Global rasterizer instance
rasterizer = Rasterizer()
