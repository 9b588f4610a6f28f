"""
Unit tests for the rasterizer.
"""

import base64
import logging
import tracemalloc

import cv2
import numpy as np
import pytest

from app.models.scene import TextAlign
from app.services.colors import Color
from app.services.compositor import DrawImage, DrawText, FillCircle, FillRect, StrokeLine
from app.services.context import RendererContext
from app.services.rasterizer import PixelBuffer, Rasterizer, bresenham, clip_segment


WHITE = Color(255, 255, 255)
RED = Color(255, 0, 0)
GREEN = Color(0, 255, 0)
BLUE = Color(0, 0, 255)


@pytest.fixture
def rasterizer():
    return Rasterizer()


@pytest.fixture
def context(tmp_path):
    """Context with no installed fonts, so text uses Pillow's built-in face."""
    return RendererContext(font_dirs=[], storage_root=tmp_path, allow_remote_images=False)


def png_data_uri(rgba: np.ndarray) -> str:
    ok, encoded = cv2.imencode(".png", cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA))
    assert ok
    return "data:image/png;base64," + base64.b64encode(encoded.tobytes()).decode("ascii")


def colors_in(buffer: PixelBuffer) -> set:
    return {tuple(c) for c in buffer.pixels.reshape(-1, 4).tolist()}


class TestPixelBuffer:
    """Tests for PixelBuffer."""

    def test_blank_background(self):
        buffer = PixelBuffer.blank(4, 3, RED)

        assert buffer.width == 4
        assert buffer.height == 3
        assert buffer.pixel(3, 2) == (255, 0, 0, 255)
        assert len(buffer.to_bytes()) == 4 * 3 * 4

    def test_rejects_wrong_shape(self):
        with pytest.raises(ValueError):
            PixelBuffer(np.zeros((3, 3, 3), dtype=np.uint8))


class TestGeometryHelpers:
    """Tests for line clipping and Bresenham."""

    def test_bresenham_endpoints(self):
        points = bresenham(0, 0, 5, 2)

        assert points[0] == (0, 0)
        assert points[-1] == (5, 2)
        assert len(points) == 6

    def test_bresenham_single_point(self):
        assert bresenham(3, 3, 3, 3) == [(3, 3)]

    def test_clip_segment_inside(self):
        assert clip_segment(1, 1, 5, 5, 0, 0, 10, 10) == (1, 1, 5, 5)

    def test_clip_segment_crossing(self):
        assert clip_segment(-10, 5, 20, 5, 0, 0, 10, 10) == (0, 5, 10, 5)

    def test_clip_segment_outside(self):
        assert clip_segment(-10, -10, -5, -5, 0, 0, 10, 10) is None


class TestShapes:
    """Rectangles, circles and lines."""

    def test_background_only(self, rasterizer, context):
        buffer = rasterizer.rasterize([], 10, 10, BLUE, context)
        assert colors_in(buffer) == {(0, 0, 255, 255)}

    def test_rect_fill_exact(self, rasterizer, context):
        buffer = rasterizer.rasterize([FillRect(x=2, y=3, width=4, height=5, fill=RED)], 10, 10, WHITE, context)
        red = np.all(buffer.pixels == (255, 0, 0, 255), axis=2)

        assert red.sum() == 20
        assert red[3:8, 2:6].all()

    def test_rect_clipped_to_canvas(self, rasterizer, context):
        buffer = rasterizer.rasterize(
            [FillRect(x=-50, y=-50, width=1000, height=1000, fill=RED)], 8, 8, WHITE, context,
        )
        assert colors_in(buffer) == {(255, 0, 0, 255)}

    def test_rect_fully_outside(self, rasterizer, context):
        buffer = rasterizer.rasterize([FillRect(x=50, y=50, width=5, height=5, fill=RED)], 8, 8, WHITE, context)
        assert colors_in(buffer) == {(255, 255, 255, 255)}

    def test_rect_stroke_centered_on_edge(self, rasterizer, context):
        op = FillRect(x=10, y=10, width=20, height=20, fill=RED, stroke=BLUE, stroke_width=2)
        buffer = rasterizer.rasterize([op], 40, 40, WHITE, context)

        assert buffer.pixel(8, 20) == (255, 255, 255, 255)
        assert buffer.pixel(9, 20) == (0, 0, 255, 255)
        assert buffer.pixel(10, 20) == (0, 0, 255, 255)
        assert buffer.pixel(11, 20) == (255, 0, 0, 255)
        assert buffer.pixel(20, 30) == (0, 0, 255, 255)

    def test_scale_maps_scene_to_pixels(self, rasterizer, context):
        buffer = rasterizer.rasterize(
            [FillRect(x=5, y=5, width=10, height=10, fill=RED)], 40, 40, WHITE, context,
            scale_x=2.0, scale_y=2.0,
        )
        red = np.all(buffer.pixels == (255, 0, 0, 255), axis=2)

        assert red.sum() == 400
        assert red[10:30, 10:30].all()

    def test_circle(self, rasterizer, context):
        buffer = rasterizer.rasterize([FillCircle(cx=10, cy=10, radius=5, fill=GREEN)], 20, 20, WHITE, context)

        assert buffer.pixel(10, 10) == (0, 255, 0, 255)
        assert buffer.pixel(6, 10) == (0, 255, 0, 255)
        assert buffer.pixel(5, 5) == (255, 255, 255, 255)
        assert colors_in(buffer) == {(0, 255, 0, 255), (255, 255, 255, 255)}

    def test_circle_stroke_ring(self, rasterizer, context):
        op = FillCircle(cx=20, cy=20, radius=10, fill=None, stroke=BLUE, stroke_width=2)
        buffer = rasterizer.rasterize([op], 40, 40, WHITE, context)

        assert buffer.pixel(20, 20) == (255, 255, 255, 255)
        assert buffer.pixel(29, 19) == (0, 0, 255, 255)

    def test_circle_partially_off_canvas(self, rasterizer, context):
        buffer = rasterizer.rasterize([FillCircle(cx=0, cy=0, radius=5, fill=GREEN)], 10, 10, WHITE, context)
        assert buffer.pixel(0, 0) == (0, 255, 0, 255)

    def test_horizontal_line(self, rasterizer, context):
        buffer = rasterizer.rasterize([StrokeLine(x1=2, y1=5, x2=8, y2=5, color=RED)], 10, 10, WHITE, context)
        red = np.all(buffer.pixels == (255, 0, 0, 255), axis=2)

        assert red[5, 2:9].all()
        assert red.sum() == 7

    def test_wide_line(self, rasterizer, context):
        buffer = rasterizer.rasterize(
            [StrokeLine(x1=0, y1=5, x2=9, y2=5, color=RED, width=3)], 10, 10, WHITE, context,
        )
        red = np.all(buffer.pixels == (255, 0, 0, 255), axis=2)

        assert red[4:7, :].all()
        assert red.sum() == 30

    def test_huge_stroke_on_tiny_canvas(self, rasterizer, context):
        op = StrokeLine(x1=-12000, y1=5, x2=12000, y2=5, color=RED, width=12000)

        tracemalloc.start()
        try:
            buffer = rasterizer.rasterize([op], 10, 10, WHITE, context)
            _, peak = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()

        assert colors_in(buffer) == {(255, 0, 0, 255)}
        assert peak < 10 * 1024 * 1024

    def test_huge_vertical_stroke(self, rasterizer, context):
        op = StrokeLine(x1=5, y1=-1e6, x2=5, y2=1e6, color=RED, width=1e6)
        buffer = rasterizer.rasterize([op], 10, 10, WHITE, context)

        assert colors_in(buffer) == {(255, 0, 0, 255)}

    def test_wide_band_from_off_canvas_center(self, rasterizer, context):
        op = StrokeLine(x1=0, y1=-20, x2=9, y2=-20, color=RED, width=50)
        buffer = rasterizer.rasterize([op], 10, 10, WHITE, context)
        red = np.all(buffer.pixels == (255, 0, 0, 255), axis=2)

        assert red[:6, :].all()
        assert not red[6:, :].any()

    def test_line_outside_canvas(self, rasterizer, context):
        buffer = rasterizer.rasterize(
            [StrokeLine(x1=-100, y1=-100, x2=-50, y2=-80, color=RED)], 10, 10, WHITE, context,
        )
        assert colors_in(buffer) == {(255, 255, 255, 255)}

    def test_paint_order(self, rasterizer, context):
        ops = [
            FillRect(x=0, y=0, width=10, height=10, fill=RED),
            FillRect(x=5, y=0, width=5, height=10, fill=BLUE),
        ]
        buffer = rasterizer.rasterize(ops, 10, 10, WHITE, context)

        assert buffer.pixel(2, 2) == (255, 0, 0, 255)
        assert buffer.pixel(7, 2) == (0, 0, 255, 255)


class TestText:
    """Text rendering."""

    def text_op(self, **overrides) -> DrawText:
        data = dict(x=10, baseline=40, text="Hello", font_family="Arial", font_size=30, color=RED)
        data.update(overrides)
        return DrawText(**data)

    def test_text_draws_exact_color(self, rasterizer, context):
        buffer = rasterizer.rasterize([self.text_op()], 200, 60, WHITE, context)
        colors = colors_in(buffer)

        assert (255, 0, 0, 255) in colors
        assert colors == {(255, 0, 0, 255), (255, 255, 255, 255)}

    def test_text_sits_above_baseline(self, rasterizer, context):
        buffer = rasterizer.rasterize([self.text_op(text="HHH")], 200, 80, WHITE, context)
        rows = np.where(np.all(buffer.pixels == (255, 0, 0, 255), axis=2).any(axis=1))[0]

        assert rows.max() < 40
        assert rows.min() >= 40 - 30

    def test_right_alignment_ends_at_anchor(self, rasterizer, context):
        buffer = rasterizer.rasterize([self.text_op(x=150, align=TextAlign.RIGHT)], 200, 60, WHITE, context)
        cols = np.where(np.all(buffer.pixels == (255, 0, 0, 255), axis=2).any(axis=0))[0]

        assert cols.max() <= 152
        assert cols.min() < 150

    def test_underline_below_baseline(self, rasterizer, context):
        buffer = rasterizer.rasterize([self.text_op(underline=True)], 200, 60, WHITE, context)
        rows = np.where(np.all(buffer.pixels == (255, 0, 0, 255), axis=2).any(axis=1))[0]

        assert rows.max() > 40

    def test_synthetic_bold_adds_coverage(self, rasterizer, context):
        regular = rasterizer.rasterize([self.text_op()], 200, 60, WHITE, context)
        bold = rasterizer.rasterize([self.text_op(bold=True)], 200, 60, WHITE, context)

        def coverage(buffer):
            return np.all(buffer.pixels == (255, 0, 0, 255), axis=2).sum()

        assert coverage(bold) > coverage(regular)

    def test_synthetic_italic_changes_pixels(self, rasterizer, context):
        regular = rasterizer.rasterize([self.text_op(text="III")], 200, 60, WHITE, context)
        italic = rasterizer.rasterize([self.text_op(text="III", italic=True)], 200, 60, WHITE, context)

        assert not np.array_equal(regular.pixels, italic.pixels)

    def test_text_off_canvas(self, rasterizer, context):
        buffer = rasterizer.rasterize([self.text_op(x=-500, baseline=-500)], 50, 50, WHITE, context)
        assert colors_in(buffer) == {(255, 255, 255, 255)}

    def test_text_larger_than_canvas_still_paints(self, rasterizer, context):
        # Glyph mask at full size would be far beyond Pillow's pixel limit
        op = self.text_op(text="HH", x=-5000, baseline=-2500, font_size=20000, underline=True)
        buffer = rasterizer.rasterize([op], 64, 64, WHITE, context)

        assert colors_in(buffer) == {(255, 0, 0, 255)}


class TestImages:
    """Image placement."""

    @pytest.fixture
    def checker(self):
        rgba = np.zeros((2, 2, 4), dtype=np.uint8)
        rgba[0, 0] = (255, 0, 0, 255)
        rgba[0, 1] = (0, 255, 0, 255)
        rgba[1, 0] = (0, 0, 255, 255)
        rgba[1, 1] = (0, 0, 0, 0)
        return rgba

    def test_data_uri_scaled_nearest(self, rasterizer, context, checker):
        op = DrawImage(x=10, y=10, source=png_data_uri(checker), scale_x=5, scale_y=5)
        buffer = rasterizer.rasterize([op], 30, 30, WHITE, context)

        assert buffer.pixel(10, 10) == (255, 0, 0, 255)
        assert buffer.pixel(14, 14) == (255, 0, 0, 255)
        assert buffer.pixel(15, 10) == (0, 255, 0, 255)
        assert buffer.pixel(10, 15) == (0, 0, 255, 255)
        # Transparent source pixel leaves the background
        assert buffer.pixel(17, 17) == (255, 255, 255, 255)
        assert buffer.pixel(20, 20) == (255, 255, 255, 255)

    def test_crop_window(self, rasterizer, context, checker):
        op = DrawImage(x=0, y=0, source=png_data_uri(checker), width=1, height=1, crop_x=1, crop_y=0)
        buffer = rasterizer.rasterize([op], 4, 4, WHITE, context)

        assert buffer.pixel(0, 0) == (0, 255, 0, 255)
        assert buffer.pixel(1, 0) == (255, 255, 255, 255)

    def test_local_file_under_storage_root(self, rasterizer, context, checker, tmp_path):
        ok, encoded = cv2.imencode(".png", cv2.cvtColor(checker, cv2.COLOR_RGBA2BGRA))
        (tmp_path / "pic.png").write_bytes(encoded.tobytes())

        buffer = rasterizer.rasterize([DrawImage(x=0, y=0, source="pic.png")], 2, 2, WHITE, context)
        assert buffer.pixel(0, 0) == (255, 0, 0, 255)

    def test_failing_op_is_isolated(self, rasterizer, context, caplog):
        ops = [
            DrawImage(x=0, y=0, source="data:image/png;base64,bm90IGFuIGltYWdl"),
            FillRect(x=0, y=0, width=2, height=2, fill=RED),
        ]
        with caplog.at_level(logging.WARNING, logger="app.services.rasterizer"):
            buffer = rasterizer.rasterize(ops, 4, 4, WHITE, context)

        assert buffer.pixel(0, 0) == (255, 0, 0, 255)
        assert "DrawImage" in caplog.text
