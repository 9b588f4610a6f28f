"""
End-to-end tests for the render pipeline.
"""

import io

import numpy as np
import pytest
from PIL import Image

from app.models.mutation import Mutation
from app.models.render import OutputSpec
from app.models.scene import Scene
from app.services.context import RendererContext
from app.services.errors import InvalidOutputSpecError, InvalidSceneError
from app.services.render import RenderService, parse_scene


@pytest.fixture
def service(tmp_path):
    context = RendererContext(font_dirs=[], storage_root=tmp_path, allow_remote_images=False)
    return RenderService(context=context, max_dimension=2048)


@pytest.fixture
def red_box_scene():
    return Scene.model_validate({
        "width": 100,
        "height": 100,
        "background_color": "#ffffff",
        "elements": [
            {
                "type": "rectangle",
                "name": "box",
                "position": {"left": 0, "top": 0},
                "width": 100,
                "height": 100,
                "fill": "#ff0000",
            },
        ],
    })


def decode(data: bytes) -> np.ndarray:
    return np.array(Image.open(io.BytesIO(data)).convert("RGBA"))


class TestRenderPipeline:
    """Tests for RenderService.render."""

    def test_mutation_recolors_box(self, service, red_box_scene):
        mutations = [Mutation.model_validate({"selector": {"name": "box"}, "shape": {"fill": "#00ff00"}})]
        result = service.render(red_box_scene, mutations, OutputSpec(format="png"))
        pixels = decode(result.image_bytes)

        assert result.content_type == "image/png"
        assert (result.width, result.height) == (100, 100)
        assert pixels.shape == (100, 100, 4)
        assert np.all(pixels == (0, 255, 0, 255))
        assert result.reports[0].applied == 1

    def test_mutation_by_id_inside_canvas(self, service):
        scene = Scene.model_validate({
            "width": 100,
            "height": 100,
            "background_color": "#ffffff",
            "elements": [
                {"type": "rectangle", "id": "r1", "position": {"left": 10, "top": 10},
                 "width": 20, "height": 20, "fill": "#ff0000"},
            ],
        })
        mutations = [Mutation.model_validate({"selector": {"id": "r1"}, "shape": {"fill": "#00ff00"}})]
        pixels = decode(service.render(scene, mutations, OutputSpec(format="png")).image_bytes)

        assert tuple(pixels[15, 15]) == (0, 255, 0, 255)
        assert tuple(pixels[0, 0]) == (255, 255, 255, 255)

    def test_stored_scene_not_mutated(self, service, red_box_scene):
        mutations = [Mutation.model_validate({"selector": {"name": "box"}, "shape": {"fill": "#00ff00"}})]
        service.render(red_box_scene, mutations)

        assert red_box_scene.elements[0].fill == "#ff0000"

    def test_deterministic(self, service):
        scene = Scene.model_validate({
            "width": 120,
            "height": 80,
            "elements": [
                {"type": "rectangle", "position": {"left": 5, "top": 5}, "width": 40, "height": 30,
                 "fill": "#336699", "stroke": "#000000", "strokeWidth": 3},
                {"type": "circle", "position": {"left": 60, "top": 10}, "radius": 20, "fill": "#ffcc00"},
                {"type": "line", "x1": 0, "y1": 79, "x2": 119, "y2": 0, "stroke": "#ff00ff", "strokeWidth": 2},
                {"type": "text", "text": "Same", "position": {"left": 10, "top": 40}, "fontSize": 20},
            ],
        })

        first = service.render(scene, [], OutputSpec(format="png"))
        second = service.render(scene, [], OutputSpec(format="png"))

        assert first.image_bytes == second.image_bytes

    def test_oversized_output_clamped(self, service, red_box_scene):
        result = service.render(red_box_scene, [], OutputSpec(format="png", width=5000, height=5000))
        image = Image.open(io.BytesIO(result.image_bytes))

        assert (result.width, result.height) == (2048, 2048)
        assert image.size == (2048, 2048)

    def test_scaled_output_keeps_layout(self, service):
        scene = Scene.model_validate({
            "width": 100,
            "height": 50,
            "elements": [{"type": "rectangle", "width": 50, "height": 50, "fill": "#ff0000"}],
        })
        result = service.render(scene, [], OutputSpec(width=200))
        pixels = decode(result.image_bytes)

        assert pixels.shape[:2] == (100, 200)
        assert np.all(pixels[:, :100] == (255, 0, 0, 255))
        assert np.all(pixels[:, 100:] == (255, 255, 255, 255))

    def test_z_order(self, service):
        scene = Scene.model_validate({
            "width": 10,
            "height": 10,
            "elements": [
                {"type": "rectangle", "width": 10, "height": 10, "fill": "#ff0000"},
                {"type": "rectangle", "width": 10, "height": 10, "fill": "#0000ff"},
            ],
        })
        pixels = decode(service.render(scene).image_bytes)

        assert np.all(pixels == (0, 0, 255, 255))

    def test_bad_elements_do_not_fail_render(self, service):
        scene = Scene.model_validate({
            "width": 10,
            "height": 10,
            "elements": [
                {"type": "image", "src": "https://example.invalid/a.png"},
                {"type": "image", "src": "../../etc/passwd"},
                {"type": "sparkle"},
                {"type": "rectangle", "width": 2, "height": 2, "fill": "not-a-color"},
            ],
        })
        pixels = decode(service.render(scene).image_bytes)

        assert tuple(pixels[0, 0]) == (0, 0, 0, 255)
        assert tuple(pixels[5, 5]) == (255, 255, 255, 255)


class TestOutputSpec:
    """Tests for output validation."""

    @pytest.mark.parametrize("output", [
        OutputSpec(format="gif"),
        OutputSpec(format="png", width=0),
        OutputSpec(format="png", height=-10),
        OutputSpec(format="png", width=-1, height=100),
    ])
    def test_rejected(self, service, red_box_scene, output):
        with pytest.raises(InvalidOutputSpecError) as exc_info:
            service.render(red_box_scene, [], output)

        assert exc_info.value.code == "INVALID_OUTPUT_SPEC"

    def test_rejected_before_any_work(self, service, red_box_scene, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("mutation engine should not run")

        monkeypatch.setattr(service.engine, "apply", fail)

        with pytest.raises(InvalidOutputSpecError):
            service.render(red_box_scene, [], OutputSpec(format="bmp"))

    def test_defaults_to_scene_size(self, service, red_box_scene):
        assert service.resolve_output(red_box_scene, OutputSpec()) == ("png", 100, 100)

    def test_single_dimension_keeps_aspect(self, service):
        scene = Scene(width=200, height=100)

        assert service.resolve_output(scene, OutputSpec(width=400)) == ("png", 400, 200)
        assert service.resolve_output(scene, OutputSpec(height=50)) == ("png", 100, 50)

    def test_format_case_insensitive(self, service, red_box_scene):
        fmt, _, _ = service.resolve_output(red_box_scene, OutputSpec(format="JPG"))
        assert fmt == "jpg"


class TestThumbnailAndParsing:
    """Thumbnail rendering and scene document parsing."""

    def test_thumbnail_scale(self, service):
        scene = Scene(width=800, height=600)
        result = service.render_thumbnail(scene, scale=0.3)

        assert (result.width, result.height) == (240, 180)
        assert result.format == "png"

    def test_parse_scene_error(self):
        with pytest.raises(InvalidSceneError) as exc_info:
            parse_scene({"width": -1, "elements": []})

        assert exc_info.value.code == "INVALID_SCENE"
        assert exc_info.value.details["errors"]
