"""
Unit tests for the selector & mutation engine.
"""

import logging

import pytest
from pydantic import ValidationError

from app.models.mutation import Mutation, Selector
from app.models.scene import FontStyle, FontWeight, Scene, TextAlign
from app.services.mutations import MutationEngine, find_matches


@pytest.fixture
def engine():
    return MutationEngine()


@pytest.fixture
def scene():
    return Scene.model_validate({
        "width": 400,
        "height": 300,
        "elements": [
            {"type": "text", "id": "t1", "name": "title", "text": "Hello", "fontSize": 30},
            {"type": "rectangle", "id": "r1", "name": "box", "width": 50, "height": 50, "fill": "#ff0000"},
            {"type": "circle", "id": "c1", "name": "dot", "radius": 20, "fill": "#0000ff"},
            {"type": "image", "id": "i1", "name": "photo", "src": "photo.png", "width": 40, "height": 30},
            {
                "type": "group",
                "id": "g1",
                "position": {"left": 10, "top": 10},
                "children": [
                    {"type": "text", "id": "t2", "name": "title", "text": "Nested"},
                ],
            },
        ],
    })


def mutation(**data) -> Mutation:
    return Mutation.model_validate(data)


class TestSelector:
    """Tests for selector validation and matching."""

    def test_selector_requires_id_or_name(self):
        with pytest.raises(ValidationError):
            Selector()

    def test_matches_all_elements_with_name(self, scene):
        matched = find_matches(scene, Selector(name="title"))
        assert [e.id for e in matched] == ["t1", "t2"]

    def test_id_or_name(self, scene):
        matched = find_matches(scene, Selector(id="r1", name="dot"))
        assert [e.id for e in matched] == ["r1", "c1"]

    def test_systematic_name_selects(self):
        scene = Scene.model_validate({"objects": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]})
        matched = find_matches(scene, Selector(name="text_2"))
        assert [e.text for e in matched] == ["b"]


class TestMutationEngine:
    """Tests for MutationEngine.apply."""

    def test_text_value(self, engine, scene):
        result = engine.apply(scene, [mutation(selector={"id": "t1"}, text={"value": "Bye"})])

        assert result.scene.elements[0].text == "Bye"
        assert result.reports[0].matched == 1
        assert result.reports[0].applied == 1

    def test_input_scene_untouched(self, engine, scene):
        engine.apply(scene, [mutation(selector={"id": "t1"}, text={"value": "Bye"}, position={"x": 99})])

        assert scene.elements[0].text == "Hello"
        assert scene.elements[0].position.left == 0

    def test_applies_to_every_match(self, engine, scene):
        result = engine.apply(scene, [mutation(selector={"name": "title"}, text={"color": "#00ff00"})])

        assert result.scene.elements[0].fill == "#00ff00"
        assert result.scene.elements[4].children[0].fill == "#00ff00"
        assert result.reports[0].matched == 2

    def test_text_style_flags(self, engine, scene):
        result = engine.apply(scene, [mutation(
            selector={"id": "t1"},
            text={"bold": True, "italic": True, "underline": True, "align": "right", "fontFamily": "Georgia"},
        )])
        text = result.scene.elements[0]

        assert text.font_weight == FontWeight.BOLD
        assert text.font_style == FontStyle.ITALIC
        assert text.underline is True
        assert text.text_align == TextAlign.RIGHT
        assert text.font_family == "Georgia"

    @pytest.mark.parametrize("requested,expected", [(500, 200), (1, 8), (64, 64)])
    def test_font_size_clamped(self, engine, scene, requested, expected):
        result = engine.apply(scene, [mutation(selector={"id": "t1"}, text={"fontSize": requested})])
        assert result.scene.elements[0].font_size == expected

    def test_position_clamped(self, engine, scene):
        result = engine.apply(scene, [mutation(
            selector={"id": "r1"},
            position={"x": -5, "y": -1, "width": 0, "height": -10},
        )])
        rect = result.scene.elements[1]

        assert rect.position.left == 0
        assert rect.position.top == 0
        assert rect.width == 1
        assert rect.height == 1

    def test_position_size_per_kind(self, engine, scene):
        result = engine.apply(scene, [
            mutation(selector={"id": "t1"}, position={"width": 200, "height": 80}),
            mutation(selector={"id": "c1"}, position={"x": 7, "width": 200}),
            mutation(selector={"id": "i1"}, position={"width": 80, "height": 60}),
        ])
        text, _, circle, image, _ = result.scene.elements

        assert text.width == 200
        assert circle.position.left == 7
        assert circle.radius == 20
        assert image.width == 80
        assert image.height == 60

    def test_shape_patch(self, engine, scene):
        result = engine.apply(scene, [mutation(
            selector={"id": "c1"},
            shape={"fill": "#00ff00", "stroke": "#000000", "strokeWidth": -2, "radius": 0},
        )])
        circle = result.scene.elements[2]

        assert circle.fill == "#00ff00"
        assert circle.stroke == "#000000"
        assert circle.stroke_width == 0
        assert circle.radius == 1

    def test_text_patch_skips_shapes(self, engine, scene):
        result = engine.apply(scene, [mutation(selector={"id": "r1"}, text={"value": "nope"})])
        report = result.reports[0]

        assert report.matched == 1
        assert report.applied == 0
        assert report.skipped == ["box"]

    def test_shape_patch_skips_text(self, engine, scene):
        result = engine.apply(scene, [mutation(selector={"id": "t1"}, shape={"fill": "#00ff00"})])

        assert result.scene.elements[0].fill == "#000000"
        assert result.reports[0].applied == 0

    def test_shape_type_filter(self, engine, scene):
        result = engine.apply(scene, [mutation(
            selector={"id": "r1", "name": "dot"},
            shape={"type": "circle", "fill": "#00ff00"},
        )])

        assert result.scene.elements[1].fill == "#ff0000"
        assert result.scene.elements[2].fill == "#00ff00"

    def test_radius_ignored_for_rectangles(self, engine, scene):
        result = engine.apply(scene, [mutation(selector={"id": "r1"}, shape={"radius": 99})])
        assert not hasattr(result.scene.elements[1], "radius")

    def test_unmatched_selector_is_noop(self, engine, scene, caplog):
        with caplog.at_level(logging.INFO, logger="app.services.mutations"):
            result = engine.apply(scene, [mutation(selector={"name": "missing"}, text={"value": "x"})])

        assert result.scene == scene
        assert result.reports[0].matched == 0
        assert "matched nothing" in caplog.text

    def test_later_mutation_wins(self, engine, scene):
        result = engine.apply(scene, [
            mutation(selector={"id": "t1"}, text={"value": "first"}),
            mutation(selector={"name": "title"}, text={"value": "second"}),
        ])

        assert result.scene.elements[0].text == "second"
        assert result.scene.elements[4].children[0].text == "second"

    def test_nested_element_in_group(self, engine, scene):
        result = engine.apply(scene, [mutation(selector={"id": "t2"}, position={"x": 3, "y": 4})])
        nested = result.scene.elements[4].children[0]

        assert nested.position.left == 3
        assert nested.position.top == 4

    def test_camel_case_aliases(self):
        m = mutation(selector={"id": "x"}, text={"fontSize": 12, "fontFamily": "Arial"}, shape={"strokeWidth": 3})

        assert m.text.font_size == 12
        assert m.text.font_family == "Arial"
        assert m.shape.stroke_width == 3
