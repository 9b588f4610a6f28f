"""
Selector & mutation engine.

Mutations are applied to a deep copy of the scene, in request order, to
every element whose id or name matches the selector (groups are searched
recursively). Patches that do not fit an element's kind are skipped for
that element; out-of-range values are clamped silently. An unmatched
selector is a no-op, never an error.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from app.models.mutation import (
    Mutation,
    MutationReport,
    PositionMutation,
    Selector,
    ShapeMutation,
    TextMutation,
)
from app.models.scene import (
    BaseElement,
    CircleElement,
    FontStyle,
    FontWeight,
    ImageElement,
    RectangleElement,
    Scene,
    TextElement,
    clamp,
    clamp_font_size,
)

logger = logging.getLogger(__name__)


@dataclass
class MutationResult:
    """Mutated scene copy plus one report per mutation."""
    scene: Scene
    reports: List[MutationReport] = field(default_factory=list)


def matches(element: BaseElement, selector: Selector) -> bool:
    if selector.id is not None and element.id == selector.id:
        return True
    return selector.name is not None and element.name == selector.name


def find_matches(scene: Scene, selector: Selector) -> List[BaseElement]:
    """All elements matching the selector, in paint order."""
    return [element for element in scene.iter_elements() if matches(element, selector)]


class MutationEngine:
    """Applies mutation lists to scenes."""

    def apply(self, scene: Scene, mutations: List[Mutation]) -> MutationResult:
        """
        Apply mutations to a copy of `scene`.

        The input scene is never modified.
        """
        working = scene.model_copy(deep=True)
        reports = []

        for index, mutation in enumerate(mutations):
            targets = find_matches(working, mutation.selector)
            if not targets:
                logger.info(f"Mutation {index}: selector {mutation.selector.describe()} matched nothing")

            applied = 0
            skipped = []
            for element in targets:
                if self._apply_one(element, mutation):
                    applied += 1
                else:
                    skipped.append(element.name or element.id or element.type)

            if skipped:
                logger.info(
                    f"Mutation {index}: not applicable to {len(skipped)} matched element(s): {skipped}"
                )

            reports.append(MutationReport(
                index=index,
                selector=mutation.selector,
                matched=len(targets),
                applied=applied,
                skipped=skipped,
            ))

        return MutationResult(scene=working, reports=reports)

    def _apply_one(self, element: BaseElement, mutation: Mutation) -> bool:
        """Patch one element; True if any part of the mutation applied."""
        changed = False
        if mutation.text is not None:
            changed |= self._apply_text(element, mutation.text)
        if mutation.position is not None:
            changed |= self._apply_position(element, mutation.position)
        if mutation.shape is not None:
            changed |= self._apply_shape(element, mutation.shape)
        return changed

    def _apply_text(self, element: BaseElement, patch: TextMutation) -> bool:
        if not isinstance(element, TextElement):
            return False

        if patch.value is not None:
            element.text = patch.value
        if patch.font_family is not None:
            element.font_family = patch.font_family
        if patch.font_size is not None:
            element.font_size = clamp_font_size(patch.font_size)
        if patch.color is not None:
            element.fill = patch.color
        if patch.align is not None:
            element.text_align = patch.align
        if patch.bold is not None:
            element.font_weight = FontWeight.BOLD if patch.bold else FontWeight.NORMAL
        if patch.italic is not None:
            element.font_style = FontStyle.ITALIC if patch.italic else FontStyle.NORMAL
        if patch.underline is not None:
            element.underline = patch.underline
        return True

    def _apply_position(self, element: BaseElement, patch: PositionMutation) -> bool:
        changed = False
        if patch.x is not None:
            element.position.left = clamp(patch.x, 0.0)
            changed = True
        if patch.y is not None:
            element.position.top = clamp(patch.y, 0.0)
            changed = True

        if patch.width is not None and isinstance(element, (RectangleElement, ImageElement, TextElement)):
            element.width = clamp(patch.width, 1.0)
            changed = True
        if patch.height is not None and isinstance(element, (RectangleElement, ImageElement)):
            element.height = clamp(patch.height, 1.0)
            changed = True
        return changed

    def _apply_shape(self, element: BaseElement, patch: ShapeMutation) -> bool:
        if not isinstance(element, (RectangleElement, CircleElement)):
            return False
        if patch.type is not None and element.type != patch.type.value:
            return False

        if patch.fill is not None:
            element.fill = patch.fill
        if patch.stroke is not None:
            element.stroke = patch.stroke
        if patch.stroke_width is not None:
            element.stroke_width = clamp(patch.stroke_width, 0.0)
        if patch.radius is not None and isinstance(element, CircleElement):
            element.radius = clamp(patch.radius, 1.0)
        return True


# Global engine instance
mutation_engine = MutationEngine()
