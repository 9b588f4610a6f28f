"""
Template store: persisted scenes with metadata on the local filesystem.

The raw scene document is stored as submitted and parsed on every load, so
editor exports keep any fields the renderer does not model.
"""

import json
import logging
import shutil
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.config import settings
from app.models.scene import (
    BaseElement,
    CircleElement,
    GroupElement,
    ImageElement,
    LineElement,
    RectangleElement,
    Scene,
    SkipElement,
    TextElement,
)
from app.models.templates import EditableElement, Template, TemplateIndex
from app.services.errors import TemplateNotFoundError
from app.services.render import RenderService, parse_scene, render_service

logger = logging.getLogger(__name__)


def _raw_elements(container: Dict[str, Any], keys: tuple) -> List[Any]:
    for key in keys:
        value = container.get(key)
        if isinstance(value, list):
            return value
    return []


def _fill_missing_names(raw_elements: List[Any], elements: List[BaseElement]) -> int:
    """
    Copy parsed names onto raw elements that have none.

    Raw and parsed lists correspond one to one, recursively through groups.
    """
    assigned = 0
    for raw, element in zip(raw_elements, elements):
        if not isinstance(raw, dict):
            continue
        if not raw.get("name") and element.name:
            raw["name"] = element.name
            assigned += 1
        if isinstance(element, GroupElement):
            assigned += _fill_missing_names(_raw_elements(raw, ("children", "objects")), element.children)
    return assigned


def describe_element(element: BaseElement) -> Optional[EditableElement]:
    """Summarize an element a mutation can target; None for groups and skipped kinds."""
    properties: Dict[str, Any] = {"x": element.position.left, "y": element.position.top}

    if isinstance(element, TextElement):
        properties.update(
            text=element.text,
            fontFamily=element.font_family,
            fontSize=element.font_size,
            color=element.fill,
            align=element.text_align.value,
            bold=element.font_weight.value == "bold",
            italic=element.font_style.value == "italic",
            underline=element.underline,
        )
    elif isinstance(element, RectangleElement):
        properties.update(
            width=element.width,
            height=element.height,
            fill=element.fill,
            stroke=element.stroke,
            strokeWidth=element.stroke_width,
        )
    elif isinstance(element, CircleElement):
        properties.update(
            radius=element.radius,
            fill=element.fill,
            stroke=element.stroke,
            strokeWidth=element.stroke_width,
        )
    elif isinstance(element, LineElement):
        properties.update(stroke=element.stroke, strokeWidth=element.stroke_width)
    elif isinstance(element, ImageElement):
        properties.update(width=element.width, height=element.height)
    else:
        return None

    return EditableElement(
        id=element.id,
        name=element.name,
        type=element.type,
        properties=properties,
    )


def describe_elements(scene: Scene) -> List[EditableElement]:
    described = (describe_element(e) for e in scene.iter_elements() if not isinstance(e, SkipElement))
    return [d for d in described if d is not None]


class TemplateService:
    """
    Service for managing stored templates.

    Store structure:
    storage_root/
      templates/
        index.json          # Index of all templates
        {template_id}/
          scene.json        # Raw scene document
          thumbnail.png     # Reduced-size render
    """

    def __init__(self, storage_root: Optional[Path] = None, renderer: Optional[RenderService] = None):
        self.storage_root = storage_root or settings.storage_root
        self.templates_dir = self.storage_root / "templates"
        self.index_path = self.templates_dir / "index.json"
        self.renderer = renderer or render_service

        self.templates_dir.mkdir(parents=True, exist_ok=True)

        # Index writes are last-writer-wins under this lock
        self._lock = threading.Lock()
        self._index = self._load_index()

    def _load_index(self) -> TemplateIndex:
        """Load the template index from disk."""
        if self.index_path.exists():
            try:
                with open(self.index_path, "r") as f:
                    data = json.load(f)
                return TemplateIndex.model_validate(data)
            except Exception as e:
                logger.error(f"Failed to load template index: {e}")

        return TemplateIndex(
            templates=[],
            updated_at=datetime.now(timezone.utc),
        )

    def _save_index(self) -> None:
        """Save the template index to disk. Caller holds the lock."""
        self._index.updated_at = datetime.now(timezone.utc)
        with open(self.index_path, "w") as f:
            json.dump(self._index.model_dump(mode="json"), f, indent=2)

    def _get_template_dir(self, template_id: str) -> Path:
        return self.templates_dir / template_id

    def _write_thumbnail(self, scene: Scene, path: Path) -> bool:
        try:
            result = self.renderer.render_thumbnail(scene)
        except Exception as e:
            logger.error(f"Thumbnail generation failed: {e}")
            return False
        path.write_bytes(result.image_bytes)
        return True

    def create_template(
        self,
        name: str,
        scene_data: Dict[str, Any],
        description: Optional[str] = None,
    ) -> Template:
        """
        Store a new template and render its thumbnail.

        Raises:
            InvalidSceneError: If scene_data is not a valid scene
        """
        scene = parse_scene(scene_data)
        template_id = str(uuid.uuid4())

        template_dir = self._get_template_dir(template_id)
        template_dir.mkdir(parents=True, exist_ok=True)
        scene_path = template_dir / "scene.json"
        thumbnail_path = template_dir / "thumbnail.png"

        with open(scene_path, "w") as f:
            json.dump(scene_data, f, indent=2)

        has_thumbnail = self._write_thumbnail(scene, thumbnail_path)

        now = datetime.now(timezone.utc)
        template = Template(
            id=template_id,
            name=name,
            description=description,
            width=scene.width,
            height=scene.height,
            scene_path=str(scene_path),
            thumbnail_path=str(thumbnail_path) if has_thumbnail else None,
            created_at=now,
            updated_at=now,
        )

        with self._lock:
            self._index.templates.append(template)
            self._save_index()

        logger.info(f"Created template {template_id} ({name})")
        return template

    def get_template(self, template_id: str) -> Optional[Template]:
        """Get a template by ID."""
        for t in self._index.templates:
            if t.id == template_id:
                return t
        return None

    def require_template(self, template_id: str) -> Template:
        template = self.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def list_templates(self, search: Optional[str] = None) -> List[Template]:
        """List templates, newest first, optionally filtered by name."""
        # Reversed so ties on created_at still list the later insert first
        templates = list(reversed(self._index.templates))
        if search:
            search_lower = search.lower()
            templates = [
                t for t in templates
                if search_lower in t.name.lower()
                or (t.description and search_lower in t.description.lower())
            ]
        templates.sort(key=lambda t: t.created_at, reverse=True)
        return templates

    def load_scene_data(self, template_id: str) -> Dict[str, Any]:
        """
        Load the raw scene document of a template.

        Raises:
            TemplateNotFoundError: If the template does not exist
        """
        template = self.require_template(template_id)
        with open(template.scene_path, "r") as f:
            return json.load(f)

    def load_scene(self, template_id: str) -> Scene:
        """Load and parse a template's scene."""
        return parse_scene(self.load_scene_data(template_id))

    def delete_template(self, template_id: str) -> bool:
        """
        Delete a template.

        Returns True if the template was deleted, False if not found.
        """
        with self._lock:
            if self.get_template(template_id) is None:
                return False
            self._index.templates = [t for t in self._index.templates if t.id != template_id]
            self._save_index()

        template_dir = self._get_template_dir(template_id)
        if template_dir.exists():
            shutil.rmtree(template_dir)

        logger.info(f"Deleted template {template_id}")
        return True

    def assign_systematic_names(self, template_id: str) -> int:
        """
        Persist systematic names into the stored scene document.

        Elements without a name get the name they are selected by at render
        time (text_1, shape_2, ...). Returns the number of names written.
        """
        scene_data = self.load_scene_data(template_id)
        scene = parse_scene(scene_data)
        assigned = _fill_missing_names(_raw_elements(scene_data, ("elements", "objects")), scene.elements)

        if assigned:
            template = self.require_template(template_id)
            with self._lock:
                with open(template.scene_path, "w") as f:
                    json.dump(scene_data, f, indent=2)
                template.updated_at = datetime.now(timezone.utc)
                self._save_index()

        logger.info(f"Assigned {assigned} systematic names in template {template_id}")
        return assigned

    def get_thumbnail_path(self, template_id: str) -> Optional[Path]:
        template = self.get_template(template_id)
        if template and template.thumbnail_path:
            path = Path(template.thumbnail_path)
            if path.exists():
                return path
        return None


# Global service instance
template_service = TemplateService()
