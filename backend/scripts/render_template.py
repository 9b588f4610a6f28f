#!/usr/bin/env python3
"""
Script to render a scene or stored template from the command line.

Usage:
    python scripts/render_template.py <scene.json> -o <out.png> [-m mutations.json] [--width W] [--height H] [--format FMT]
    python scripts/render_template.py --template-id <id> -o <out.png> [-m mutations.json]
    python scripts/render_template.py --list

Examples:
    # Render an editor export with one text substitution
    python scripts/render_template.py card.json -m name.json -o card.png

    # Render a stored template at a fixed width (height keeps the aspect ratio)
    python scripts/render_template.py --template-id 550e8400-... --width 1200 -o out.jpg --format jpeg

The mutations file holds a JSON list of mutations, e.g.
    [{"selector": {"name": "text_1"}, "text": {"value": "Hello"}}]
"""

import argparse
import json
import sys
from pathlib import Path

# Add parent directory to path to import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import TypeAdapter, ValidationError

from app.models.mutation import Mutation
from app.models.render import OutputSpec
from app.services.errors import RenderError
from app.services.render import parse_scene, render_service
from app.services.templates import template_service


def load_mutations(path: Path) -> list[Mutation]:
    """Load and validate a JSON list of mutations."""
    try:
        data = json.loads(path.read_text())
        return TypeAdapter(list[Mutation]).validate_python(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        print(f"Error: Invalid mutations file {path}: {e}", file=sys.stderr)
        sys.exit(1)


def list_templates() -> None:
    """Print stored templates."""
    templates = template_service.list_templates()
    if not templates:
        print("No templates stored")
        return

    print(f"{len(templates)} template(s):")
    for t in templates:
        print(f"  {t.id}  {t.name}  ({t.width}x{t.height})")


def render(args: argparse.Namespace) -> None:
    """Render one scene or template to a file."""
    try:
        if args.template_id:
            scene = template_service.load_scene(args.template_id)
        else:
            scene = parse_scene(json.loads(Path(args.scene).read_text()))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: Cannot read scene: {e}", file=sys.stderr)
        sys.exit(1)
    except RenderError as e:
        print(f"Error: {e.code}: {e.message}", file=sys.stderr)
        sys.exit(1)

    mutations = load_mutations(Path(args.mutations)) if args.mutations else []
    fmt = args.format or Path(args.output).suffix.lstrip(".") or "png"
    output = OutputSpec(format=fmt, width=args.width, height=args.height)

    try:
        result = render_service.render(scene, mutations, output)
    except RenderError as e:
        print(f"Error: {e.code}: {e.message}", file=sys.stderr)
        sys.exit(1)

    Path(args.output).write_bytes(result.image_bytes)

    print(f"✓ Rendered {result.width}x{result.height} {result.format} in {result.processing_time_ms}ms")
    for report in result.reports:
        print(
            f"  mutation {report.index} ({report.selector.describe()}): "
            f"matched {report.matched}, applied {report.applied}"
        )
    print(f"  Output: {args.output} ({len(result.image_bytes)} bytes)")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Render a canvas scene or stored template to an image",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument("scene", nargs="?", help="Scene JSON file (native or editor export)")
    parser.add_argument("--template-id", help="Render a stored template instead of a file")
    parser.add_argument("-m", "--mutations", help="JSON file with a list of mutations")
    parser.add_argument("-o", "--output", help="Output image path")
    parser.add_argument("--width", type=int, help="Output width in pixels")
    parser.add_argument("--height", type=int, help="Output height in pixels")
    parser.add_argument("--format", help="png, jpeg, jpg or webp (default: from output suffix)")
    parser.add_argument("--list", action="store_true", help="List stored templates")

    args = parser.parse_args(argv)

    if args.list:
        list_templates()
        return

    if bool(args.scene) == bool(args.template_id):
        parser.error("give exactly one of a scene file or --template-id")
    if not args.output:
        parser.error("--output is required")

    render(args)


if __name__ == "__main__":
    main()
