"""Command-line interface for screenmark.

Modes:
1. Introspection flags print config information and exit
2. --image annotates an existing PNG without any UI
3. Otherwise the interactive GTK overlay is started
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from . import __version__
from .capture import CaptureError, ImageFileProvider
from .config import (
    Config,
    config_defaults,
    config_schema,
    config_to_dict,
    load_config,
    validate_config_file,
)
from .emit import configure, emit
from .export import ExportError, ExportOptions, ImageFormat, export
from .session import EditorSession, SessionState

log = logging.getLogger(__name__)


def create_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="screenmark",
        description="Select, capture and annotate screen regions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                        # Interactive overlay
  %(prog)s --image shot.png --rect 10,10,200,80   # Highlight a box in an image
  %(prog)s --image shot.png --region 0,0,640,480 --text 20,20,"Look here" -o out.png
  %(prog)s --image shot.png --dpi 2 --rect 5,5,50,50 --no-clipboard --json
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"screenmark {__version__}",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Path to config file (default: platform config dir)",
    )

    # Introspection
    parser.add_argument(
        "--print-defaults",
        action="store_true",
        help="Print default configuration as JSON and exit",
    )
    parser.add_argument(
        "--print-config-schema",
        action="store_true",
        help="Print configuration schema as JSON and exit",
    )
    parser.add_argument(
        "--validate-config",
        action="store_true",
        help="Validate configuration file and exit",
    )
    parser.add_argument(
        "--print-resolved",
        action="store_true",
        help="Print resolved configuration as JSON and exit",
    )

    # Source
    parser.add_argument(
        "--image",
        metavar="PATH",
        help="Annotate an existing PNG instead of capturing the screen",
    )
    parser.add_argument(
        "--region",
        metavar="X,Y,W,H",
        help="Logical region of the image to keep (default: whole image)",
    )
    parser.add_argument(
        "--dpi",
        type=float,
        default=1.0,
        metavar="SCALE",
        help="Logical-to-physical scale of the image (default: 1.0)",
    )

    # Annotations
    parser.add_argument(
        "--rect",
        action="append",
        default=[],
        metavar="X,Y,W,H",
        help="Add a rectangle highlight (repeatable, region-relative)",
    )
    parser.add_argument(
        "--text",
        action="append",
        default=[],
        metavar="X,Y,CONTENT",
        help="Add a text label (repeatable, region-relative)",
    )
    parser.add_argument("--stroke-color", metavar="#RRGGBB", help="Rectangle stroke color")
    parser.add_argument("--stroke-width", type=float, metavar="PX", help="Rectangle stroke width")
    parser.add_argument("--text-color", metavar="#RRGGBB", help="Text color")
    parser.add_argument("--font-size", type=float, metavar="PT", help="Text size")

    # Output
    parser.add_argument(
        "--output", "-o",
        metavar="PATH",
        help="Output path (default: <output_dir>/screenmark_<timestamp>.<ext>)",
    )
    parser.add_argument(
        "--format", "-f",
        choices=["png", "jpg", "jpeg", "bmp"],
        help="Output format (default: from config)",
    )
    parser.add_argument(
        "--quality", "-q",
        type=int,
        metavar="1-100",
        help="JPEG quality (default: from config)",
    )
    parser.add_argument(
        "--no-clipboard",
        action="store_true",
        help="Do not copy to clipboard",
    )
    parser.add_argument(
        "--stdout",
        action="store_true",
        help="Print output path to stdout",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output JSON metadata to stdout",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    return parser


def parse_numbers(value: str, count: int) -> Tuple[float, ...]:
    """Parse 'a,b,c' into `count` floats."""
    parts = value.split(",")
    if len(parts) != count:
        raise ValueError(f"expected {count} comma-separated numbers, got {value!r}")
    return tuple(float(p) for p in parts)


def parse_text_spec(value: str) -> Tuple[float, float, str]:
    """Parse 'X,Y,CONTENT'. The content may itself contain commas."""
    parts = value.split(",", 2)
    if len(parts) != 3 or not parts[2]:
        raise ValueError(f"expected X,Y,CONTENT, got {value!r}")
    return float(parts[0]), float(parts[1]), parts[2]


def _emit_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def _handle_introspection(args: argparse.Namespace) -> Optional[int]:
    config_path = Path(args.config).expanduser() if args.config else None

    if args.print_defaults:
        _emit_json(config_defaults())
        return 0

    if args.print_config_schema:
        _emit_json(config_schema())
        return 0

    if args.validate_config:
        try:
            errors = validate_config_file(config_path)
        except ValueError as e:
            errors = [str(e)]
        if errors:
            for error in errors:
                print(error, file=sys.stderr)
            return 1
        return 0

    if args.print_resolved:
        config = load_config(config_path=config_path)
        _emit_json(config_to_dict(config))
        return 0

    return None


def _config_overrides(args: argparse.Namespace) -> dict:
    return {
        "stroke_color": args.stroke_color,
        "stroke_width": args.stroke_width,
        "text_color": args.text_color,
        "font_size": args.font_size,
    }


def build_export_options(args: argparse.Namespace) -> ExportOptions:
    return ExportOptions(
        output_path=Path(args.output).expanduser() if args.output else None,
        image_format=ImageFormat.from_name(args.format) if args.format else None,
        quality=args.quality,
        clipboard=not args.no_clipboard,
        stdout=args.stdout,
        json_output=args.json,
    )


def handle_image(args: argparse.Namespace, config: Config) -> int:
    """Annotate a PNG file headlessly and export it."""
    try:
        rects: List[Tuple[float, ...]] = [parse_numbers(r, 4) for r in args.rect]
        texts = [parse_text_spec(t) for t in args.text]
        region = parse_numbers(args.region, 4) if args.region else None
    except ValueError as e:
        log.error("Invalid argument: %s", e)
        return 1
    if args.dpi <= 0:
        log.error("--dpi must be positive")
        return 1

    provider = ImageFileProvider(Path(args.image).expanduser(), dpi_scale=args.dpi)
    session = EditorSession(provider, config)

    try:
        display = session.layout.get(0)
    except CaptureError as e:
        log.error("Capture failed: %s", e)
        return 1

    if region is None:
        x, y, w, h = 0.0, 0.0, display.bounds.width, display.bounds.height
    else:
        x, y, w, h = region

    session.begin_selection()
    session.pointer_down((x, y), display.index)
    session.pointer_up((x + w, y + h))
    if session.state is not SessionState.EDITING:
        if session.last_error is not None:
            log.error("Capture failed: %s", session.last_error)
        else:
            log.error("Region %s has no area", args.region)
        return 1

    for rx, ry, rw, rh in rects:
        session.store.insert(session.defaults.rectangle((rx, ry), (rw, rh)))
    for tx, ty, content in texts:
        session.store.insert(session.defaults.text((tx, ty), content))

    buffer = session.render()
    try:
        export(buffer, build_export_options(args), config)
    except ExportError as e:
        emit("error.handled", {"error_type": "ExportError", "message": str(e)})
        log.error("Export failed: %s", e)
        return 1
    return 0


def handle_interactive(args: argparse.Namespace, config: Config) -> int:
    # Imported here so non-interactive modes never initialize GTK
    try:
        from .ui import run_interactive
    except (ImportError, ValueError) as e:
        log.error("Interactive mode needs PyGObject with GTK 3 (install screenmark[gtk]): %s", e)
        return 1
    return run_interactive(config, build_export_options(args))


def main(args: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_argument_parser()
    parsed_args = parser.parse_args(args)

    result = _handle_introspection(parsed_args)
    if result is not None:
        return result

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.debug else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    configure("screenmark", stderr=not parsed_args.json)

    config_path = Path(parsed_args.config).expanduser() if parsed_args.config else None
    try:
        config = load_config(config_path=config_path, overrides=_config_overrides(parsed_args))
        config.annotation_defaults()
        ImageFormat.from_name(config.default_format)
    except ValueError as e:
        log.error("Invalid configuration: %s", e)
        return 1

    emit("config.resolved", {
        "config_path": str(config_path or "default"),
        "source": "cli" if config_path else "default",
    })

    if parsed_args.image:
        return handle_image(parsed_args, config)
    return handle_interactive(parsed_args, config)


if __name__ == "__main__":
    sys.exit(main())
