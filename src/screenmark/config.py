"""Configuration management for screenmark.

Configuration priority (highest to lowest):
1. CLI overrides (passed to load_config)
2. Environment variables (SCREENMARK_*)
3. Config file (~/.config/screenmark/config.yaml)
4. Built-in defaults
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

import yaml
from platformdirs import user_config_dir

if TYPE_CHECKING:
    from .annotations import AnnotationDefaults

ENV_PREFIX = "SCREENMARK"
CONFIG_DIR = Path(user_config_dir("screenmark"))
DEFAULT_CONFIG_PATH = CONFIG_DIR / "config.yaml"


@dataclass
class Config:
    """screenmark configuration."""

    # Capture
    wayland_capture: str = "wayland-capture"

    # Export
    output_dir: Path = field(default_factory=lambda: Path.home() / "Pictures" / "screenshots")
    default_format: str = "png"
    default_quality: int = 90
    clipboard_command: str = "wl-copy"
    enable_clipboard: bool = True

    # Annotation style
    stroke_color: str = "#ff0000"
    stroke_width: float = 2.0
    text_color: str = "#000000"
    font_size: float = 14.0
    font_face: str = "sans-serif"

    # Hooks
    hooks_dir: Optional[Path] = field(default_factory=lambda: CONFIG_DIR / "hooks")

    def __post_init__(self):
        if isinstance(self.output_dir, str):
            self.output_dir = Path(self.output_dir)
        if isinstance(self.hooks_dir, str):
            self.hooks_dir = Path(self.hooks_dir)

    def annotation_defaults(self) -> "AnnotationDefaults":
        """Style for newly drawn annotations."""
        from .annotations import AnnotationDefaults, Color

        return AnnotationDefaults(
            stroke_color=Color.from_hex(self.stroke_color),
            stroke_width=float(self.stroke_width),
            text_color=Color.from_hex(self.text_color),
            font_size=float(self.font_size),
        )


DEFAULT_FORMATS = {"png", "jpg", "jpeg", "bmp"}
PATH_KEYS = {"output_dir", "hooks_dir"}
COLOR_KEYS = {"stroke_color", "text_color"}


def _env(name: str) -> Optional[str]:
    return os.environ.get(f"{ENV_PREFIX}_{name}")


def _config_path_from_env() -> Optional[Path]:
    value = _env("CONFIG") or _env("CONFIG_PATH")
    if value:
        return Path(value).expanduser()
    return None


def _load_config_file(path: Path, strict: bool = False) -> dict:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as exc:
        if strict:
            raise ValueError(f"Failed to parse config file {path}: {exc}")
        return {}

    if not isinstance(data, dict):
        if strict:
            raise ValueError(f"Config file {path} must be a mapping")
        return {}

    return data


def _expand_path(value: Any) -> Any:
    if value is None:
        return value
    return str(Path(value).expanduser())


def config_defaults() -> dict:
    return {
        "wayland_capture": "wayland-capture",
        "output_dir": str(Path.home() / "Pictures" / "screenshots"),
        "default_format": "png",
        "default_quality": 90,
        "clipboard_command": "wl-copy",
        "enable_clipboard": True,
        "stroke_color": "#ff0000",
        "stroke_width": 2.0,
        "text_color": "#000000",
        "font_size": 14.0,
        "font_face": "sans-serif",
        "hooks_dir": str(CONFIG_DIR / "hooks"),
    }


def _load_env_overrides() -> dict:
    config: dict[str, Any] = {}

    mapping = {
        "WAYLAND_CAPTURE": "wayland_capture",
        "OUTPUT_DIR": "output_dir",
        "DEFAULT_FORMAT": "default_format",
        "DEFAULT_QUALITY": "default_quality",
        "CLIPBOARD_COMMAND": "clipboard_command",
        "STROKE_COLOR": "stroke_color",
        "STROKE_WIDTH": "stroke_width",
        "TEXT_COLOR": "text_color",
        "FONT_SIZE": "font_size",
        "FONT_FACE": "font_face",
        "HOOKS_DIR": "hooks_dir",
    }

    for env_name, key in mapping.items():
        value = _env(env_name)
        if value is None:
            continue
        if key in PATH_KEYS:
            config[key] = _expand_path(value)
        elif key == "default_quality":
            try:
                config[key] = int(value)
            except ValueError:
                continue
        elif key in {"stroke_width", "font_size"}:
            try:
                config[key] = float(value)
            except ValueError:
                continue
        else:
            config[key] = value

    value = _env("ENABLE_CLIPBOARD")
    if value is not None:
        config["enable_clipboard"] = value.lower() in ("true", "1", "yes", "on")

    return config


def resolve_config_path(config_path: Optional[Path] = None) -> Path:
    return config_path or _config_path_from_env() or DEFAULT_CONFIG_PATH


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[dict] = None,
    strict: bool = False,
) -> Config:
    """Load configuration from all sources."""
    resolved_path = resolve_config_path(config_path)

    config_dict = config_defaults()
    file_config = _load_config_file(resolved_path, strict=strict)
    if strict:
        errors = validate_config_dict(file_config)
        if errors:
            raise ValueError("; ".join(errors))
    config_dict.update(
        {k: v for k, v in file_config.items() if k in config_dict}
    )
    config_dict.update(_load_env_overrides())

    if overrides:
        for key, value in overrides.items():
            if value is not None:
                config_dict[key] = value

    for key in PATH_KEYS:
        if key in config_dict and config_dict[key] is not None:
            config_dict[key] = _expand_path(config_dict[key])

    return Config(**config_dict)


# Global config instance (lazy loaded)
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def config_schema() -> dict:
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "type": "object",
        "properties": {
            "wayland_capture": {"type": "string"},
            "output_dir": {"type": "string"},
            "default_format": {"type": "string", "enum": sorted(DEFAULT_FORMATS)},
            "default_quality": {"type": "integer", "minimum": 1, "maximum": 100},
            "clipboard_command": {"type": "string"},
            "enable_clipboard": {"type": "boolean"},
            "stroke_color": {"type": "string", "pattern": "^#?[0-9a-fA-F]{6}([0-9a-fA-F]{2})?$"},
            "stroke_width": {"type": "number", "exclusiveMinimum": 0},
            "text_color": {"type": "string", "pattern": "^#?[0-9a-fA-F]{6}([0-9a-fA-F]{2})?$"},
            "font_size": {"type": "number", "exclusiveMinimum": 0},
            "font_face": {"type": "string"},
            "hooks_dir": {"type": ["string", "null"]},
        },
        "additionalProperties": False,
    }


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config_dict(data: Any) -> list[str]:
    from .annotations import Color

    errors: list[str] = []
    if not isinstance(data, dict):
        return ["Config must be a mapping/object"]

    props = config_schema().get("properties", {})

    for key in data.keys():
        if key not in props:
            errors.append(f"Unknown config key: {key}")

    def check_type(key: str, value: Any, expected: str) -> bool:
        if expected == "string" and not isinstance(value, str):
            errors.append(f"{key} must be a string")
        elif expected == "integer" and not _is_int(value):
            errors.append(f"{key} must be an integer")
        elif expected == "number" and not _is_number(value):
            errors.append(f"{key} must be a number")
        elif expected == "boolean" and not isinstance(value, bool):
            errors.append(f"{key} must be a boolean")
        else:
            return True
        return False

    for key, value in data.items():
        if key not in props:
            continue
        expected = props[key].get("type")
        if isinstance(expected, list):
            if value is None and "null" in expected:
                continue
            if "string" in expected and isinstance(value, str):
                continue
            errors.append(f"{key} must be one of types: {', '.join(expected)}")
            continue
        if not check_type(key, value, expected):
            continue

        if key == "default_format" and value not in DEFAULT_FORMATS:
            errors.append(f"default_format must be one of: {', '.join(sorted(DEFAULT_FORMATS))}")
        if key == "default_quality" and not 1 <= value <= 100:
            errors.append("default_quality must be between 1 and 100")
        if key in {"stroke_width", "font_size"} and value <= 0:
            errors.append(f"{key} must be > 0")
        if key in COLOR_KEYS:
            try:
                Color.from_hex(value)
            except ValueError:
                errors.append(f"{key} must be a hex color like #ff0000")

    return errors


def validate_config_file(config_path: Optional[Path] = None) -> list[str]:
    path = resolve_config_path(config_path)
    if not path.exists():
        return []
    data = _load_config_file(path, strict=True)
    return validate_config_dict(data)


def config_to_dict(config: Config) -> dict:
    return {
        "wayland_capture": config.wayland_capture,
        "output_dir": str(config.output_dir),
        "default_format": config.default_format,
        "default_quality": config.default_quality,
        "clipboard_command": config.clipboard_command,
        "enable_clipboard": config.enable_clipboard,
        "stroke_color": config.stroke_color,
        "stroke_width": config.stroke_width,
        "text_color": config.text_color,
        "font_size": config.font_size,
        "font_face": config.font_face,
        "hooks_dir": str(config.hooks_dir) if config.hooks_dir else None,
    }
