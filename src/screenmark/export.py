"""Export sinks for finished buffers.

Handles:
- Saving to disk as PNG, JPEG or BMP
- Copying to the clipboard
- JSON output for scripting

Buffers are handed to the sinks unmodified. PNG is written by cairo
directly; JPEG and BMP go through GdkPixbuf.
"""

import json
import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

import cairo

from .compositor import surface_to_png_bytes
from .config import Config, get_config
from .emit import emit
from .hooks import notify_export

log = logging.getLogger(__name__)


class ExportError(Exception):
    """Raised when a sink cannot write the image."""
    pass


class ImageFormat(Enum):
    PNG = "png"
    JPEG = "jpeg"
    BMP = "bmp"

    @property
    def extension(self) -> str:
        return "jpg" if self is ImageFormat.JPEG else self.value

    @property
    def label(self) -> str:
        return self.name

    @classmethod
    def from_name(cls, name: str) -> "ImageFormat":
        key = name.strip().lower()
        if key == "jpg":
            key = "jpeg"
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unsupported image format: {name}")


def _to_pixbuf(buffer: cairo.ImageSurface):
    try:
        import gi
        gi.require_version("Gdk", "3.0")
        from gi.repository import Gdk
    except (ImportError, ValueError) as e:
        raise ExportError(f"JPEG/BMP export needs GdkPixbuf (install screenmark[gtk]): {e}")
    pixbuf = Gdk.pixbuf_get_from_surface(buffer, 0, 0, buffer.get_width(), buffer.get_height())
    if pixbuf is None:
        raise ExportError("Could not convert buffer to pixbuf")
    return pixbuf


def save_to_file(
    buffer: cairo.ImageSurface,
    path: Path,
    image_format: ImageFormat = ImageFormat.PNG,
    quality: int = 90,
) -> Path:
    """Write `buffer` to `path`.

    Raises:
        ExportError: If the file cannot be written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if image_format is ImageFormat.PNG:
            buffer.write_to_png(str(path))
        elif image_format is ImageFormat.JPEG:
            _to_pixbuf(buffer).savev(str(path), "jpeg", ["quality"], [str(quality)])
        else:
            _to_pixbuf(buffer).savev(str(path), "bmp", [], [])
    except ExportError:
        raise
    except Exception as e:
        raise ExportError(f"Failed to save {path}: {e}")
    log.debug("Wrote %s (%s)", path, image_format.label)
    return path


def copy_to_clipboard(buffer: cairo.ImageSurface, command: str = "wl-copy") -> None:
    """Pipe the buffer as PNG to the clipboard tool.

    Raises:
        ExportError: If the clipboard tool is missing or fails
    """
    data = surface_to_png_bytes(buffer)
    try:
        subprocess.run([command, "-t", "image/png"], input=data, check=True, timeout=5)
    except FileNotFoundError:
        raise ExportError(f"Clipboard tool not found: {command}")
    except subprocess.CalledProcessError as e:
        raise ExportError(f"Clipboard copy failed with exit code {e.returncode}")
    except subprocess.TimeoutExpired:
        raise ExportError("Clipboard copy timed out")
    log.debug("Copied to clipboard")


@dataclass
class ExportOptions:
    """Options for exporting a composed buffer."""

    output_path: Optional[Path] = None  # Custom output path
    image_format: Optional[ImageFormat] = None  # Defaults to config.default_format
    quality: Optional[int] = None  # Defaults to config.default_quality

    save_file: bool = True
    clipboard: bool = True

    # Output modes (mutually exclusive)
    stdout: bool = False  # Print path to stdout
    json_output: bool = False  # Output JSON metadata


@dataclass
class ExportResult:
    """Result of exporting a buffer."""

    path: Optional[Path]
    width: int
    height: int
    image_format: ImageFormat
    timestamp: str
    clipboard: bool = False

    def to_dict(self) -> dict:
        return {
            "path": str(self.path) if self.path else None,
            "width": self.width,
            "height": self.height,
            "format": self.image_format.value,
            "timestamp": self.timestamp,
            "clipboard": self.clipboard,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def _default_path(config: Config, image_format: ImageFormat) -> Path:
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    return config.output_dir / f"screenmark_{timestamp}.{image_format.extension}"


def export(
    buffer: cairo.ImageSurface,
    options: Optional[ExportOptions] = None,
    config: Optional[Config] = None,
) -> ExportResult:
    """Run the configured sinks for `buffer`.

    A failed file write raises; a failed clipboard copy is logged and
    reported as `clipboard=False` unless the clipboard was the only sink.

    Raises:
        ExportError: If no sink succeeded
    """
    options = options or ExportOptions()
    config = config or get_config()

    image_format = options.image_format
    if image_format is None:
        try:
            image_format = ImageFormat.from_name(config.default_format)
        except ValueError as e:
            raise ExportError(str(e))
    quality = options.quality if options.quality is not None else config.default_quality

    path = None
    if options.save_file:
        path = save_to_file(buffer, options.output_path or _default_path(config, image_format),
                            image_format, quality)

    copied = False
    if options.clipboard and config.enable_clipboard:
        try:
            copy_to_clipboard(buffer, config.clipboard_command)
            copied = True
        except ExportError as e:
            if path is None:
                raise
            log.warning("Failed to copy to clipboard: %s", e)

    if path is None and not copied:
        raise ExportError("No export sink enabled")

    result = ExportResult(
        path=path,
        width=buffer.get_width(),
        height=buffer.get_height(),
        image_format=image_format,
        timestamp=datetime.now().isoformat(),
        clipboard=copied,
    )

    if path is not None:
        emit("artifact.created", {
            "file_path": str(path),
            "file_type": "screenshot",
            "metadata": {
                "width": result.width,
                "height": result.height,
                "format": image_format.value,
                "timestamp": result.timestamp,
            },
        })
        notify_export(result, config)

    if options.json_output:
        print(result.to_json(), flush=True)
    elif options.stdout and path is not None:
        print(str(path), flush=True)
    else:
        log.info("Exported %dx%d image to %s", result.width, result.height, path or "clipboard")

    return result
