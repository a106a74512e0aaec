"""Capture providers.

A provider lists displays and returns the physical pixels of a region:

    list_displays() -> list[DisplayMetadata]
    capture_region(physical_bounds, display_index) -> cairo.ImageSurface

The engine never talks to the screen itself. Two providers ship here:
WaylandCaptureProvider shells out to the wayland-capture binary, and
ImageFileProvider serves a PNG file as a single display.
"""

import json
import logging
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Protocol

import cairo

from .compositor import crop
from .config import Config, get_config
from .geometry import Rect, to_pixel_rect
from .region import DisplayMetadata

log = logging.getLogger(__name__)


class CaptureError(Exception):
    """Raised when capture fails."""
    pass


class CaptureProvider(Protocol):
    def list_displays(self) -> List[DisplayMetadata]:
        ...

    def capture_region(self, physical_bounds: Rect, display_index: int) -> cairo.ImageSurface:
        ...


def crop_checked(buffer: cairo.ImageSurface, physical_bounds: Rect) -> cairo.ImageSurface:
    """Crop `physical_bounds` out of a full-display buffer.

    Raises:
        CaptureError: If the bounds leave the buffer or round to nothing
    """
    x, y, width, height = to_pixel_rect(physical_bounds)
    if width <= 0 or height <= 0:
        raise CaptureError(f"Capture area rounds to an empty image: {width}x{height}")
    if x < 0 or y < 0 or x + width > buffer.get_width() or y + height > buffer.get_height():
        raise CaptureError(
            f"Capture area {x},{y} {width}x{height} extends beyond "
            f"{buffer.get_width()}x{buffer.get_height()} display"
        )
    return crop(buffer, (x, y, width, height))


def _load_png(path: Path) -> cairo.ImageSurface:
    try:
        with open(path, "rb") as f:
            return cairo.ImageSurface.create_from_png(f)
    except (OSError, cairo.Error) as e:
        raise CaptureError(f"Could not read image {path}: {e}")


class ImageFileProvider:
    """Serves an existing PNG as display 0."""

    def __init__(self, path: Path, dpi_scale: float = 1.0):
        self.path = Path(path)
        self.dpi_scale = dpi_scale
        self._buffer: Optional[cairo.ImageSurface] = None

    def _image(self) -> cairo.ImageSurface:
        if self._buffer is None:
            self._buffer = _load_png(self.path)
            log.debug(
                "Loaded %s: %dx%d", self.path, self._buffer.get_width(), self._buffer.get_height()
            )
        return self._buffer

    def list_displays(self) -> List[DisplayMetadata]:
        image = self._image()
        bounds = Rect(
            0.0,
            0.0,
            image.get_width() / self.dpi_scale,
            image.get_height() / self.dpi_scale,
        )
        return [
            DisplayMetadata(
                index=0,
                dpi_x=self.dpi_scale,
                dpi_y=self.dpi_scale,
                bounds=bounds,
                is_primary=True,
                name=self.path.name,
            )
        ]

    def capture_region(self, physical_bounds: Rect, display_index: int) -> cairo.ImageSurface:
        if display_index != 0:
            raise CaptureError(f"Display {display_index} not found")
        return crop_checked(self._image(), physical_bounds)


class FrozenFrameProvider:
    """Serves regions of one display image captured earlier.

    The overlay captures the screen before it appears and crops from that
    frame, so the overlay itself never ends up in the result.
    """

    def __init__(self, display: DisplayMetadata, frame: cairo.ImageSurface):
        self.display = display
        self.frame = frame

    def list_displays(self) -> List[DisplayMetadata]:
        return [self.display]

    def capture_region(self, physical_bounds: Rect, display_index: int) -> cairo.ImageSurface:
        if display_index != self.display.index:
            raise CaptureError(f"Display {display_index} not found")
        return crop_checked(self.frame, physical_bounds)


class WaylandCaptureProvider:
    """Captures outputs through the wayland-capture binary."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self._outputs: List[dict] = []

    def _list_outputs(self) -> List[dict]:
        try:
            result = subprocess.run(
                [self.config.wayland_capture, "--list", "--json"],
                capture_output=True,
                text=True,
                timeout=5,
            )
        except FileNotFoundError:
            raise CaptureError(f"wayland-capture not found: {self.config.wayland_capture}")
        except subprocess.TimeoutExpired:
            raise CaptureError("Listing outputs timed out")

        if result.returncode != 0:
            raise CaptureError(f"Could not list outputs: {result.stderr}")
        try:
            data = json.loads(result.stdout)
        except ValueError as e:
            raise CaptureError(f"Invalid output list: {e}")
        return data.get("outputs", [])

    def list_displays(self) -> List[DisplayMetadata]:
        """Outputs as displays; the first output is treated as primary."""
        self._outputs = self._list_outputs()
        displays = []
        for index, output in enumerate(self._outputs):
            scale = float(output.get("scale") or 1.0)
            x = float(output.get("x", 0))
            y = float(output.get("y", 0))
            width = float(output.get("width", 0))
            height = float(output.get("height", 0))
            displays.append(DisplayMetadata(
                index=index,
                dpi_x=scale,
                dpi_y=scale,
                bounds=Rect(x, y, x + width, y + height),
                is_primary=index == 0,
                name=output.get("name"),
            ))
        log.debug("Found %d display(s)", len(displays))
        return displays

    def _output_name(self, display_index: int) -> str:
        if not self._outputs:
            self._outputs = self._list_outputs()
        try:
            name = self._outputs[display_index].get("name")
        except IndexError:
            raise CaptureError(f"Display {display_index} not found")
        if not name:
            raise CaptureError(f"Display {display_index} has no output name")
        return name

    def capture_output(self, display_index: int) -> cairo.ImageSurface:
        """Full physical image of one output."""
        output_name = self._output_name(display_index)

        tmp = tempfile.NamedTemporaryFile(suffix=".png", delete=False)
        temp_path = Path(tmp.name)
        tmp.close()

        try:
            result = subprocess.run(
                [self.config.wayland_capture, "--output", output_name, "--output-file", str(temp_path)],
                capture_output=True,
                text=True,
                timeout=10,
            )
            if result.returncode != 0:
                raise CaptureError(f"Screen capture failed: {result.stderr}")
            return _load_png(temp_path)
        except subprocess.TimeoutExpired:
            raise CaptureError("Screen capture timed out")
        except FileNotFoundError:
            raise CaptureError(f"wayland-capture not found: {self.config.wayland_capture}")
        finally:
            temp_path.unlink(missing_ok=True)

    def capture_region(self, physical_bounds: Rect, display_index: int) -> cairo.ImageSurface:
        return crop_checked(self.capture_output(display_index), physical_bounds)
