"""Capture region and display models."""

from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple, Union

from .geometry import (
    DegenerateAreaError,
    Point,
    Rect,
    contains,
    normalize,
    to_physical,
    to_pixel_rect,
    union,
)


DEFAULT_DISPLAY_BOUNDS = Rect(0.0, 0.0, 1920.0, 1080.0)


@dataclass(frozen=True)
class DisplayMetadata:
    """A physical display.

    `bounds` is the display's place on the virtual desktop in logical units;
    `dpi_x`/`dpi_y` are logical-to-physical pixel ratios.
    """

    index: int
    dpi_x: float = 1.0
    dpi_y: float = 1.0
    bounds: Rect = field(default=DEFAULT_DISPLAY_BOUNDS)
    is_primary: bool = False
    name: Optional[str] = None


@dataclass(frozen=True)
class CaptureRegion:
    """A finalized selection on one display. Immutable once created."""

    bounds: Rect
    display: DisplayMetadata

    def __post_init__(self):
        if self.bounds.area <= 0:
            raise DegenerateAreaError(
                f"Capture region has no area: {self.bounds.width} x {self.bounds.height}"
            )

    @classmethod
    def new(
        cls,
        rect: Union[Rect, Tuple[Tuple[float, float], Tuple[float, float]]],
        display: DisplayMetadata,
    ) -> "CaptureRegion":
        """Validate and build a region.

        Args:
            rect: A Rect, or a pair of corner points in any order
            display: Display the region lives on

        Raises:
            DegenerateAreaError: If the normalized area is zero
        """
        if not isinstance(rect, Rect):
            p1, p2 = rect
            rect = normalize(p1, p2)
        return cls(bounds=rect, display=display)

    def physical_bounds(self) -> Rect:
        return to_physical(self.bounds, self.display.dpi_x, self.display.dpi_y)

    def pixel_bounds(self) -> Tuple[int, int, int, int]:
        """Integer (x, y, width, height) used to crop the physical buffer."""
        return to_pixel_rect(self.physical_bounds())

    def to_dict(self) -> dict:
        x, y, w, h = self.pixel_bounds()
        return {
            "display": self.display.index,
            "logical": [self.bounds.min_x, self.bounds.min_y, self.bounds.max_x, self.bounds.max_y],
            "physical": {"x": x, "y": y, "width": w, "height": h},
        }


class DisplayLayout:
    """Arrangement of displays on the virtual desktop."""

    def __init__(self, displays: Iterable[DisplayMetadata]):
        self.displays = list(displays)

    def __len__(self) -> int:
        return len(self.displays)

    def get(self, index: int) -> DisplayMetadata:
        for display in self.displays:
            if display.index == index:
                return display
        raise KeyError(f"Display {index} not found")

    def primary(self) -> Optional[DisplayMetadata]:
        for display in self.displays:
            if display.is_primary:
                return display
        return self.displays[0] if self.displays else None

    def desktop_bounds(self) -> Rect:
        """Union of all display bounds (a single 1920x1080 screen if none are known)."""
        bounds = union(d.bounds for d in self.displays)
        return bounds if bounds is not None else DEFAULT_DISPLAY_BOUNDS

    def display_at(self, point: Tuple[float, float]) -> Optional[DisplayMetadata]:
        for display in self.displays:
            if contains(display.bounds, point):
                return display
        return None

    @staticmethod
    def to_display_relative(point: Tuple[float, float], display: DisplayMetadata) -> Point:
        x, y = point
        return Point(x - display.bounds.min_x, y - display.bounds.min_y)
