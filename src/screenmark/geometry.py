"""Geometry helpers for selection and annotation.

All functions are pure. Coordinates are logical units unless a function
name says otherwise; `to_physical` and `to_pixel_rect` are the only places
where DPI scaling and pixel rounding happen.

Rounding rule: round half up (floor(x + 0.5)), applied per edge.
"""

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, NamedTuple, Optional, Tuple

if TYPE_CHECKING:
    from .annotations import Annotation, TextMetrics


class GeometryError(Exception):
    """Raised when a geometric value violates an invariant."""
    pass


class DegenerateAreaError(GeometryError):
    """Raised when a region has zero or negative area."""
    pass


class Point(NamedTuple):
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle, always stored with min <= max."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def __post_init__(self):
        if self.min_x > self.max_x or self.min_y > self.max_y:
            raise ValueError(
                f"Rect is not normalized: ({self.min_x}, {self.min_y})-({self.max_x}, {self.max_y})"
            )

    @classmethod
    def from_min_size(cls, origin: Tuple[float, float], size: Tuple[float, float]) -> "Rect":
        """Build a rectangle from a corner and a (possibly negative) size."""
        x, y = origin
        w, h = size
        return normalize(Point(x, y), Point(x + w, y + h))

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def min(self) -> Point:
        return Point(self.min_x, self.min_y)

    @property
    def max(self) -> Point:
        return Point(self.max_x, self.max_y)

    @property
    def center(self) -> Point:
        return Point((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)

    def translate(self, dx: float, dy: float) -> "Rect":
        return Rect(self.min_x + dx, self.min_y + dy, self.max_x + dx, self.max_y + dy)

    def inflate(self, amount: float) -> "Rect":
        """Grow the rectangle by `amount` on every side (shrinks to its center when negative)."""
        cx, cy = self.center
        min_x = min(self.min_x - amount, cx)
        min_y = min(self.min_y - amount, cy)
        max_x = max(self.max_x + amount, cx)
        max_y = max(self.max_y + amount, cy)
        return Rect(min_x, min_y, max_x, max_y)

    def intersects(self, other: "Rect") -> bool:
        """True if the interiors overlap. Touching edges do not count."""
        return (
            self.min_x < other.max_x
            and other.min_x < self.max_x
            and self.min_y < other.max_y
            and other.min_y < self.max_y
        )


def normalize(p1: Tuple[float, float], p2: Tuple[float, float]) -> Rect:
    """Rectangle spanned by two arbitrary points (e.g. drag start and end)."""
    x1, y1 = p1
    x2, y2 = p2
    return Rect(min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2))


def contains(rect: Rect, point: Tuple[float, float]) -> bool:
    """Inclusive on min, exclusive on max, so shared edges hit only one shape."""
    x, y = point
    return rect.min_x <= x < rect.max_x and rect.min_y <= y < rect.max_y


def to_physical(rect: Rect, dpi_x: float, dpi_y: float) -> Rect:
    """Scale logical coordinates to physical pixels. No rounding."""
    if dpi_x <= 0 or dpi_y <= 0:
        raise ValueError(f"DPI scale factors must be positive, got {dpi_x}, {dpi_y}")
    return Rect(rect.min_x * dpi_x, rect.min_y * dpi_y, rect.max_x * dpi_x, rect.max_y * dpi_y)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def to_pixel_rect(rect: Rect) -> Tuple[int, int, int, int]:
    """Integer (x, y, width, height) for cropping.

    Edges are rounded independently so regions that share an edge in
    physical space still share it after rounding.
    """
    x0 = round_half_up(rect.min_x)
    y0 = round_half_up(rect.min_y)
    x1 = round_half_up(rect.max_x)
    y1 = round_half_up(rect.max_y)
    return x0, y0, x1 - x0, y1 - y0


def union(rects: Iterable[Rect]) -> Optional[Rect]:
    """Smallest rectangle covering all of `rects`, or None if there are none."""
    result: Optional[Rect] = None
    for rect in rects:
        if result is None:
            result = rect
            continue
        result = Rect(
            min(result.min_x, rect.min_x),
            min(result.min_y, rect.min_y),
            max(result.max_x, rect.max_x),
            max(result.max_y, rect.max_y),
        )
    return result


def bounds_of(annotation: "Annotation", metrics: Optional["TextMetrics"] = None) -> Rect:
    """Logical rectangle covering everything the annotation draws.

    Rectangle highlights are inflated by half the stroke width since the
    stroke is centered on the edge. Text labels are measured with `metrics`
    (the length-based estimator when omitted).
    """
    from .annotations import EstimatedTextMetrics, RectangleHighlight, TextLabel

    if isinstance(annotation, RectangleHighlight):
        rect = Rect.from_min_size(annotation.position, annotation.size)
        return rect.inflate(annotation.stroke_width / 2)
    if isinstance(annotation, TextLabel):
        metrics = metrics or EstimatedTextMetrics()
        width, height = metrics.measure(annotation.content, annotation.font_size)
        return Rect.from_min_size(annotation.position, (width, height))
    raise TypeError(f"Unknown annotation type: {type(annotation).__name__}")
