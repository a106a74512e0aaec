"""Annotation model and store.

Annotations are a closed union of two kinds:
- RectangleHighlight: unfilled outlined rectangle
- TextLabel: single line of text anchored at its top-left corner

The store keeps them in insertion order, which is also the z-order:
later insertions draw on top and win hit-tests.
"""

import copy
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, List, Optional, Protocol, Tuple, Union

from .geometry import Point, bounds_of, contains

log = logging.getLogger(__name__)

AnnotationId = uuid.UUID


@dataclass(frozen=True)
class Color:
    """RGBA color with 0-255 channels."""

    r: int
    g: int
    b: int
    a: int = 255

    @classmethod
    def from_hex(cls, value: str) -> "Color":
        """Parse '#rrggbb' or '#rrggbbaa'."""
        text = value.strip().lstrip("#")
        if len(text) not in (6, 8):
            raise ValueError(f"Invalid color: {value!r}")
        try:
            channels = [int(text[i:i + 2], 16) for i in range(0, len(text), 2)]
        except ValueError:
            raise ValueError(f"Invalid color: {value!r}")
        return cls(*channels)

    def to_hex(self) -> str:
        if self.a == 255:
            return f"#{self.r:02x}{self.g:02x}{self.b:02x}"
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}{self.a:02x}"

    def as_cairo(self) -> Tuple[float, float, float, float]:
        return (self.r / 255, self.g / 255, self.b / 255, self.a / 255)


RED = Color(255, 0, 0)
BLACK = Color(0, 0, 0)
WHITE = Color(255, 255, 255)
YELLOW = Color(255, 255, 0)


class Tool(Enum):
    """Editing tools."""

    SELECT = "select"
    RECTANGLE = "rectangle"
    TEXT = "text"


@dataclass
class RectangleHighlight:
    position: Point
    size: Tuple[float, float]
    stroke_color: Color = RED
    stroke_width: float = 2.0
    id: Optional[AnnotationId] = None
    selected: bool = False


@dataclass
class TextLabel:
    position: Point
    content: str
    font_size: float = 14.0
    color: Color = BLACK
    id: Optional[AnnotationId] = None
    selected: bool = False


Annotation = Union[RectangleHighlight, TextLabel]


class TextMetrics(Protocol):
    """Measures rendered text. Returns (width, height) in the units of font_size."""

    def measure(self, content: str, font_size: float) -> Tuple[float, float]:
        ...


class EstimatedTextMetrics:
    """Length-based estimate, used when no font backend is available."""

    def __init__(self, width_factor: float = 0.6, height_factor: float = 1.2):
        self.width_factor = width_factor
        self.height_factor = height_factor

    def measure(self, content: str, font_size: float) -> Tuple[float, float]:
        return (len(content) * font_size * self.width_factor, font_size * self.height_factor)


class AnnotationSnapshot:
    """Read-only, restartable view of the store at a point in time.

    Holds copies, so later edits to the store are not reflected.
    """

    def __init__(self, annotations: List[Annotation]):
        self._items = tuple(copy.copy(a) for a in annotations)

    def __iter__(self) -> Iterator[Annotation]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> Annotation:
        return self._items[index]

    def ids(self) -> List[AnnotationId]:
        return [a.id for a in self._items]


class AnnotationStore:
    """Ordered collection of annotations owned by one editing session.

    Operations on unknown ids are no-ops that return False: the editor may
    race a delete against an edit and neither should fail.
    """

    def __init__(self, metrics: Optional[TextMetrics] = None):
        self._items: List[Annotation] = []
        self.metrics = metrics or EstimatedTextMetrics()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, annotation_id: object) -> bool:
        return self._find(annotation_id) is not None

    def _find(self, annotation_id: object) -> Optional[int]:
        for i, annotation in enumerate(self._items):
            if annotation.id == annotation_id:
                return i
        return None

    def insert(self, annotation: Annotation) -> AnnotationId:
        """Append a copy on top of the z-order under a fresh id.

        The caller's object is left untouched, so inserting it again adds a
        second, independent annotation.
        """
        stored = copy.copy(annotation)
        stored.id = uuid.uuid4()
        self._items.append(stored)
        log.debug("Inserted %s %s", type(stored).__name__, stored.id)
        return stored.id

    def remove(self, annotation_id: AnnotationId) -> bool:
        index = self._find(annotation_id)
        if index is None:
            log.debug("Remove ignored, unknown id %s", annotation_id)
            return False
        del self._items[index]
        log.debug("Removed %s", annotation_id)
        return True

    def update(self, annotation_id: AnnotationId, mutator: Callable[[Annotation], None]) -> bool:
        """Apply `mutator` to the annotation in place. The id cannot be changed."""
        index = self._find(annotation_id)
        if index is None:
            log.debug("Update ignored, unknown id %s", annotation_id)
            return False
        annotation = self._items[index]
        mutator(annotation)
        annotation.id = annotation_id
        return True

    def get(self, annotation_id: AnnotationId) -> Optional[Annotation]:
        """Copy of the annotation, or None."""
        index = self._find(annotation_id)
        if index is None:
            return None
        return copy.copy(self._items[index])

    def move_by(self, annotation_id: AnnotationId, dx: float, dy: float) -> bool:
        def _move(annotation: Annotation) -> None:
            x, y = annotation.position
            annotation.position = Point(x + dx, y + dy)

        return self.update(annotation_id, _move)

    def hit_test(self, point: Tuple[float, float]) -> Optional[AnnotationId]:
        """Id of the topmost annotation whose bounds contain `point`."""
        for annotation in reversed(self._items):
            if contains(bounds_of(annotation, self.metrics), point):
                return annotation.id
        return None

    def set_selected(self, annotation_id: AnnotationId, selected: bool) -> bool:
        def _select(annotation: Annotation) -> None:
            annotation.selected = selected

        return self.update(annotation_id, _select)

    def clear_all_selected(self) -> None:
        for annotation in self._items:
            annotation.selected = False

    def selected_ids(self) -> List[AnnotationId]:
        return [a.id for a in self._items if a.selected]

    def clear(self) -> None:
        self._items.clear()

    def iter_in_z_order(self) -> AnnotationSnapshot:
        """Bottom-to-top snapshot of the current annotations."""
        return AnnotationSnapshot(self._items)


@dataclass
class AnnotationDefaults:
    """Style applied to newly drawn annotations."""

    stroke_color: Color = RED
    stroke_width: float = 2.0
    text_color: Color = BLACK
    font_size: float = 14.0

    def rectangle(self, position: Tuple[float, float], size: Tuple[float, float]) -> RectangleHighlight:
        return RectangleHighlight(
            position=Point(*position),
            size=size,
            stroke_color=self.stroke_color,
            stroke_width=self.stroke_width,
        )

    def text(self, position: Tuple[float, float], content: str) -> TextLabel:
        return TextLabel(
            position=Point(*position),
            content=content,
            font_size=self.font_size,
            color=self.text_color,
        )
