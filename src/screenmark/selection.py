"""Selection state machine.

Turns pointer events into a finalized CaptureRegion or a cancellation:

    Idle --down--> Selecting --move--> Selecting
                   Selecting --up--> Finalizing --> Completed(region)
                                                \\-> Idle (zero-area drag)
                   Selecting --cancel--> Cancelled

`transition` is pure. Any event a state does not accept leaves the state
unchanged, so stray input before the overlay is ready is harmless. Completed
and Cancelled are terminal: a new capture attempt uses a new machine.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from .emit import emit
from .geometry import DegenerateAreaError, Point, Rect, normalize
from .region import CaptureRegion, DisplayMetadata

log = logging.getLogger(__name__)


# Events

@dataclass(frozen=True)
class PointerDown:
    point: Point
    display: DisplayMetadata


@dataclass(frozen=True)
class PointerMove:
    point: Point


@dataclass(frozen=True)
class PointerUp:
    point: Point


@dataclass(frozen=True)
class CancelSignal:
    pass


Event = Union[PointerDown, PointerMove, PointerUp, CancelSignal]


# States

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Selecting:
    anchor: Point
    display: DisplayMetadata
    current: Point

    @property
    def live_rect(self) -> Rect:
        """Uncommitted rectangle for visual feedback."""
        return normalize(self.anchor, self.current)


@dataclass(frozen=True)
class Finalizing:
    anchor: Point
    end: Point
    display: DisplayMetadata


@dataclass(frozen=True)
class Completed:
    region: CaptureRegion


@dataclass(frozen=True)
class Cancelled:
    pass


State = Union[Idle, Selecting, Finalizing, Completed, Cancelled]

TERMINAL_STATES = (Completed, Cancelled)


def finalize(state: Finalizing) -> Union[Completed, Idle]:
    """Build the region; a zero-area selection falls back to Idle."""
    try:
        region = CaptureRegion.new(normalize(state.anchor, state.end), state.display)
    except DegenerateAreaError as e:
        log.debug("Selection discarded: %s", e)
        return Idle()
    return Completed(region)


def transition(state: State, event: Event) -> State:
    """Next state for `event`. Unaccepted events return `state` unchanged."""
    if isinstance(state, Idle):
        if isinstance(event, PointerDown):
            point = Point(*event.point)
            return Selecting(anchor=point, display=event.display, current=point)
        return state

    if isinstance(state, Selecting):
        if isinstance(event, PointerMove):
            return Selecting(anchor=state.anchor, display=state.display, current=Point(*event.point))
        if isinstance(event, PointerUp):
            return finalize(Finalizing(anchor=state.anchor, end=Point(*event.point), display=state.display))
        if isinstance(event, CancelSignal):
            return Cancelled()
        return state

    if isinstance(state, Finalizing):
        return finalize(state)

    return state


class SelectionMachine:
    """One capture attempt's selection. Not reusable after it finishes."""

    def __init__(self):
        self._state: State = Idle()

    @property
    def state(self) -> State:
        return self._state

    @property
    def is_finished(self) -> bool:
        return isinstance(self._state, TERMINAL_STATES)

    @property
    def live_rect(self) -> Optional[Rect]:
        if isinstance(self._state, Selecting):
            return self._state.live_rect
        return None

    @property
    def region(self) -> Optional[CaptureRegion]:
        if isinstance(self._state, Completed):
            return self._state.region
        return None

    def feed(self, event: Event) -> State:
        previous = self._state
        self._state = transition(previous, event)
        if type(self._state) is not type(previous):
            log.debug("Selection %s -> %s", type(previous).__name__, type(self._state).__name__)
            if isinstance(self._state, Completed):
                emit("selection.completed", self._state.region.to_dict())
            elif isinstance(self._state, Cancelled):
                emit("selection.cancelled", {})
        return self._state

    def pointer_down(self, point, display: DisplayMetadata) -> State:
        return self.feed(PointerDown(Point(*point), display))

    def pointer_move(self, point) -> State:
        return self.feed(PointerMove(Point(*point)))

    def pointer_up(self, point) -> State:
        return self.feed(PointerUp(Point(*point)))

    def cancel(self) -> State:
        return self.feed(CancelSignal())
