"""Editing session: selection, capture hand-off and annotation tools.

One session owns the annotation store, the active tool and the current
selection attempt. All of them are mutated only from the thread that feeds
input events. Capture is the one step that may run elsewhere: it is a
single request/response exchange, and the response is applied on the
owning thread with `complete_capture`.
"""

import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import cairo

from .annotations import AnnotationDefaults, AnnotationId, AnnotationSnapshot, AnnotationStore, TextMetrics, Tool
from .capture import CaptureError, CaptureProvider
from .compositor import CairoTextMetrics, compose
from .config import Config, get_config
from .emit import emit
from .geometry import Point, Rect, normalize
from .region import CaptureRegion, DisplayLayout, DisplayMetadata
from .selection import CancelSignal, Cancelled, Completed, Event, PointerDown, PointerMove, PointerUp, SelectionMachine

log = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    CAPTURING = "capturing"
    EDITING = "editing"


@dataclass(frozen=True)
class CaptureRequest:
    """A pending capture. Only the most recent request may be applied."""

    ticket: int
    region: CaptureRegion
    future: Future


@dataclass
class _Drag:
    start: Point
    last: Point
    target: Optional[AnnotationId] = None


class EditorSession:
    def __init__(
        self,
        provider: CaptureProvider,
        config: Optional[Config] = None,
        metrics: Optional[TextMetrics] = None,
        defaults: Optional[AnnotationDefaults] = None,
        executor: Optional[Executor] = None,
    ):
        self.provider = provider
        self.config = config or get_config()
        self.metrics = metrics or CairoTextMetrics(self.config.font_face)
        self.defaults = defaults or self.config.annotation_defaults()
        self.executor = executor

        self.state = SessionState.IDLE
        self.tool = Tool.SELECT
        self.pending_text = "Text"
        self.store = AnnotationStore(self.metrics)
        self.selection: Optional[SelectionMachine] = None
        self.region: Optional[CaptureRegion] = None
        self.buffer: Optional[cairo.ImageSurface] = None
        self.last_error: Optional[CaptureError] = None
        self.pending: Optional[CaptureRequest] = None

        self._layout: Optional[DisplayLayout] = None
        self._resume_state = SessionState.IDLE
        self._ticket = 0
        self._origin: Optional[DisplayMetadata] = None
        self._drag: Optional[_Drag] = None

    # -- displays and selection ------------------------------------------

    @property
    def layout(self) -> DisplayLayout:
        if self._layout is None:
            self._layout = DisplayLayout(self.provider.list_displays())
        return self._layout

    def begin_selection(self) -> SelectionMachine:
        """Start a fresh selection attempt."""
        if self.state is SessionState.CAPTURING:
            self._abandon_capture()
        if self.state is not SessionState.SELECTING:
            self._resume_state = self.state
        self._origin = None
        self._drag = None
        self.selection = SelectionMachine()
        self.state = SessionState.SELECTING
        return self.selection

    def handle_event(self, event: Event) -> SessionState:
        """Route one input event to the selection or the active tool."""
        if self.state is SessionState.SELECTING:
            self._feed_selection(event)
        elif self.state is SessionState.EDITING:
            self._feed_tool(event)
        return self.state

    def pointer_down(self, point: Tuple[float, float], display_index: Optional[int] = 0) -> SessionState:
        """Press at `point`.

        With a `display_index` the point is relative to that display. With
        None it is a desktop point: the display under it is looked up, and
        the rest of the drag is converted to that display's coordinates.
        """
        display = None
        if self.state is SessionState.SELECTING:
            if self.selection.live_rect is not None:
                return self.state
            if display_index is None:
                display = self.layout.display_at(point)
                if display is None:
                    log.warning("Pointer down outside every display ignored: %s", point)
                    return self.state
                self._origin = display
            else:
                try:
                    display = self.layout.get(display_index)
                except KeyError:
                    log.warning("Pointer down on unknown display %d ignored", display_index)
                    return self.state
                self._origin = None
        return self.handle_event(PointerDown(self._relative(point), display))

    def pointer_move(self, point: Tuple[float, float]) -> SessionState:
        return self.handle_event(PointerMove(self._relative(point)))

    def pointer_up(self, point: Tuple[float, float]) -> SessionState:
        return self.handle_event(PointerUp(self._relative(point)))

    def _relative(self, point: Tuple[float, float]) -> Point:
        if self.state is SessionState.SELECTING and self._origin is not None:
            return DisplayLayout.to_display_relative(point, self._origin)
        return Point(*point)

    def cancel(self) -> SessionState:
        """Cancel the selection in progress, or abandon a pending capture."""
        if self.state is SessionState.SELECTING:
            self._feed_selection(CancelSignal())
        elif self.state is SessionState.CAPTURING:
            self._abandon_capture()
        elif self.state is SessionState.EDITING:
            self._drag = None
        return self.state

    def _feed_selection(self, event: Event) -> None:
        state = self.selection.feed(event)
        if isinstance(state, Completed):
            self.selection = None
            request = self.request_capture(state.region, self.executor)
            if self.executor is None:
                self.complete_capture(request)
        elif isinstance(state, Cancelled):
            self.selection = None
            self.state = self._resume_state
            log.debug("Selection cancelled, back to %s", self.state.value)

    # -- capture hand-off ------------------------------------------------

    def request_capture(self, region: CaptureRegion, executor: Optional[Executor] = None) -> CaptureRequest:
        """Ask the provider for the region's pixels.

        Runs inline when `executor` is None; otherwise the caller delivers
        the finished request back with `complete_capture` on this thread.
        """
        if self.state not in (SessionState.CAPTURING, SessionState.SELECTING):
            self._resume_state = self.state
        self._ticket += 1
        self.state = SessionState.CAPTURING

        def job() -> cairo.ImageSurface:
            return self.provider.capture_region(region.physical_bounds(), region.display.index)

        if executor is None:
            future: Future = Future()
            try:
                future.set_result(job())
            except CaptureError as e:
                future.set_exception(e)
            except Exception:
                self.state = self._resume_state
                raise
        else:
            future = executor.submit(job)

        self.pending = CaptureRequest(ticket=self._ticket, region=region, future=future)
        log.debug("Capture requested (ticket %d): %s", self._ticket, region.to_dict())
        return self.pending

    def complete_capture(self, request: CaptureRequest) -> bool:
        """Apply a finished capture. Returns False if it was discarded or failed."""
        if self.state is not SessionState.CAPTURING or request.ticket != self._ticket:
            log.debug("Discarding stale capture (ticket %d)", request.ticket)
            return False

        self.pending = None
        try:
            buffer = request.future.result()
        except CaptureError as e:
            self.last_error = e
            self.state = self._resume_state
            log.error("Capture failed: %s", e)
            emit("error.handled", {"error_type": "CaptureError", "message": str(e)})
            return False

        self.region = request.region
        self.buffer = buffer
        self.store = AnnotationStore(self.metrics)
        self.last_error = None
        self._drag = None
        self.state = SessionState.EDITING
        emit("capture.completed", {
            "region": request.region.to_dict(),
            "width": buffer.get_width(),
            "height": buffer.get_height(),
        })
        return True

    def _abandon_capture(self) -> None:
        self._ticket += 1
        self.pending = None
        self.state = self._resume_state
        log.debug("Pending capture abandoned")

    # -- annotation tools --------------------------------------------------

    def set_tool(self, tool: Tool) -> None:
        self.tool = tool
        self._drag = None

    @property
    def preview_rect(self) -> Optional[Rect]:
        """Rectangle being drawn with the rectangle tool, if any."""
        if self.tool is Tool.RECTANGLE and self._drag is not None:
            return normalize(self._drag.start, self._drag.last)
        return None

    def _feed_tool(self, event: Event) -> None:
        if isinstance(event, CancelSignal):
            self._drag = None
            return
        point = Point(*event.point)

        if isinstance(event, PointerDown):
            target = None
            if self.tool is Tool.SELECT:
                target = self.store.hit_test(point)
                self.store.clear_all_selected()
                if target is not None:
                    self.store.set_selected(target, True)
            self._drag = _Drag(start=point, last=point, target=target)
            return

        if self._drag is None:
            return

        if isinstance(event, PointerMove):
            if self.tool is Tool.SELECT and self._drag.target is not None:
                self.store.move_by(self._drag.target, point.x - self._drag.last.x, point.y - self._drag.last.y)
            self._drag.last = point
            return

        # PointerUp
        drag, self._drag = self._drag, None
        if self.tool is Tool.SELECT and drag.target is not None:
            self.store.move_by(drag.target, point.x - drag.last.x, point.y - drag.last.y)
        elif self.tool is Tool.RECTANGLE:
            rect = normalize(drag.start, point)
            if rect.area > 0:
                self.store.insert(self.defaults.rectangle(rect.min, (rect.width, rect.height)))
        elif self.tool is Tool.TEXT and self.pending_text:
            self.store.insert(self.defaults.text(point, self.pending_text))

    def delete_selected(self) -> int:
        ids = self.store.selected_ids()
        for annotation_id in ids:
            self.store.remove(annotation_id)
        return len(ids)

    # -- output ------------------------------------------------------------

    def snapshot(self) -> AnnotationSnapshot:
        return self.store.iter_in_z_order()

    def render(self) -> cairo.ImageSurface:
        """Compose the current annotations onto the captured buffer."""
        if self.buffer is None or self.region is None:
            raise RuntimeError("Nothing captured yet")
        display = self.region.display
        return compose(
            self.buffer,
            self.region.physical_bounds(),
            self.snapshot(),
            (display.dpi_x, display.dpi_y),
            font_face=self.config.font_face,
        )
