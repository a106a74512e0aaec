from concurrent.futures import ThreadPoolExecutor

import pytest

from screenmark.annotations import WHITE, AnnotationStore, RectangleHighlight, TextLabel, Tool
from screenmark.capture import CaptureError
from screenmark.compositor import CairoTextMetrics, new_buffer
from screenmark.geometry import Point, Rect, to_pixel_rect
from screenmark.region import CaptureRegion, DisplayMetadata
from screenmark.selection import Idle
from screenmark.session import EditorSession, SessionState

from conftest import RED_PIXEL, pixel


class FakeProvider:
    def __init__(self, dpi=1.0, fail=False):
        self.display = DisplayMetadata(index=0, dpi_x=dpi, dpi_y=dpi, bounds=Rect(0, 0, 100, 100))
        self.fail = fail
        self.calls = []

    def list_displays(self):
        return [self.display]

    def capture_region(self, physical_bounds, display_index):
        self.calls.append((physical_bounds, display_index))
        if self.fail:
            raise CaptureError("display went away")
        _, _, width, height = to_pixel_rect(physical_bounds)
        return new_buffer(width, height, WHITE)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def session(provider, config):
    return EditorSession(provider, config)


def _select(session, start=(10, 10), end=(50, 40)):
    session.begin_selection()
    session.pointer_down(start, 0)
    session.pointer_move(end)
    return session.pointer_up(end)


def test_selection_flows_into_editing(session, provider, events):
    assert session.state is SessionState.IDLE
    assert _select(session) is SessionState.EDITING

    assert session.region.bounds == Rect(10, 10, 50, 40)
    assert (session.buffer.get_width(), session.buffer.get_height()) == (40, 30)
    assert provider.calls == [(Rect(10, 10, 50, 40), 0)]
    assert "capture.completed" in [e["event_type"] for e in events]


def test_capture_uses_physical_bounds(config):
    provider = FakeProvider(dpi=2.0)
    session = EditorSession(provider, config)
    _select(session, (10, 10), (20, 20))
    assert provider.calls == [(Rect(20, 20, 40, 40), 0)]
    assert session.buffer.get_width() == 20


def test_zero_area_selection_stays_selecting(session, provider):
    assert _select(session, (10, 10), (10, 10)) is SessionState.SELECTING
    assert isinstance(session.selection.state, Idle)
    assert provider.calls == []


def test_pointer_on_unknown_display_is_ignored(session):
    session.begin_selection()
    session.pointer_down((5, 5), display_index=4)
    assert isinstance(session.selection.state, Idle)


def test_cancel_selection_returns_to_previous_state(session):
    session.begin_selection()
    session.pointer_down((1, 1), 0)
    assert session.cancel() is SessionState.IDLE
    assert session.selection is None

    _select(session)
    session.begin_selection()
    session.pointer_down((1, 1), 0)
    assert session.cancel() is SessionState.EDITING


def test_capture_failure_returns_to_idle_without_retry(config, events):
    provider = FakeProvider(fail=True)
    session = EditorSession(provider, config)

    assert _select(session) is SessionState.IDLE
    assert isinstance(session.last_error, CaptureError)
    assert session.buffer is None
    assert len(provider.calls) == 1
    assert [e["data"]["error_type"] for e in events if e["event_type"] == "error.handled"] == ["CaptureError"]


def test_capture_failure_keeps_previous_capture(session, provider):
    _select(session)
    first = session.buffer
    session.store.insert(RectangleHighlight(position=Point(1, 1), size=(5, 5)))

    provider.fail = True
    assert _select(session, (0, 0), (5, 5)) is SessionState.EDITING
    assert session.buffer is first
    assert len(session.store) == 1
    assert session.last_error is not None


def test_unexpected_provider_error_propagates(config):
    class Broken(FakeProvider):
        def capture_region(self, physical_bounds, display_index):
            raise RuntimeError("bug")

    session = EditorSession(Broken(), config)
    with pytest.raises(RuntimeError):
        _select(session)
    assert session.state is SessionState.IDLE


def test_capture_on_executor(provider, config):
    with ThreadPoolExecutor(max_workers=1) as executor:
        session = EditorSession(provider, config, executor=executor)
        assert _select(session) is SessionState.CAPTURING
        request = session.pending
        request.future.result(timeout=5)

    assert session.complete_capture(request) is True
    assert session.state is SessionState.EDITING
    assert session.pending is None


def test_stale_capture_is_discarded(session, provider):
    display = provider.display
    first = session.request_capture(CaptureRegion.new(Rect(0, 0, 10, 10), display))
    second = session.request_capture(CaptureRegion.new(Rect(0, 0, 20, 20), display))

    assert session.complete_capture(first) is False
    assert session.state is SessionState.CAPTURING
    assert session.complete_capture(second) is True
    assert session.buffer.get_width() == 20


def test_cancel_abandons_pending_capture(session, provider):
    request = session.request_capture(CaptureRegion.new(Rect(0, 0, 10, 10), provider.display))
    assert session.cancel() is SessionState.IDLE
    assert session.complete_capture(request) is False
    assert session.buffer is None


def test_new_capture_starts_with_empty_store(session):
    _select(session)
    session.store.insert(RectangleHighlight(position=Point(1, 1), size=(5, 5)))
    _select(session, (0, 0), (30, 30))
    assert len(session.store) == 0
    assert isinstance(session.store, AnnotationStore)


def test_rectangle_tool(session):
    _select(session)
    session.set_tool(Tool.RECTANGLE)
    session.pointer_down((25, 20))
    session.pointer_move((15, 10))
    assert session.preview_rect == Rect(15, 10, 25, 20)
    session.pointer_up((5, 5))

    assert session.preview_rect is None
    (highlight,) = session.snapshot()
    assert isinstance(highlight, RectangleHighlight)
    assert highlight.position == Point(5, 5)
    assert highlight.size == (20, 15)
    assert highlight.stroke_width == 2.0


def test_rectangle_tool_ignores_zero_area(session):
    _select(session)
    session.set_tool(Tool.RECTANGLE)
    session.pointer_down((5, 5))
    session.pointer_up((5, 30))
    assert len(session.store) == 0


def test_text_tool(session):
    _select(session)
    session.set_tool(Tool.TEXT)
    session.pending_text = "Note"
    session.pointer_down((3, 4))
    session.pointer_up((3, 4))

    (label,) = session.snapshot()
    assert isinstance(label, TextLabel)
    assert label.content == "Note"
    assert label.position == Point(3, 4)


def test_text_tool_with_empty_text(session):
    _select(session)
    session.set_tool(Tool.TEXT)
    session.pending_text = ""
    session.pointer_down((3, 4))
    session.pointer_up((3, 4))
    assert len(session.store) == 0


def test_select_tool_selects_and_drags(session):
    _select(session)
    annotation_id = session.store.insert(RectangleHighlight(position=Point(0, 0), size=(20, 20)))

    session.pointer_down((10, 10))
    assert session.store.selected_ids() == [annotation_id]
    session.pointer_move((15, 12))
    session.pointer_up((15, 12))
    assert session.store.get(annotation_id).position == Point(5, 2)

    session.pointer_down((90, 90))
    session.pointer_up((90, 90))
    assert session.store.selected_ids() == []


def test_cancel_during_drag_stops_moving(session):
    _select(session)
    annotation_id = session.store.insert(RectangleHighlight(position=Point(0, 0), size=(20, 20)))
    session.pointer_down((10, 10))
    session.cancel()
    session.pointer_move((30, 30))
    assert session.store.get(annotation_id).position == Point(0, 0)


def test_delete_selected(session):
    _select(session)
    keep = session.store.insert(RectangleHighlight(position=Point(0, 0), size=(5, 5)))
    drop = session.store.insert(RectangleHighlight(position=Point(10, 10), size=(5, 5)))
    session.store.set_selected(drop, True)
    assert session.delete_selected() == 1
    assert session.snapshot().ids() == [keep]


def test_events_ignored_while_idle(session):
    assert session.pointer_move((1, 1)) is SessionState.IDLE
    assert session.pointer_up((1, 1)) is SessionState.IDLE


def test_render(session):
    with pytest.raises(RuntimeError):
        session.render()

    _select(session)
    session.store.insert(RectangleHighlight(position=Point(10, 10), size=(10, 10)))
    out = session.render()
    assert (out.get_width(), out.get_height()) == (40, 30)
    assert pixel(out, 9, 15) == RED_PIXEL
    assert session.buffer is not out


class TwoDisplayProvider(FakeProvider):
    def __init__(self):
        super().__init__()
        self.displays = [
            DisplayMetadata(index=0, bounds=Rect(0, 0, 100, 100), is_primary=True),
            DisplayMetadata(index=1, dpi_x=2.0, dpi_y=2.0, bounds=Rect(100, 0, 200, 80)),
        ]

    def list_displays(self):
        return self.displays


def test_desktop_point_selects_display_under_pointer(config):
    provider = TwoDisplayProvider()
    session = EditorSession(provider, config)
    session.begin_selection()
    session.pointer_down((110, 10), None)
    session.pointer_move((150, 40))
    assert session.pointer_up((150, 40)) is SessionState.EDITING

    assert session.region.display.index == 1
    assert session.region.bounds == Rect(10, 10, 50, 40)
    assert provider.calls == [(Rect(20, 20, 100, 80), 1)]


def test_desktop_point_outside_every_display_is_ignored(config):
    session = EditorSession(TwoDisplayProvider(), config)
    session.begin_selection()
    session.pointer_down((150, 90), None)
    assert isinstance(session.selection.state, Idle)


def test_second_press_does_not_move_drag_to_other_display(config):
    provider = TwoDisplayProvider()
    session = EditorSession(provider, config)
    session.begin_selection()
    session.pointer_down((10, 10), None)
    session.pointer_down((150, 10), None)
    session.pointer_up((30, 30))
    assert session.region.display.index == 0
    assert session.region.bounds == Rect(10, 10, 30, 30)


def test_default_metrics_measure_with_cairo(session):
    assert isinstance(session.metrics, CairoTextMetrics)
    assert session.store.metrics is session.metrics
    _select(session)
    assert session.store.metrics is session.metrics


def test_wide_glyph_label_is_hit_across_its_drawn_width(session):
    width, _ = session.metrics.measure("WWW", 14)
    if width <= 0:
        pytest.skip("no font available to cairo")
    _select(session)
    label_id = session.store.insert(TextLabel(position=Point(0, 0), content="WWW", font_size=14))
    assert session.store.hit_test((width - 0.5, 5)) == label_id
