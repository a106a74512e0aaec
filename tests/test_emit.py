import json
import logging

from screenmark import emit as emit_module
from screenmark.emit import add_handler, configure, emit, remove_handler


def test_event_shape(events):
    configure("unit")
    emit("config.resolved", {"config_path": "x"})
    (event,) = events
    assert event["event_type"] == "config.resolved"
    assert event["source"] == {"tool": "unit"}
    assert event["data"] == {"config_path": "x"}
    assert "timestamp" in event


def test_source_override(events):
    emit("artifact.created", {}, source="other")
    assert events[0]["source"]["tool"] == "other"


def test_stderr_output(capsys):
    configure("unit", stderr=True)
    emit("selection.cancelled", {})
    line = capsys.readouterr().err.strip()
    assert json.loads(line)["event_type"] == "selection.cancelled"


def test_stderr_disabled(capsys):
    configure("unit", stderr=False)
    emit("selection.cancelled", {})
    assert capsys.readouterr().err == ""


def test_failing_handler_is_contained(events):
    def broken(event):
        raise RuntimeError("handler bug")

    add_handler(broken)
    try:
        emit("error.handled", {"error_type": "X", "message": "m"})
    finally:
        remove_handler(broken)
    assert len(events) == 1


def test_unregistered_event_type_warns(events, caplog):
    with caplog.at_level(logging.WARNING, logger="screenmark.emit"):
        emit("capture.exploded", {})
    assert "capture.exploded" in caplog.text
    assert events[0]["event_type"] == "capture.exploded"


def test_registered_event_type_does_not_warn(events, caplog):
    with caplog.at_level(logging.WARNING, logger="screenmark.emit"):
        for event_type in emit_module.EVENT_TYPES:
            emit(event_type, {})
    assert caplog.records == []
    assert len(events) == len(emit_module.EVENT_TYPES)


def test_remove_unknown_handler_is_harmless():
    remove_handler(lambda event: None)
    assert "capture.completed" in emit_module.EVENT_TYPES
