import json
import os
import subprocess

import pytest

from screenmark import capture
from screenmark.capture import (
    CaptureError,
    FrozenFrameProvider,
    ImageFileProvider,
    WaylandCaptureProvider,
    crop_checked,
)
from screenmark.config import Config
from screenmark.geometry import Rect
from screenmark.region import DisplayMetadata

from conftest import checkerboard, pixel

OUTPUTS = {
    "outputs": [
        {"name": "eDP-1", "x": 0, "y": 0, "width": 1280, "height": 800, "scale": 2},
        {"name": "HDMI-A-1", "x": 1280, "y": 0, "width": 1920, "height": 1080},
    ]
}


def test_crop_checked_rounds_edges():
    frame = checkerboard(32, 32)
    out = crop_checked(frame, Rect(0.5, 0.5, 10.5, 10.5))
    assert (out.get_width(), out.get_height()) == (10, 10)
    assert pixel(out, 0, 0) == pixel(frame, 1, 1)


@pytest.mark.parametrize("bounds", [
    Rect(-1, 0, 10, 10),
    Rect(0, 0, 33, 10),
    Rect(30, 30, 40, 40),
    Rect(5, 5, 5.2, 5.2),
])
def test_crop_checked_rejects_bad_bounds(bounds):
    with pytest.raises(CaptureError):
        crop_checked(checkerboard(32, 32), bounds)


def test_image_provider_lists_one_display(png_file):
    provider = ImageFileProvider(png_file, dpi_scale=2.0)
    (display,) = provider.list_displays()
    assert display.index == 0
    assert display.is_primary
    assert display.dpi_x == display.dpi_y == 2.0
    assert display.bounds == Rect(0, 0, 32, 24)
    assert display.name == "screen.png"


def test_image_provider_captures_region(png_file):
    provider = ImageFileProvider(png_file)
    out = provider.capture_region(Rect(4, 8, 20, 24), 0)
    assert (out.get_width(), out.get_height()) == (16, 16)


def test_image_provider_errors(png_file, tmp_path):
    provider = ImageFileProvider(png_file)
    with pytest.raises(CaptureError):
        provider.capture_region(Rect(0, 0, 10, 10), 1)
    with pytest.raises(CaptureError):
        provider.capture_region(Rect(0, 0, 65, 10), 0)
    with pytest.raises(CaptureError):
        ImageFileProvider(tmp_path / "missing.png").list_displays()


def test_image_provider_rejects_non_png(tmp_path):
    path = tmp_path / "junk.png"
    path.write_text("not a png")
    with pytest.raises(CaptureError):
        ImageFileProvider(path).list_displays()


def test_frozen_frame_provider():
    display = DisplayMetadata(index=3, bounds=Rect(0, 0, 32, 32))
    provider = FrozenFrameProvider(display, checkerboard(32, 32))
    assert provider.list_displays() == [display]
    assert provider.capture_region(Rect(0, 0, 8, 8), 3).get_width() == 8
    with pytest.raises(CaptureError):
        provider.capture_region(Rect(0, 0, 8, 8), 0)


class FakeRun:
    """Stands in for subprocess.run and records invocations."""

    def __init__(self, listing=OUTPUTS, capture_rc=0, frame=None):
        self.listing = listing
        self.capture_rc = capture_rc
        self.frame = frame if frame is not None else checkerboard(64, 64)
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        if "--list" in cmd:
            return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps(self.listing), stderr="")
        if self.capture_rc != 0:
            return subprocess.CompletedProcess(cmd, self.capture_rc, stdout="", stderr="boom")
        path = cmd[cmd.index("--output-file") + 1]
        self.frame.write_to_png(path)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


def test_wayland_list_displays(monkeypatch):
    monkeypatch.setattr(capture.subprocess, "run", FakeRun())
    displays = WaylandCaptureProvider(Config()).list_displays()

    assert [d.name for d in displays] == ["eDP-1", "HDMI-A-1"]
    assert displays[0].is_primary and not displays[1].is_primary
    assert displays[0].dpi_x == 2.0
    assert displays[1].dpi_x == 1.0
    assert displays[1].bounds == Rect(1280, 0, 3200, 1080)


def test_wayland_capture_region(monkeypatch):
    fake = FakeRun()
    monkeypatch.setattr(capture.subprocess, "run", fake)
    provider = WaylandCaptureProvider(Config(wayland_capture="/opt/wc"))

    out = provider.capture_region(Rect(10, 10, 30, 20), 1)

    assert (out.get_width(), out.get_height()) == (20, 10)
    capture_cmd = fake.calls[-1]
    assert capture_cmd[0] == "/opt/wc"
    assert capture_cmd[capture_cmd.index("--output") + 1] == "HDMI-A-1"


def test_wayland_capture_cleans_up_temp_file(monkeypatch):
    fake = FakeRun()
    monkeypatch.setattr(capture.subprocess, "run", fake)
    WaylandCaptureProvider(Config()).capture_output(0)
    path = fake.calls[-1][fake.calls[-1].index("--output-file") + 1]
    assert not os.path.exists(path)


def test_wayland_capture_failure(monkeypatch):
    monkeypatch.setattr(capture.subprocess, "run", FakeRun(capture_rc=1))
    with pytest.raises(CaptureError, match="boom"):
        WaylandCaptureProvider(Config()).capture_output(0)


def test_wayland_unknown_display(monkeypatch):
    monkeypatch.setattr(capture.subprocess, "run", FakeRun())
    with pytest.raises(CaptureError):
        WaylandCaptureProvider(Config()).capture_output(5)


def test_wayland_binary_missing(monkeypatch):
    def missing(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(capture.subprocess, "run", missing)
    with pytest.raises(CaptureError, match="not found"):
        WaylandCaptureProvider(Config()).list_displays()


def test_wayland_invalid_listing(monkeypatch):
    def garbage(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, 0, stdout="{not json", stderr="")

    monkeypatch.setattr(capture.subprocess, "run", garbage)
    with pytest.raises(CaptureError):
        WaylandCaptureProvider(Config()).list_displays()
