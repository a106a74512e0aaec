import sys

import cairo
import pytest

from screenmark import emit as emit_module
from screenmark.annotations import WHITE, Color
from screenmark.compositor import new_buffer
from screenmark.config import Config


def pixel(surface: cairo.ImageSurface, x: int, y: int) -> tuple:
    """(r, g, b, a) of an ARGB32 pixel (premultiplied)."""
    surface.flush()
    data = surface.get_data()
    offset = y * surface.get_stride() + x * 4
    value = int.from_bytes(bytes(data[offset:offset + 4]), sys.byteorder)
    return ((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF, (value >> 24) & 0xFF)


def checkerboard(width: int, height: int, cell: int = 4) -> cairo.ImageSurface:
    surface = new_buffer(width, height, WHITE)
    cr = cairo.Context(surface)
    cr.set_source_rgb(0.2, 0.4, 0.8)
    for y in range(0, height, cell):
        for x in range(0, width, cell):
            if (x // cell + y // cell) % 2:
                cr.rectangle(x, y, cell, cell)
    cr.fill()
    surface.flush()
    return surface


@pytest.fixture(autouse=True)
def quiet_events():
    emit_module.configure("screenmark-test", stderr=False)
    yield
    emit_module.configure("screenmark", stderr=True)


@pytest.fixture
def events():
    captured = []
    handler = captured.append
    emit_module.add_handler(handler)
    yield captured
    emit_module.remove_handler(handler)


@pytest.fixture
def config(tmp_path):
    return Config(output_dir=tmp_path / "out", hooks_dir=None, enable_clipboard=False)


@pytest.fixture
def white_buffer():
    return new_buffer(40, 40, WHITE)


@pytest.fixture
def png_file(tmp_path):
    path = tmp_path / "screen.png"
    checkerboard(64, 48).write_to_png(str(path))
    return path


RED_PIXEL = (255, 0, 0, 255)
WHITE_PIXEL = (255, 255, 255, 255)
BLUE = Color(0, 0, 255)
