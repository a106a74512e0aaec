"""Cairo drawing helpers for the overlay."""

from typing import Iterable

import cairo

from ..geometry import Rect

HANDLE_SIZE = 6


def draw_crosshair(cr: cairo.Context, x: float, y: float, size: int = 15):
    """Draw a crosshair cursor at the given position."""
    # Black outline
    cr.set_source_rgb(0, 0, 0)
    cr.set_line_width(3)
    cr.move_to(x - size, y)
    cr.line_to(x + size, y)
    cr.move_to(x, y - size)
    cr.line_to(x, y + size)
    cr.stroke()

    # White center
    cr.set_source_rgb(1, 1, 1)
    cr.set_line_width(1)
    cr.move_to(x - size, y)
    cr.line_to(x + size, y)
    cr.move_to(x, y - size)
    cr.line_to(x, y + size)
    cr.stroke()


def draw_selection_overlay(cr: cairo.Context, rect: Rect, width: float, height: float):
    """Dim everything outside `rect` and outline it."""
    cr.set_source_rgba(0, 0, 0, 0.5)
    cr.set_fill_rule(cairo.FILL_RULE_EVEN_ODD)
    cr.rectangle(0, 0, width, height)
    cr.rectangle(rect.min_x, rect.min_y, rect.width, rect.height)
    cr.fill()
    cr.set_fill_rule(cairo.FILL_RULE_WINDING)

    cr.set_source_rgb(0.3, 0.6, 1.0)
    cr.set_line_width(2)
    cr.rectangle(rect.min_x, rect.min_y, rect.width, rect.height)
    cr.stroke()


def draw_dimension_text(cr: cairo.Context, rect: Rect, physical_width: int, physical_height: int):
    """Label the selection with its size in physical pixels."""
    cr.select_font_face("monospace", cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_BOLD)
    cr.set_font_size(14)
    dim_text = f"{physical_width} x {physical_height}"
    extents = cr.text_extents(dim_text)

    cx, cy = rect.center
    text_x = cx - extents.width / 2
    text_y = cy + extents.height / 2

    cr.set_source_rgba(0, 0, 0, 0.8)
    cr.rectangle(
        text_x - 5,
        text_y - extents.height - 5,
        extents.width + 10,
        extents.height + 10,
    )
    cr.fill()

    cr.set_source_rgb(1, 1, 1)
    cr.move_to(text_x, text_y)
    cr.show_text(dim_text)


def draw_selection_handles(cr: cairo.Context, rect: Rect):
    """Blue corner handles around a selected annotation."""
    corners = [
        (rect.min_x, rect.min_y),
        (rect.max_x, rect.min_y),
        (rect.max_x, rect.max_y),
        (rect.min_x, rect.max_y),
    ]
    half = HANDLE_SIZE / 2
    for x, y in corners:
        cr.rectangle(x - half, y - half, HANDLE_SIZE, HANDLE_SIZE)
        cr.set_source_rgb(0.0, 0.0, 1.0)
        cr.fill_preserve()
        cr.set_source_rgb(1, 1, 1)
        cr.set_line_width(1)
        cr.stroke()


def draw_instructions(cr: cairo.Context, lines: Iterable[str], x: int = 20, y: int = 30):
    """Draw help text in the corner."""
    cr.select_font_face("sans-serif", cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_NORMAL)
    cr.set_font_size(14)

    for line in lines:
        extents = cr.text_extents(line)
        cr.set_source_rgba(0, 0, 0, 0.7)
        cr.rectangle(x - 5, y - extents.height - 2, extents.width + 10, extents.height + 6)
        cr.fill()
        cr.set_source_rgb(1, 1, 1)
        cr.move_to(x, y)
        cr.show_text(line)
        y += 22
