"""Full-screen overlay: select a region, annotate it, export it."""

import dataclasses
import logging
import os
from typing import Optional

import cairo
import gi
gi.require_version("Gtk", "3.0")
gi.require_version("Gdk", "3.0")
gi.require_version("GtkLayerShell", "0.1")
from gi.repository import Gtk, Gdk, GLib, GtkLayerShell

from ..annotations import Tool
from ..capture import CaptureError, FrozenFrameProvider, WaylandCaptureProvider
from ..config import Config, get_config
from ..export import ExportError, ExportOptions, export
from ..geometry import Rect, bounds_of, to_physical, to_pixel_rect
from ..region import DisplayLayout
from ..session import EditorSession, SessionState
from .drawing import (
    draw_crosshair,
    draw_dimension_text,
    draw_instructions,
    draw_selection_handles,
    draw_selection_overlay,
)

log = logging.getLogger(__name__)

SELECT_HELP = [
    "Drag: Select area",
    "ESC/Right-click: Cancel",
]

EDIT_HELP = [
    "Tab: Switch tool (select / rectangle / text)",
    "Type: Edit label text (text tool)",
    "Delete: Remove selected",
    "Enter: Export",
    "ESC/Right-click: Quit without saving",
]

TOOL_CYCLE = [Tool.SELECT, Tool.RECTANGLE, Tool.TEXT]


class ScreenmarkOverlay(Gtk.Window):
    """Layer-shell overlay driving an EditorSession from GTK input."""

    def __init__(self, config: Optional[Config] = None, options: Optional[ExportOptions] = None):
        super().__init__(title="screenmark")
        self.config = config or get_config()
        self.options = options or ExportOptions()
        self.exit_code = 0

        GtkLayerShell.init_for_window(self)
        GtkLayerShell.set_layer(self, GtkLayerShell.Layer.OVERLAY)
        for edge in (
            GtkLayerShell.Edge.TOP,
            GtkLayerShell.Edge.BOTTOM,
            GtkLayerShell.Edge.LEFT,
            GtkLayerShell.Edge.RIGHT,
        ):
            GtkLayerShell.set_anchor(self, edge, True)
        GtkLayerShell.set_exclusive_zone(self, -1)
        GtkLayerShell.set_keyboard_mode(self, GtkLayerShell.KeyboardMode.EXCLUSIVE)

        # Capture the screen BEFORE showing the window
        wayland = WaylandCaptureProvider(self.config)
        display = DisplayLayout(wayland.list_displays()).primary()
        if display is None:
            raise CaptureError("No display found")
        self.frame = wayland.capture_output(display.index)
        self.display = dataclasses.replace(
            display, bounds=Rect(0.0, 0.0, display.bounds.width, display.bounds.height)
        )
        log.debug("Frame loaded: %dx%d", self.frame.get_width(), self.frame.get_height())

        self.session = EditorSession(FrozenFrameProvider(self.display, self.frame), self.config)
        self.session.begin_selection()
        self.session.pending_text = ""

        self.set_decorated(False)
        self.set_skip_taskbar_hint(True)
        self.set_skip_pager_hint(True)

        self.drawing_area = Gtk.DrawingArea()
        self.drawing_area.connect("draw", self._on_draw)
        self.add(self.drawing_area)

        self.current_x = self.display.bounds.width / 2
        self.current_y = self.display.bounds.height / 2

        self.drawing_area.set_events(
            Gdk.EventMask.BUTTON_PRESS_MASK
            | Gdk.EventMask.BUTTON_RELEASE_MASK
            | Gdk.EventMask.POINTER_MOTION_MASK
            | Gdk.EventMask.KEY_PRESS_MASK
        )
        self.drawing_area.connect("button-press-event", self._on_button_press)
        self.drawing_area.connect("button-release-event", self._on_button_release)
        self.drawing_area.connect("motion-notify-event", self._on_motion)
        self.connect("key-press-event", self._on_key_press)

        self.drawing_area.set_can_focus(True)
        self.drawing_area.grab_focus()
        self.show_all()

    # Coordinates

    def _to_region(self, x: float, y: float):
        region = self.session.region
        return x - region.bounds.min_x, y - region.bounds.min_y

    def _paint_physical(self, cr: cairo.Context, surface: cairo.ImageSurface, x: float, y: float):
        cr.save()
        cr.translate(x, y)
        cr.scale(1 / self.display.dpi_x, 1 / self.display.dpi_y)
        cr.set_source_surface(surface, 0, 0)
        cr.get_source().set_filter(cairo.FILTER_NEAREST)
        cr.paint()
        cr.restore()

    # Drawing

    def _on_draw(self, widget, cr):
        width = self.display.bounds.width
        height = self.display.bounds.height
        self._paint_physical(cr, self.frame, 0, 0)

        if self.session.state is SessionState.SELECTING:
            live = self.session.selection.live_rect if self.session.selection else None
            if live is not None and live.area > 0:
                _, _, pw, ph = to_pixel_rect(to_physical(live, self.display.dpi_x, self.display.dpi_y))
                draw_selection_overlay(cr, live, width, height)
                draw_dimension_text(cr, live, pw, ph)
            draw_crosshair(cr, self.current_x, self.current_y)
            draw_instructions(cr, SELECT_HELP)

        elif self.session.state is SessionState.EDITING:
            bounds = self.session.region.bounds
            draw_selection_overlay(cr, bounds, width, height)
            self._paint_physical(cr, self.session.render(), bounds.min_x, bounds.min_y)
            for annotation in self.session.snapshot():
                if annotation.selected:
                    box = bounds_of(annotation, self.session.metrics)
                    draw_selection_handles(cr, box.translate(bounds.min_x, bounds.min_y))
            preview = self.session.preview_rect
            if preview is not None:
                preview = preview.translate(bounds.min_x, bounds.min_y)
                cr.set_source_rgb(0.3, 0.6, 1.0)
                cr.set_line_width(1)
                cr.rectangle(preview.min_x, preview.min_y, preview.width, preview.height)
                cr.stroke()
            tool_line = f"Tool: {self.session.tool.value}"
            if self.session.tool is Tool.TEXT:
                tool_line += f" [{self.session.pending_text}]"
            draw_instructions(cr, [tool_line] + EDIT_HELP)

        return False

    # Input

    def _on_button_press(self, widget, event):
        if event.button == 3:
            self._cleanup_and_exit()
            return True
        if event.button != 1:
            return True

        if self.session.state is SessionState.SELECTING:
            self.session.pointer_down((event.x, event.y), None)
        elif self.session.state is SessionState.EDITING:
            self.session.pointer_down(self._to_region(event.x, event.y))
        widget.queue_draw()
        return True

    def _on_button_release(self, widget, event):
        if event.button != 1:
            return True

        if self.session.state is SessionState.SELECTING:
            self.session.pointer_up((event.x, event.y))
            if self.session.last_error is not None:
                log.error("Capture failed: %s", self.session.last_error)
                self.exit_code = 1
                self._cleanup_and_exit()
                return True
        elif self.session.state is SessionState.EDITING:
            self.session.pointer_up(self._to_region(event.x, event.y))
        widget.queue_draw()
        return True

    def _on_motion(self, widget, event):
        self.current_x = event.x
        self.current_y = event.y
        if self.session.state is SessionState.SELECTING:
            self.session.pointer_move((event.x, event.y))
        elif self.session.state is SessionState.EDITING:
            self.session.pointer_move(self._to_region(event.x, event.y))
        widget.queue_draw()
        return True

    def _on_key_press(self, widget, event):
        if event.keyval == Gdk.KEY_Escape:
            if self.session.state is SessionState.SELECTING:
                self.session.cancel()
            self._cleanup_and_exit()
            return True

        if self.session.state is not SessionState.EDITING:
            return True

        if event.keyval == Gdk.KEY_Return:
            self._export()
        elif event.keyval == Gdk.KEY_Tab:
            index = TOOL_CYCLE.index(self.session.tool)
            self.session.set_tool(TOOL_CYCLE[(index + 1) % len(TOOL_CYCLE)])
        elif event.keyval == Gdk.KEY_Delete:
            self.session.delete_selected()
        elif self.session.tool is Tool.TEXT:
            if event.keyval == Gdk.KEY_BackSpace:
                self.session.pending_text = self.session.pending_text[:-1]
            else:
                char = chr(Gdk.keyval_to_unicode(event.keyval))
                if char.isprintable() and char:
                    self.session.pending_text += char
        self.drawing_area.queue_draw()
        return True

    def _export(self):
        try:
            export(self.session.render(), self.options, self.config)
        except ExportError as e:
            log.error("Export failed: %s", e)
            self.exit_code = 1
        finally:
            self._cleanup_and_exit()

    def _cleanup_and_exit(self):
        self.hide()
        self.destroy()
        Gtk.main_quit()


def run_interactive(config: Optional[Config] = None, options: Optional[ExportOptions] = None) -> int:
    """Run the overlay until the user exports or quits.

    Returns:
        Exit code (0 for success)
    """
    config = config or get_config()

    # Set app_id for Wayland (must be done before GTK init)
    os.environ["GDK_BACKEND"] = "wayland"
    GLib.set_prgname("screenmark")
    GLib.set_application_name("screenmark")

    try:
        overlay = ScreenmarkOverlay(config, options)
    except CaptureError as e:
        log.error("Failed to capture screen: %s", e)
        return 1
    Gtk.main()
    return overlay.exit_code
