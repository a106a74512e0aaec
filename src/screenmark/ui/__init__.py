"""Interactive GTK overlay (requires the gtk extra)."""

from .overlay import ScreenmarkOverlay, run_interactive

__all__ = ["ScreenmarkOverlay", "run_interactive"]
