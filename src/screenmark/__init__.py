"""screenmark: select, capture and annotate screen regions.

- Drag-to-select with DPI-aware capture regions
- Rectangle highlights and text labels with hit-testing
- Deterministic compositing onto the captured image
- File and clipboard export, CLI and GTK overlay
"""

__version__ = "1.0.0"
