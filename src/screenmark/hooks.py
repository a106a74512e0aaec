"""Post-export hook scripts.

Every executable in <hooks_dir>/on_export.d/ runs after a file export,
in sorted order, without blocking:

    <hooks_dir>/
    └── on_export.d/
        ├── 10-upload.sh
        └── 20-backup.sh

Each script receives: path width height format timestamp
"""

import logging
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .config import Config
    from .export import ExportResult

log = logging.getLogger(__name__)


def find_hooks(hooks_dir: Optional[Path], event: str) -> List[Path]:
    """Executable, non-hidden scripts for `event`, sorted by name."""
    if not hooks_dir:
        return []

    event_dir = hooks_dir / f"{event}.d"
    if not event_dir.is_dir():
        return []

    scripts = []
    for script in sorted(event_dir.iterdir()):
        if not script.is_file() or script.name.startswith("."):
            continue
        if not script.stat().st_mode & 0o111:
            log.debug("Skipping non-executable: %s", script)
            continue
        scripts.append(script)
    return scripts


def run_hooks(hooks_dir: Optional[Path], event: str, *args) -> int:
    """Start every hook for `event`. Returns how many were started."""
    started = 0
    for script in find_hooks(hooks_dir, event):
        try:
            subprocess.Popen(
                [str(script)] + [str(a) for a in args],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            started += 1
            log.debug("Hook executed: %s", script.name)
        except OSError as e:
            log.warning("Hook %s failed: %s", script.name, e)
    return started


def notify_export(result: "ExportResult", config: "Config") -> int:
    if result.path is None:
        return 0
    return run_hooks(
        config.hooks_dir,
        "on_export",
        result.path,
        result.width,
        result.height,
        result.image_format.value,
        result.timestamp,
    )
