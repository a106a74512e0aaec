"""
Structured event emitter.

Events are single-line JSON objects written to stderr, so they stay
separate from log lines and from the --json result on stdout:

    {"event_type": "...", "timestamp": "...", "source": {"tool": "..."}, "data": {...}}

Extra transports register with add_handler().
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict], None]

EVENT_TYPES = (
    "config.resolved",
    "selection.completed",
    "selection.cancelled",
    "capture.completed",
    "artifact.created",
    "error.handled",
)

_handlers: List[EventHandler] = []
_source: str = "screenmark"
_stderr_enabled: bool = True


def configure(source: str, stderr: bool = True) -> None:
    """Set the source name and whether events go to stderr.

    Args:
        source: Source identifier for events
        stderr: Whether to write events to stderr
    """
    global _source, _stderr_enabled
    _source = source
    _stderr_enabled = stderr


def add_handler(handler: EventHandler) -> None:
    _handlers.append(handler)


def remove_handler(handler: EventHandler) -> None:
    if handler in _handlers:
        _handlers.remove(handler)


def emit(
    event_type: str,
    data: Dict[str, Any],
    source: Optional[str] = None,
) -> None:
    """Emit an event to stderr and to every registered handler.

    Handler failures are logged and never reach the caller. Event types
    outside EVENT_TYPES are still delivered, with a warning.
    """
    if event_type not in EVENT_TYPES:
        logger.warning("Emitting unregistered event type: %s", event_type)

    event = {
        "event_type": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source": {"tool": source or _source},
        "data": data,
    }

    if _stderr_enabled:
        try:
            print(json.dumps(event, default=str), file=sys.stderr, flush=True)
        except (TypeError, ValueError, OSError) as exc:
            logger.debug("Could not write event %s: %s", event_type, exc)

    for handler in list(_handlers):
        try:
            handler(event)
        except Exception as exc:
            logger.debug("Event handler error: %s", exc)
