"""Structured events emitted to the reporting layer.

The core never formats user-facing text; it emits named events carrying plain
data and lets the caller decide how to present them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol

from common.logging_utils import extra_context, is_debug_enabled

logger = logging.getLogger(__name__)

INSTALL_STARTED = "install.started"
INSTALL_RESOLVED = "install.resolved"
INSTALL_CONFLICT = "install.conflict"
INSTALL_COMPLETE = "install.complete"
UNINSTALL_STARTED = "uninstall.started"
UNINSTALL_REMOVED = "uninstall.removed"
UNINSTALL_COMPLETE = "uninstall.complete"


@dataclass(frozen=True)
class Event:
    """A named event with a plain-data payload."""

    name: str
    data: Dict[str, Any] = field(default_factory=dict)


class EventSink(Protocol):
    """Anything that accepts events."""

    def emit(self, event: Event) -> None:
        """Receive one event."""


class ListEventSink:
    """Collects events in memory."""

    def __init__(self) -> None:
        self.events: List[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def names(self) -> List[str]:
        """Event names in emission order."""
        return [e.name for e in self.events]


class LoggingEventSink:
    """Forwards events to the debug log."""

    def emit(self, event: Event) -> None:
        if is_debug_enabled(logger):
            logger.debug(
                "Event %s",
                event.name,
                extra=extra_context(event=event.name, component="events", payload=event.data),
            )
