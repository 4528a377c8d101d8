"""Events recorded against objects to surface what the controller did.

Operators inspecting a Grafana object see the latest failure reason through
events without needing the controller logs.
"""

from dataclasses import dataclass
from enum import StrEnum
import logging

from .manifest import NamedResource

__all__ = ["EventType", "Event", "EventRecorder"]

_LOGGER = logging.getLogger(__name__)

MAX_EVENTS = 1000


class EventType(StrEnum):
    """Severity of an event."""

    NORMAL = "Normal"
    WARNING = "Warning"


@dataclass(frozen=True)
class Event:
    """An event recorded against an object."""

    resource_id: NamedResource
    type: EventType
    reason: str
    message: str


class EventRecorder:
    """Records events in memory, keeping the most recent ones."""

    def __init__(self, max_events: int = MAX_EVENTS) -> None:
        self._events: list[Event] = []
        self._max_events = max_events

    def event(
        self, resource_id: NamedResource, event_type: EventType, reason: str, message: str
    ) -> None:
        """Record an event against the object."""
        if event_type == EventType.WARNING:
            _LOGGER.warning("%s %s: %s", resource_id, reason, message)
        else:
            _LOGGER.debug("%s %s: %s", resource_id, reason, message)
        self._events.append(Event(resource_id, event_type, reason, message))
        del self._events[: -self._max_events]

    def events(self, resource_id: NamedResource | None = None) -> list[Event]:
        """Return recorded events, optionally only those for one object."""
        if resource_id is None:
            return list(self._events)
        return [event for event in self._events if event.resource_id == resource_id]
