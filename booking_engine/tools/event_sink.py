"""
Event sink adapters.

In production the sink would enqueue events for the notification service
(push, in-app, email) and the audit log. The engine only publishes;
delivery and retry belong to the sink.
"""

import logging
import threading
from typing import Optional, Protocol

from booking_engine.schemas.booking_schema import BookingStatus
from booking_engine.schemas.event_schema import BookingEvent, EventKind

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    def publish(self, event: BookingEvent) -> None: ...


class InMemoryEventSink:
    """Collects published events in order. Used by tests and the CLI demo."""

    def __init__(self) -> None:
        self._events: list[BookingEvent] = []
        self._lock = threading.Lock()

    def publish(self, event: BookingEvent) -> None:
        with self._lock:
            self._events.append(event)
        logger.debug("Event captured: %s for %s", event.kind.value, event.booking_id)

    @property
    def events(self) -> list[BookingEvent]:
        with self._lock:
            return list(self._events)

    def events_for(
        self, booking_id: str, kind: Optional[EventKind] = None
    ) -> list[BookingEvent]:
        return [
            e for e in self.events
            if e.booking_id == booking_id and (kind is None or e.kind == kind)
        ]

    def last_status_change(self, booking_id: str) -> Optional[BookingStatus]:
        changes = self.events_for(booking_id, EventKind.STATUS_CHANGED)
        return changes[-1].new_status if changes else None

    def reset(self) -> None:
        """Clear captured events. Used by test fixtures for isolation."""
        with self._lock:
            self._events.clear()


class LoggingEventSink:
    """Writes each event to the log. Handy when no downstream consumer exists."""

    def publish(self, event: BookingEvent) -> None:
        recipients = ", ".join(n.recipient_id for n in event.notifications) or "nobody"
        logger.info(
            "%s booking=%s %s -> %s notify=[%s]",
            event.kind.value,
            event.booking_id,
            event.previous_status.value if event.previous_status else "-",
            event.new_status.value,
            recipients,
        )
