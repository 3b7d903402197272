"""
Notification sink for booking events.

The booking core publishes events after its write has committed. Delivery
is fire-and-forget: a failing sink is logged and never fails the booking.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    SPACE_UPDATED = "space_updated"
    AVAILABILITY_UPDATED = "availability_updated"
    BOOKING_UPDATED = "booking_updated"
    PAYMENT_UPDATED = "payment_updated"


@dataclass(frozen=True)
class NotificationEvent:
    type: EventType
    payload: Dict[str, Any]
    location_id: Optional[str] = None
    booking_id: Optional[str] = None
    user_id: Optional[str] = None
    emitted_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def rooms(self) -> List[str]:
        """Broadcast rooms interested in this event."""
        rooms = []
        if self.location_id:
            rooms.append(f"location_{self.location_id}")
        if self.booking_id:
            rooms.append(f"booking_{self.booking_id}")
        if self.user_id:
            rooms.append(f"user_{self.user_id}")
        return rooms


@runtime_checkable
class NotificationSink(Protocol):
    async def publish(self, event: NotificationEvent) -> None:
        ...


class LoggingNotificationSink:
    """Default sink: records events in the application log."""

    async def publish(self, event: NotificationEvent) -> None:
        logger.info("Event %s -> %s: %s", event.type.value, ",".join(event.rooms), event.payload)


class InMemoryNotificationSink:
    """Keeps published events in a list."""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    async def publish(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> List[NotificationEvent]:
        return [e for e in self.events if e.type == event_type]

    def clear(self) -> None:
        self.events.clear()


async def publish_all(sink: NotificationSink, events: List[NotificationEvent]) -> None:
    """Publish each event, logging and swallowing delivery failures."""
    for event in events:
        try:
            await sink.publish(event)
        except Exception:
            logger.warning(
                "Failed to publish %s event for booking=%s location=%s",
                event.type.value,
                event.booking_id,
                event.location_id,
                exc_info=True,
            )
