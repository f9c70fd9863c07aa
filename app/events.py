# Domain events emitted by the booking core after each successful commit.
# Delivery is best-effort: subscribers and the Redis fan-out can fail without affecting the booking.
from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, DefaultDict, List, Literal, Optional

from pydantic import BaseModel, Field

from .redis_client import get_redis

logger = logging.getLogger("bookmysleep.events")

EventName = Literal[
    "BookingCreated",
    "BookingConfirmed",
    "BookingRejected",
    "BookingCancelled",
    "BookingCompleted",
    "PaymentReceived",
    "ReviewCreated",
    "ReviewDeleted",
]


class DomainEvent(BaseModel):
    name: EventName
    booking_id: Optional[int] = None
    review_id: Optional[int] = None
    room_id: Optional[int] = None
    property_id: Optional[int] = None
    seeker_id: Optional[int] = None
    owner_id: Optional[int] = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


Handler = Callable[[DomainEvent], None]


class EventBus:
    """
    In-process publish/subscribe for DomainEvents.

    Handlers subscribe to one event name or to "*" for everything. When Redis is
    enabled each event is also published to the `events:<name>` channel so other
    processes (push notifications, socket broadcasts) can pick it up.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, name: str, handler: Handler) -> None:
        with self._lock:
            self._handlers[name].append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        with self._lock:
            if handler in self._handlers.get(name, []):
                self._handlers[name].remove(handler)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def publish(self, event: DomainEvent) -> None:
        logger.info(
            "event.%s",
            event.name,
            extra={"booking_id": event.booking_id, "review_id": event.review_id, "room_id": event.room_id},
        )
        with self._lock:
            handlers = list(self._handlers.get(event.name, [])) + list(self._handlers.get("*", []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("event.handler_failed", extra={"event": event.name})
        self._fan_out(event)

    def _fan_out(self, event: DomainEvent) -> None:
        r = get_redis()
        if r is None:
            return
        try:
            r.publish(f"events:{event.name}", event.model_dump_json())
        except Exception as exc:
            logger.warning("event.redis_publish_failed (event=%s): %s", event.name, exc)


# Process-wide bus used by the API; services accept any EventBus for tests.
event_bus = EventBus()
