from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from clinic_site.context import get_correlation_id


@dataclass(frozen=True, slots=True)
class EventEnvelope:
    event_type: str
    payload: dict[str, Any]
    correlation_id: str | None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventHandler = Callable[[EventEnvelope], None]


class EventBus:
    """Synchronous in-process dispatch; handlers run in the publisher's thread."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def dispatch(self, envelope: EventEnvelope) -> None:
        for handler in list(self._handlers.get(envelope.event_type, [])):
            handler(envelope)


EVENT_HISTORY_LIMIT = 1000

event_bus = EventBus()
# most recent envelopes only
published_events: deque[EventEnvelope] = deque(maxlen=EVENT_HISTORY_LIMIT)


def publish(event_type: str, payload: dict[str, Any]) -> EventEnvelope:
    envelope = EventEnvelope(event_type=event_type, payload=payload, correlation_id=get_correlation_id())
    published_events.append(envelope)
    event_bus.dispatch(envelope)
    return envelope
