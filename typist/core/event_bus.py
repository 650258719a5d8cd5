"""EventBus — synchronous fan-out of engine and control events.

The application loop is the only publisher of watcher events, so handlers
never run concurrently with each other.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable

import typist.log  # registers TRACE level and logger.trace()
from typist.core.events import Event, EventType

logger = logging.getLogger(__name__)

Handler = Callable[[Event], None]


class EventBus:
    """Handlers run on the publisher's thread in subscription order.

    A failing handler is logged and skipped; the rest still see the event.
    """

    def __init__(self):
        self._handlers: dict[EventType, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: EventType, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def has_subscribers(self, event_type: EventType) -> bool:
        return bool(self._handlers.get(event_type))

    def publish(self, event: Event) -> int:
        """Deliver *event*; returns how many handlers completed without error."""
        handlers = list(self._handlers.get(event.type, ()))
        if not handlers:
            logger.trace("No subscribers for %s", event.type.name)  # type: ignore[attr-defined]
            return 0

        delivered = 0
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Handler %r failed on %s", handler, event.type.name)
            else:
                delivered += 1
        return delivered
