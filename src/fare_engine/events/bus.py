"""Synchronous in-process event bus.

Handlers run on the publisher's turn of the event loop, in subscription
order. An event published from inside a handler is queued and delivered
after the current event has reached every subscriber, so every subscriber
observes events in publish order.
"""

import logging
from collections import deque
from collections.abc import Callable
from typing import Any

from .schemas import EVENT_PAYLOADS, FareEvent, FareEventType

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class _Subscription:
    __slots__ = ("event_type", "handler", "active")

    def __init__(self, event_type: FareEventType, handler: Handler):
        self.event_type = event_type
        self.handler = handler
        self.active = True


class EventBus:
    def __init__(self) -> None:
        self._subscriptions: dict[FareEventType, list[_Subscription]] = {}
        self._queue: deque[tuple[FareEventType, FareEvent]] = deque()
        self._dispatching = False

    def subscribe(self, event_type: FareEventType, handler: Handler) -> Callable[[], None]:
        """Register a handler and return a callable that removes it again."""
        subscription = _Subscription(event_type, handler)
        self._subscriptions.setdefault(event_type, []).append(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            self._subscriptions[event_type].remove(subscription)

        return unsubscribe

    def subscriber_count(self, event_type: FareEventType) -> int:
        return len(self._subscriptions.get(event_type, []))

    def publish(self, event_type: FareEventType, payload: FareEvent) -> None:
        expected = EVENT_PAYLOADS[event_type]
        if not isinstance(payload, expected):
            raise TypeError(
                f"{event_type.value} expects {expected.__name__}, got {type(payload).__name__}"
            )

        self._queue.append((event_type, payload))
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._queue:
                self._deliver(*self._queue.popleft())
        finally:
            self._dispatching = False

    def _deliver(self, event_type: FareEventType, payload: FareEvent) -> None:
        for subscription in list(self._subscriptions.get(event_type, [])):
            if not subscription.active:
                continue
            try:
                subscription.handler(payload)
            except Exception:
                logger.exception(f"Handler for {event_type.value} failed")
