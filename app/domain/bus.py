"""Simple synchronous in-process event bus."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable

from app.core.logging import get_logger

logger = get_logger(__name__)


class EventBus:
    """Publish/subscribe bus for domain events.

    Handlers are called synchronously in registration order. Handlers
    registered with :meth:`subscribe_all` see every event after the
    type-specific ones.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Callable]] = defaultdict(list)
        self._catch_all: list[Callable] = []

    def subscribe(self, event_type: type, handler: Callable) -> None:
        self._subscribers[event_type].append(handler)

    def subscribe_all(self, handler: Callable) -> None:
        self._catch_all.append(handler)

    def publish(self, event: Any) -> None:
        logger.debug("Publishing %s", getattr(event, "name", type(event).__name__))
        for handler in self._subscribers.get(type(event), []):
            handler(event)
        for handler in self._catch_all:
            handler(event)
