"""Synchronous publish/subscribe channel for scan lifecycle notifications."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, DefaultDict, List, Tuple, Type, TypeVar

from .models import DetectedItem

__all__ = [
    "Event",
    "EventBus",
    "ItemsChanged",
    "ScanCompleted",
    "ScanStarted",
]

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """Base class for messages delivered through the bus."""


@dataclass(frozen=True)
class ScanStarted(Event):
    """A workspace scan is about to begin."""


@dataclass(frozen=True)
class ScanCompleted(Event):
    """A workspace scan finished; ``count`` is the number of indexed items."""

    count: int = 0


@dataclass(frozen=True)
class ItemsChanged(Event):
    """The set of open items changed."""

    items: Tuple[DetectedItem, ...] = field(default_factory=tuple)


EventT = TypeVar("EventT", bound=Event)
Handler = Callable[[Event], None]


class EventBus:
    """Deliver events to subscribers in subscription order, on the caller's thread.

    There is no buffering: subscribers only see events published after they
    subscribed.
    """

    def __init__(self) -> None:
        self._subscribers: DefaultDict[Type[Event], List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[EventT], handler: Callable[[EventT], None]) -> Callable[[], None]:
        """Register ``handler`` for ``event_type`` and return an unsubscribe callable."""
        self._subscribers[event_type].append(handler)  # type: ignore[arg-type]

        def _unsubscribe() -> None:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)  # type: ignore[arg-type]

        return _unsubscribe

    def publish(self, event: Event) -> None:
        for handler in list(self._subscribers.get(type(event), [])):
            try:
                handler(event)
            except Exception:
                LOGGER.exception("Event handler %r failed for %s", handler, type(event).__name__)
