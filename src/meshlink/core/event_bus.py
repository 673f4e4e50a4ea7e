"""
Internal event bus for connection-state changes.

The manager publishes every change to its owned state here; UI layers
and tooling subscribe instead of polling or mutating fields.
"""

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Generic, TypeVar

from meshlink.utils.time import get_timestamp_ms


logger = logging.getLogger(__name__)


class EventType(Enum):
    """Connection manager event types."""

    # Registry events
    ENDPOINTS_REPLACED = auto()
    SWEEP_COMPLETE = auto()
    DISCOVERY_FAILED = auto()

    # Selection events
    ACTIVE_ENDPOINT_CHANGED = auto()
    PREFERENCE_CHANGED = auto()

    # Observability events
    PEER_MESH_UPDATED = auto()

    # Lifecycle events
    STARTED = auto()
    STOPPED = auto()


T = TypeVar("T")


@dataclass
class Event(Generic[T]):
    """Generic event with typed payload."""

    type: EventType
    payload: T
    timestamp_ms: int = 0
    source: str = ""


EventHandler = Callable[[Event[Any]], Awaitable[None]]
SyncEventHandler = Callable[[Event[Any]], None]


def make_event(event_type: EventType, payload: T, source: str = "") -> Event[T]:
    """Build an event stamped with the current time."""
    return Event(type=event_type, payload=payload, timestamp_ms=get_timestamp_ms(), source=source)


class EventBus:
    """
    Publish/subscribe bus for internal messaging.

    Features:
    - Async and sync handler support
    - Priority-based handler ordering
    - Error isolation per handler
    """

    def __init__(self) -> None:
        """Initialize event bus."""
        self._handlers: dict[EventType, list[tuple[int, EventHandler]]] = defaultdict(list)
        self._sync_handlers: dict[EventType, list[tuple[int, SyncEventHandler]]] = defaultdict(list)

    def subscribe(
        self,
        event_type: EventType,
        handler: EventHandler,
        priority: int = 0,
    ) -> None:
        """
        Subscribe an async handler to an event type.

        Args:
            event_type: Event type to handle.
            handler: Async handler function.
            priority: Handler priority (higher = earlier execution).
        """
        self._handlers[event_type].append((priority, handler))
        self._handlers[event_type].sort(key=lambda x: x[0], reverse=True)

    def subscribe_sync(
        self,
        event_type: EventType,
        handler: SyncEventHandler,
        priority: int = 0,
    ) -> None:
        """
        Subscribe a sync handler to an event type.

        Sync handlers also receive events published with `publish_sync`,
        which is what the manager uses from its synchronous re-selection path.
        """
        self._sync_handlers[event_type].append((priority, handler))
        self._sync_handlers[event_type].sort(key=lambda x: x[0], reverse=True)

    def unsubscribe(
        self,
        event_type: EventType,
        handler: EventHandler | SyncEventHandler,
    ) -> bool:
        """
        Unsubscribe a handler.

        Returns:
            True if handler was found and removed.
        """
        for i, (_, ah) in enumerate(self._handlers[event_type]):
            if ah is handler:
                self._handlers[event_type].pop(i)
                return True

        for i, (_, sh) in enumerate(self._sync_handlers[event_type]):
            if sh is handler:
                self._sync_handlers[event_type].pop(i)
                return True

        return False

    async def publish(self, event: Event[Any]) -> None:
        """
        Publish an event to all subscribers.

        Sync handlers run first, then async handlers in priority order.
        """
        self._run_sync_handlers(event)

        for _, async_handler in self._handlers[event.type]:
            try:
                await async_handler(event)
            except Exception as e:
                logger.error(f"Async handler error for {event.type}: {e}")

    def publish_sync(self, event: Event[Any]) -> None:
        """Publish event synchronously (sync handlers only)."""
        self._run_sync_handlers(event)

    def _run_sync_handlers(self, event: Event[Any]) -> None:
        for _, handler in self._sync_handlers[event.type]:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Sync handler error for {event.type}: {e}")

    def clear(self, event_type: EventType | None = None) -> None:
        """
        Clear handlers.

        Args:
            event_type: Specific type to clear, or None for all.
        """
        if event_type:
            self._handlers[event_type].clear()
            self._sync_handlers[event_type].clear()
        else:
            self._handlers.clear()
            self._sync_handlers.clear()

    def handler_count(self, event_type: EventType) -> int:
        """Get number of handlers for an event type."""
        return len(self._handlers[event_type]) + len(self._sync_handlers[event_type])
