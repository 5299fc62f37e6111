"""Event Bus - pub/sub for exchange updates.

Notification handlers publish here after they touch the store, so that
operator consoles and SSE subscribers can print what the agent reported.
A subscriber failure is logged and never reaches the publisher.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

WILDCARD = "*"


@dataclass(frozen=True)
class EventDefinition(Generic[T]):
    """Typed event definition.

    Usage:
        ConnectionUpdated = define_event("exchange.connection.updated", ConnectionUpdatedProps)
        await bus.publish(ConnectionUpdated, ConnectionUpdatedProps(...))
    """

    type: str
    schema: type[T]


EventCallback = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]


def define_event(event_type: str, schema: type[T]) -> EventDefinition[T]:
    """Define a typed event (dot-separated name plus pydantic props model)."""
    return EventDefinition(type=event_type, schema=schema)


class EventBus:
    """Async event bus with wildcard subscription support.

    The lock only guards the subscription table; callbacks run outside it.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[EventCallback]] = {}
        self._lock: asyncio.Lock | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the lock (lazy init for event loop safety)."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def publish(self, event_def: EventDefinition[T], properties: T) -> None:
        """Publish an event to specific then wildcard subscribers."""
        payload = {"type": event_def.type, "properties": properties.model_dump(mode="json")}

        async with self._get_lock():
            specific_subs = list(self._subscriptions.get(event_def.type, []))
            wildcard_subs = list(self._subscriptions.get(WILDCARD, []))

        for callback in specific_subs + wildcard_subs:
            try:
                await callback(payload)
            except Exception:
                logger.exception(f"Error in subscriber for {event_def.type}")

    async def subscribe(
        self, event_def: EventDefinition[T], callback: EventCallback
    ) -> Callable[[], None]:
        """Subscribe to one event type. Returns an unsubscribe function."""
        return await self._subscribe(event_def.type, callback)

    async def subscribe_all(self, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to every event (used by SSE and the operator console)."""
        return await self._subscribe(WILDCARD, callback)

    async def _subscribe(self, key: str, callback: EventCallback) -> Callable[[], None]:
        async with self._get_lock():
            self._subscriptions.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            if callback in self._subscriptions.get(key, []):
                self._subscriptions[key].remove(callback)

        return unsubscribe

    async def stream(self) -> AsyncIterator[dict[str, Any]]:
        """Yield every published event until the consumer stops iterating."""
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

        async def on_event(payload: dict[str, Any]) -> None:
            await queue.put(payload)

        unsubscribe = await self.subscribe_all(on_event)

        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()

    @property
    def subscriber_count(self) -> int:
        return sum(len(callbacks) for callbacks in self._subscriptions.values())

    def reset(self) -> None:
        """Reset bus state (for testing)."""
        self._subscriptions = {}
        self._lock = None
