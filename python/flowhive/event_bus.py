"""Lightweight in-memory event bus satisfying the IEventBus protocol.

Carries the engine's lifecycle events (agent-spawned, workflow-*, stage-completed,
hive-update, ...) to external observers inside a single process.
"""

import inspect
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from flowhive.interfaces.event_bus import EventHandler, EventType

logger = logging.getLogger(__name__)


class InMemoryEventBus:
    """Simple async event bus for single-process use.

    Handlers run sequentially in subscription order, so every subscriber sees
    events in the order they were published. A failing handler is logged and
    never reaches the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[EventType, Dict[str, EventHandler]] = {}
        self._published: Dict[EventType, int] = {}

    async def publish(self, event_type: EventType, data: Dict[str, Any]) -> None:
        self._published[event_type] = self._published.get(event_type, 0) + 1
        # Snapshot so handlers may (un)subscribe while we iterate
        handlers = list(self._subscribers.get(event_type, {}).values())
        for handler in handlers:
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(data)
                else:
                    result = handler(data)
                    if inspect.isawaitable(result):
                        await result
            except Exception:
                logger.exception("Event handler failed for %s", event_type.value)

    async def subscribe(self, event_type: EventType, handler: EventHandler) -> str:
        if event_type not in self._subscribers:
            self._subscribers[event_type] = {}
        sub_id = uuid.uuid4().hex[:12]
        self._subscribers[event_type][sub_id] = handler
        return sub_id

    async def unsubscribe(self, subscription_id: str) -> None:
        for handlers in self._subscribers.values():
            handlers.pop(subscription_id, None)

    @asynccontextmanager
    async def subscription(
        self, event_type: EventType, handler: EventHandler
    ) -> AsyncIterator[str]:
        """Scope a subscription to an ``async with`` block."""
        sub_id = await self.subscribe(event_type, handler)
        try:
            yield sub_id
        finally:
            await self.unsubscribe(sub_id)

    def subscriber_count(self, event_type: EventType) -> int:
        return len(self._subscribers.get(event_type, {}))

    def published_count(self, event_type: EventType) -> int:
        return self._published.get(event_type, 0)
