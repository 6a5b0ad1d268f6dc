"""Interface for the hive lifecycle event bus.

Observers (UI, telemetry) subscribe to named channels and receive each
event's payload exactly once, in emission order.
"""

from typing import Protocol, Callable, Dict, Any, Awaitable, Union
from enum import Enum


class EventType(Enum):
    """Lifecycle channels published by the coordination engine."""
    # Agents
    AGENT_SPAWNED = "agent-spawned"
    HEARTBEAT = "heartbeat"
    # Workflows
    WORKFLOW_CREATED = "workflow-created"
    WORKFLOW_STARTED = "workflow-started"
    STAGE_COMPLETED = "stage-completed"
    WORKFLOW_COMPLETED = "workflow-completed"
    WORKFLOW_FAILED = "workflow-failed"
    WORKFLOW_PAUSED = "workflow-paused"
    WORKFLOW_RESUMED = "workflow-resumed"
    # Hive
    HIVE_UPDATE = "hive-update"
    METRICS_UPDATE = "metrics-update"


EventHandler = Callable[[Dict[str, Any]], Union[Awaitable[None], None]]


class IEventBus(Protocol):
    """Interface for publish-subscribe event messaging."""

    async def publish(self, event_type: EventType, data: Dict[str, Any]) -> None:
        """Publish an event to every subscriber of its channel.

        Args:
            event_type: Channel
            data: Event payload
        """
        ...

    async def subscribe(self, event_type: EventType, handler: EventHandler) -> str:
        """Subscribe to a channel.

        Args:
            event_type: Channel to listen on
            handler: Sync or async callable receiving the payload

        Returns:
            Subscription ID for later unsubscribe
        """
        ...

    async def unsubscribe(self, subscription_id: str) -> None:
        """Unsubscribe from events.

        Args:
            subscription_id: ID from subscribe()
        """
        ...
