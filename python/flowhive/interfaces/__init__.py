"""flowhive interface contracts (Protocol-based dependency injection)."""

from flowhive.interfaces.event_bus import IEventBus, EventType, EventHandler
from flowhive.interfaces.task_runner import ITaskRunner, TaskOutcome, coerce_outcome

__all__ = [
    "IEventBus",
    "EventType",
    "EventHandler",
    "ITaskRunner",
    "TaskOutcome",
    "coerce_outcome",
]
