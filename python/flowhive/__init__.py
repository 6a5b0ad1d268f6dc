"""flowhive: asyncio multi-agent coordination engine."""

__version__ = "0.1.0"

from flowhive.exceptions_unified import (
    AdaptiveConvergenceError,
    AgentNotFoundError,
    ConfigurationError,
    FlowHiveException,
    TaskExecutionError,
    WorkflowCancelledError,
    WorkflowNotFoundError,
    WorkflowStateError,
)
from flowhive.enhanced_logging import configure_logging
from flowhive.event_bus import InMemoryEventBus
from flowhive.interfaces import EventType, ITaskRunner, TaskOutcome
from flowhive.hive import (
    AgentRole,
    AgentSpec,
    CancellationToken,
    CoordinationEngine,
    CoordinationKind,
    CoordinationPattern,
    Topology,
    WorkflowResult,
    create_engine,
)

__all__ = [
    "AdaptiveConvergenceError",
    "AgentNotFoundError",
    "ConfigurationError",
    "FlowHiveException",
    "TaskExecutionError",
    "WorkflowCancelledError",
    "WorkflowNotFoundError",
    "WorkflowStateError",
    "configure_logging",
    "InMemoryEventBus",
    "EventType",
    "ITaskRunner",
    "TaskOutcome",
    "AgentRole",
    "AgentSpec",
    "CancellationToken",
    "CoordinationEngine",
    "CoordinationKind",
    "CoordinationPattern",
    "Topology",
    "WorkflowResult",
    "create_engine",
]
