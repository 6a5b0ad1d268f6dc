"""Hive coordination: agents, messaging, topologies and the engine that owns them."""

from flowhive.hive.models import (
    Agent,
    AgentPerformance,
    AgentRole,
    AgentSpec,
    AgentStatus,
    BROADCAST,
    Message,
    MessagePriority,
    MessageType,
    StageResult,
    Topology,
    Workflow,
    WorkflowMetrics,
    WorkflowResult,
    WorkflowStatus,
)
from flowhive.hive.patterns import (
    CoordinationKind,
    CoordinationPattern,
    CoordinationPatternCatalog,
)
from flowhive.hive.cancellation import CancellationToken
from flowhive.hive.message_bus import MessageBus
from flowhive.hive.agent_registry import AgentRegistry
from flowhive.hive.heartbeat import HiveHeartbeat
from flowhive.hive.adaptive import AdaptiveController
from flowhive.hive.topology import TopologyExecutor
from flowhive.hive.coordinator import WorkflowCoordinator
from flowhive.hive.engine import CoordinationEngine, create_engine

__all__ = [
    "Agent",
    "AgentPerformance",
    "AgentRole",
    "AgentSpec",
    "AgentStatus",
    "BROADCAST",
    "Message",
    "MessagePriority",
    "MessageType",
    "StageResult",
    "Topology",
    "Workflow",
    "WorkflowMetrics",
    "WorkflowResult",
    "WorkflowStatus",
    "CoordinationKind",
    "CoordinationPattern",
    "CoordinationPatternCatalog",
    "CancellationToken",
    "MessageBus",
    "AgentRegistry",
    "HiveHeartbeat",
    "AdaptiveController",
    "TopologyExecutor",
    "WorkflowCoordinator",
    "CoordinationEngine",
    "create_engine",
]
