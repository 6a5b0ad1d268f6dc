"""
Hive data model: agents, workflows, inter-agent messages and stage results.

Records are plain dataclasses. Agents are owned by the AgentRegistry and
workflows by the WorkflowCoordinator; everything else refers to them by id.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Agents
# ============================================================================

class AgentRole(str, Enum):
    """Position of an agent in the hive"""
    QUEEN = "queen"
    WORKER = "worker"
    COORDINATOR = "coordinator"
    SPECIALIST = "specialist"


class AgentStatus(str, Enum):
    """Agent availability"""
    ACTIVE = "active"
    IDLE = "idle"
    BUSY = "busy"
    OFFLINE = "offline"


@dataclass
class AgentPerformance:
    """Running performance figures, updated after every task"""
    tasks_completed: int = 0
    average_quality: float = 0.0
    success_rate: float = 0.0
    avg_response_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tasks_completed": self.tasks_completed,
            "average_quality": self.average_quality,
            "success_rate": self.success_rate,
            "avg_response_time_ms": self.avg_response_time_ms,
        }


@dataclass
class AgentSpec:
    """What to spawn: agent type, role and capability tags"""
    type: str
    role: AgentRole = AgentRole.WORKER
    capabilities: FrozenSet[str] = frozenset()


@dataclass
class Agent:
    """A registered hive member"""
    id: str
    type: str
    role: AgentRole
    capabilities: FrozenSet[str] = frozenset()
    status: AgentStatus = AgentStatus.ACTIVE
    performance: AgentPerformance = field(default_factory=AgentPerformance)
    last_heartbeat: datetime = field(default_factory=utcnow)
    connected: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "role": self.role.value,
            "capabilities": sorted(self.capabilities),
            "status": self.status.value,
            "performance": self.performance.to_dict(),
            "last_heartbeat": self.last_heartbeat.isoformat(),
            "connected": self.connected,
        }


# ============================================================================
# Workflows
# ============================================================================

class Topology(str, Enum):
    """Declared hive shape of a workflow"""
    HIERARCHICAL = "hierarchical"
    MESH = "mesh"
    ADAPTIVE = "adaptive"
    HYBRID = "hybrid"


class WorkflowStatus(str, Enum):
    """Workflow lifecycle"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


@dataclass
class WorkflowMetrics:
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_ms: Optional[float] = None
    efficiency: float = 0.0
    quality: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "efficiency": self.efficiency,
            "quality": self.quality,
        }


@dataclass
class Workflow:
    """A named unit of coordinated work over an ordered set of agents"""
    id: str
    name: str
    topology: Topology
    agents: List[str]
    coordination_pattern: str
    status: WorkflowStatus = WorkflowStatus.PENDING
    metrics: WorkflowMetrics = field(default_factory=WorkflowMetrics)
    task_description: str = ""
    created_at: datetime = field(default_factory=utcnow)
    error: Optional[Dict[str, Any]] = None
    result: Optional["WorkflowResult"] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "topology": self.topology.value,
            "agents": list(self.agents),
            "coordination_pattern": self.coordination_pattern,
            "status": self.status.value,
            "metrics": self.metrics.to_dict(),
            "task_description": self.task_description,
            "created_at": self.created_at.isoformat(),
            "error": self.error,
        }


# ============================================================================
# Messages
# ============================================================================

BROADCAST = "broadcast"


class MessageType(str, Enum):
    """Hive message types"""
    TASK = "task"
    RESULT = "result"
    COORDINATION = "coordination"
    HEARTBEAT = "heartbeat"
    ALERT = "alert"


class MessagePriority(str, Enum):
    """Message priority levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Delivery order for inbound queues (lower drains first)
PRIORITY_ORDER = {
    MessagePriority.CRITICAL: 0,
    MessagePriority.HIGH: 1,
    MessagePriority.MEDIUM: 2,
    MessagePriority.LOW: 3,
}


@dataclass(frozen=True)
class Message:
    """Immutable inter-agent message"""
    sender: str
    recipient: str
    type: MessageType
    content: Any
    priority: MessagePriority = MessagePriority.MEDIUM
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def is_broadcast(self) -> bool:
        return self.recipient == BROADCAST

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from": self.sender,
            "to": self.recipient,
            "type": self.type.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "priority": self.priority.value,
        }


# ============================================================================
# Results
# ============================================================================

@dataclass
class StageResult:
    """Output of one stage executed by one agent"""
    stage: str
    agent_id: str
    output: Any
    quality: float
    confidence: float
    duration_ms: float
    next_actions: List[str] = field(default_factory=list)

    @property
    def score(self) -> float:
        """Ranking key used by consensus and swarm selection"""
        return self.quality * self.confidence

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "agent_id": self.agent_id,
            "output": self.output,
            "quality": self.quality,
            "confidence": self.confidence,
            "duration_ms": self.duration_ms,
            "next_actions": list(self.next_actions),
        }


@dataclass
class WorkflowResult:
    """Aggregated outcome of a coordination strategy"""
    success: bool
    coordination: str
    stages: int
    results: List[StageResult]
    quality: float
    duration_ms: float
    output: Any = None
    summary: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "coordination": self.coordination,
            "stages": self.stages,
            "results": [r.to_dict() for r in self.results],
            "quality": self.quality,
            "duration_ms": self.duration_ms,
            "output": self.output,
            "summary": self.summary,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }
