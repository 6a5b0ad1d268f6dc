"""Coordination engine: wires one tenant's hive together.

Every piece of engine state (agents, workflows, messages, subscriptions)
lives on a ``CoordinationEngine`` instance; two engines never share state.
"""

from typing import Any, Dict, Iterable, Optional, Sequence, Union
import logging

from flowhive.config.settings import Settings, get_settings
from flowhive.event_bus import InMemoryEventBus
from flowhive.interfaces.event_bus import EventHandler, EventType
from flowhive.interfaces.task_runner import ITaskRunner
from flowhive.hive.agent_registry import AgentRegistry
from flowhive.hive.cancellation import CancellationToken
from flowhive.hive.coordinator import WorkflowCoordinator
from flowhive.hive.heartbeat import HiveHeartbeat
from flowhive.hive.message_bus import MessageBus
from flowhive.hive.models import (
    AgentRole,
    AgentSpec,
    AgentStatus,
    Topology,
    WorkflowResult,
    WorkflowStatus,
)
from flowhive.hive.patterns import CoordinationPattern, CoordinationPatternCatalog
from flowhive.hive.scoring import mean
from flowhive.hive.topology import TopologyExecutor

logger = logging.getLogger(__name__)


class CoordinationEngine:
    """Central owner of the hive components for one tenant."""

    def __init__(
        self,
        task_runner: ITaskRunner,
        settings: Optional[Settings] = None,
        event_bus: Optional[InMemoryEventBus] = None,
        extra_patterns: Optional[Iterable[CoordinationPattern]] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.event_bus = event_bus or InMemoryEventBus()
        self.message_bus = MessageBus(
            self.event_bus,
            self.settings.message_history_limit,
            self.settings.message_inbox_limit,
        )
        self.registry = AgentRegistry(self.event_bus, self.message_bus)
        self.catalog = CoordinationPatternCatalog(extra_patterns)
        self.executor = TopologyExecutor(
            self.registry,
            self.message_bus,
            self.event_bus,
            task_runner,
            self.settings,
        )
        self.coordinator = WorkflowCoordinator(
            self.registry,
            self.catalog,
            self.executor,
            self.event_bus,
            self.settings,
        )
        self.heartbeat = HiveHeartbeat(
            self.registry,
            self.event_bus,
            interval_seconds=self.settings.heartbeat_interval_seconds,
            metrics_provider=self.get_hive_metrics,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self.heartbeat.start()
        logger.info(f"{self.settings.app_name} engine started with {len(self.catalog)} patterns")

    async def shutdown(self) -> None:
        await self.heartbeat.stop()
        for agent in self.registry.list_agents():
            if agent.status != AgentStatus.OFFLINE:
                await self.registry.mark_offline(agent.id)
        logger.info(f"{self.settings.app_name} engine shut down")

    async def __aenter__(self) -> "CoordinationEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Agents and workflows
    # ------------------------------------------------------------------

    async def spawn_agent(
        self,
        agent_type: str,
        role: AgentRole = AgentRole.WORKER,
        capabilities: Sequence[str] = (),
    ) -> str:
        return await self.registry.spawn(
            AgentSpec(type=agent_type, role=role, capabilities=frozenset(capabilities))
        )

    async def create_workflow(
        self,
        name: str,
        topology: Union[Topology, str],
        coordination_pattern: str,
        agent_types: Sequence[Union[str, AgentSpec]],
        task_description: str = "",
    ) -> str:
        return await self.coordinator.create_workflow(
            name, topology, coordination_pattern, agent_types, task_description
        )

    async def execute_workflow(
        self,
        workflow_id: str,
        task: str,
        context: Optional[Dict[str, Any]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WorkflowResult:
        return await self.coordinator.execute_workflow(workflow_id, task, context, cancel_token)

    async def pause_workflow(self, workflow_id: str) -> None:
        await self.coordinator.pause_workflow(workflow_id)

    async def resume_workflow(self, workflow_id: str) -> None:
        await self.coordinator.resume_workflow(workflow_id)

    def cancel_workflow(self, workflow_id: str, reason: Optional[str] = None) -> None:
        self.coordinator.cancel_workflow(workflow_id, reason)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    async def subscribe(self, event_type: EventType, handler: EventHandler) -> str:
        return await self.event_bus.subscribe(event_type, handler)

    async def unsubscribe(self, subscription_id: str) -> None:
        await self.event_bus.unsubscribe(subscription_id)

    def get_hive_metrics(self) -> Dict[str, Any]:
        """Snapshot of agent, workflow and performance counters."""
        agents = self.registry.list_agents()
        workflows = self.coordinator.list_workflows()

        def count_agents(status: AgentStatus) -> int:
            return sum(1 for a in agents if a.status == status)

        def count_workflows(status: WorkflowStatus) -> int:
            return sum(1 for w in workflows if w.status == status)

        return {
            "agents": {
                "total": len(agents),
                "active": count_agents(AgentStatus.ACTIVE),
                "idle": count_agents(AgentStatus.IDLE),
                "busy": count_agents(AgentStatus.BUSY),
                "offline": count_agents(AgentStatus.OFFLINE),
            },
            "workflows": {
                "total": len(workflows),
                "pending": count_workflows(WorkflowStatus.PENDING),
                "running": count_workflows(WorkflowStatus.RUNNING),
                "paused": count_workflows(WorkflowStatus.PAUSED),
                "completed": count_workflows(WorkflowStatus.COMPLETED),
                "failed": count_workflows(WorkflowStatus.FAILED),
            },
            "performance": {
                "average_response_time_ms": mean(a.performance.avg_response_time_ms for a in agents),
                "overall_success_rate": mean(a.performance.success_rate for a in agents),
                "total_tasks_completed": sum(a.performance.tasks_completed for a in agents),
            },
            "coordination_patterns": len(self.catalog),
            "messages": self.message_bus.stats(),
        }

    def status(self) -> Dict[str, Any]:
        return {
            "heartbeat_running": self.heartbeat.running,
            "agents": self.registry.stats(),
            "workflows": self.coordinator.stats(),
            "patterns": self.catalog.names(),
        }


def create_engine(task_runner: ITaskRunner, settings: Optional[Settings] = None) -> CoordinationEngine:
    """Build a fresh engine; callers own its lifetime."""
    return CoordinationEngine(task_runner, settings=settings)


__all__ = ["CoordinationEngine", "create_engine"]
