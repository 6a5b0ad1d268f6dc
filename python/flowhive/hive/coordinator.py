"""
Workflow coordinator: creates workflows, drives their lifecycle, and hands
execution to the TopologyExecutor.

The coordinator is the only writer of ``Workflow.status`` and
``Workflow.metrics``; strategies never touch them.
"""

import asyncio
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import logging

from flowhive.config.settings import Settings, get_settings
from flowhive.exceptions_unified import (
    ConfigurationError,
    WorkflowNotFoundError,
    WorkflowStateError,
    create_error_context,
)
from flowhive.interfaces.event_bus import EventType, IEventBus
from flowhive.hive.agent_registry import AgentRegistry
from flowhive.hive.cancellation import CancellationToken, PauseGate, make_checkpoint
from flowhive.hive.models import (
    AgentRole,
    AgentSpec,
    Topology,
    Workflow,
    WorkflowResult,
    WorkflowStatus,
    utcnow,
)
from flowhive.hive.patterns import CoordinationPatternCatalog
from flowhive.hive.scoring import assess_result_quality, calculate_efficiency
from flowhive.hive.topology import TopologyExecutor

logger = logging.getLogger(__name__)

AGENT_CAPABILITIES: Dict[str, List[str]] = {
    "project-manager": ["planning", "coordination", "monitoring"],
    "developer": ["coding", "debugging", "testing"],
    "designer": ["ui-design", "ux-design", "prototyping"],
    "analyst": ["analysis", "research", "reporting"],
    "qa": ["testing", "validation", "quality-assurance"],
}
DEFAULT_CAPABILITIES = ["general"]


def determine_agent_role(agent_type: str, topology: Union[Topology, str]) -> AgentRole:
    """Role an agent of ``agent_type`` takes in a workflow of ``topology``."""
    if Topology(topology) == Topology.HIERARCHICAL and agent_type == "project-manager":
        return AgentRole.QUEEN
    if "coordinator" in agent_type:
        return AgentRole.COORDINATOR
    if "specialist" in agent_type:
        return AgentRole.SPECIALIST
    return AgentRole.WORKER


def agent_capabilities(agent_type: str) -> List[str]:
    return list(AGENT_CAPABILITIES.get(agent_type, DEFAULT_CAPABILITIES))


class WorkflowCoordinator:
    """Owns every workflow of one engine instance"""

    def __init__(
        self,
        registry: AgentRegistry,
        catalog: CoordinationPatternCatalog,
        executor: TopologyExecutor,
        event_bus: IEventBus,
        settings: Optional[Settings] = None,
    ):
        self._registry = registry
        self._catalog = catalog
        self._executor = executor
        self._event_bus = event_bus
        self._settings = settings or get_settings()
        self._workflows: Dict[str, Workflow] = {}
        # Live controls for workflows currently executing
        self._controls: Dict[str, Tuple[CancellationToken, PauseGate]] = {}

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_workflow(
        self,
        name: str,
        topology: Union[Topology, str],
        coordination_pattern: str,
        agent_types: Sequence[Union[str, AgentSpec]],
        task_description: str = "",
    ) -> str:
        """
        Spawn one agent per entry and register a pending workflow over them.

        Args:
            name: Human-readable workflow name
            topology: Declared hive shape
            coordination_pattern: Catalog name, resolved when the workflow executes
            agent_types: Agent type strings or explicit AgentSpecs, in order
            task_description: Free-form description

        Returns:
            Workflow id
        """
        try:
            topology = Topology(topology)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown topology '{topology}' for workflow '{name}'",
                details={"name": name, "topology": str(topology)},
            ) from e
        if not agent_types:
            raise ConfigurationError(
                f"Workflow '{name}' needs at least one agent",
                details={"name": name},
            )

        agent_ids: List[str] = []
        for entry in agent_types:
            if isinstance(entry, AgentSpec):
                spec = entry
            else:
                spec = AgentSpec(
                    type=entry,
                    role=determine_agent_role(entry, topology),
                    capabilities=frozenset(agent_capabilities(entry)),
                )
            agent_ids.append(await self._registry.spawn(spec))

        workflow = Workflow(
            id=f"workflow-{uuid.uuid4().hex[:12]}",
            name=name,
            topology=topology,
            agents=agent_ids,
            coordination_pattern=coordination_pattern,
            task_description=task_description,
        )
        self._workflows[workflow.id] = workflow

        logger.info(
            f"Created workflow {workflow.id} '{name}' ({topology.value}, "
            f"{coordination_pattern}) with {len(agent_ids)} agents"
        )
        await self._event_bus.publish(EventType.WORKFLOW_CREATED, {
            "workflow_id": workflow.id,
            "name": name,
            "agent_count": len(agent_ids),
            "timestamp": utcnow().isoformat(),
        })
        return workflow.id

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_workflow(
        self,
        workflow_id: str,
        task: str,
        context: Optional[Dict[str, Any]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WorkflowResult:
        """
        Run a pending workflow to completion.

        Raises:
            WorkflowNotFoundError: unknown id
            WorkflowStateError: workflow is not pending
            ConfigurationError: pattern missing from the catalog
            Any strategy error, unchanged, after the workflow is marked failed
        """
        workflow = self._require(workflow_id)
        if workflow.status != WorkflowStatus.PENDING:
            raise WorkflowStateError(
                f"Workflow {workflow_id} is {workflow.status.value}, expected pending",
                details={"workflow_id": workflow_id, "status": workflow.status.value},
            )

        token = cancel_token or CancellationToken()
        gate = PauseGate()
        self._controls[workflow_id] = (token, gate)

        workflow.status = WorkflowStatus.RUNNING
        workflow.metrics.start_time = utcnow()
        started = time.perf_counter()
        logger.info(f"Workflow {workflow_id} started")
        await self._event_bus.publish(EventType.WORKFLOW_STARTED, {
            "workflow_id": workflow_id,
            "task": task,
            "timestamp": workflow.metrics.start_time.isoformat(),
        })

        stage_count = 0
        try:
            pattern = self._catalog.require(workflow.coordination_pattern)
            stage_count = len(pattern.stages)
            checkpoint = make_checkpoint(token, gate)
            result = await self._executor.run(workflow, pattern, task, context, checkpoint)
            # A pause requested during the last batch holds here
            await checkpoint()
        except (Exception, asyncio.CancelledError) as e:
            duration_ms = (time.perf_counter() - started) * 1000
            workflow.status = WorkflowStatus.FAILED
            workflow.metrics.end_time = utcnow()
            workflow.metrics.duration_ms = duration_ms
            workflow.error = create_error_context(e).to_dict()
            logger.error(f"Workflow {workflow_id} failed after {duration_ms:.0f}ms: {e}")
            await self._event_bus.publish(EventType.WORKFLOW_FAILED, {
                "workflow_id": workflow_id,
                "error": workflow.error,
                "timestamp": workflow.metrics.end_time.isoformat(),
            })
            raise
        finally:
            self._controls.pop(workflow_id, None)

        duration_ms = (time.perf_counter() - started) * 1000
        workflow.status = WorkflowStatus.COMPLETED
        workflow.metrics.end_time = utcnow()
        workflow.metrics.duration_ms = duration_ms
        workflow.metrics.quality = assess_result_quality(result)
        workflow.metrics.efficiency = calculate_efficiency(
            duration_ms, stage_count, self._settings.adaptive_stage_budget_ms
        )
        workflow.result = result

        logger.info(
            f"Workflow {workflow_id} completed in {duration_ms:.0f}ms "
            f"(quality={workflow.metrics.quality:.2f})"
        )
        await self._event_bus.publish(EventType.WORKFLOW_COMPLETED, {
            "workflow_id": workflow_id,
            "result": result.to_dict(),
            "duration_ms": duration_ms,
            "timestamp": workflow.metrics.end_time.isoformat(),
        })
        return result

    # ------------------------------------------------------------------
    # Pause / resume / cancel
    # ------------------------------------------------------------------

    async def pause_workflow(self, workflow_id: str) -> None:
        """Hold a running workflow at its next stage boundary."""
        workflow = self._require(workflow_id)
        if workflow.status != WorkflowStatus.RUNNING or workflow_id not in self._controls:
            raise WorkflowStateError(
                f"Cannot pause workflow {workflow_id} in state {workflow.status.value}",
                details={"workflow_id": workflow_id, "status": workflow.status.value},
            )
        _, gate = self._controls[workflow_id]
        gate.pause()
        workflow.status = WorkflowStatus.PAUSED
        logger.info(f"Workflow {workflow_id} paused")
        await self._event_bus.publish(EventType.WORKFLOW_PAUSED, {
            "workflow_id": workflow_id,
            "timestamp": utcnow().isoformat(),
        })

    async def resume_workflow(self, workflow_id: str) -> None:
        workflow = self._require(workflow_id)
        if workflow.status != WorkflowStatus.PAUSED or workflow_id not in self._controls:
            raise WorkflowStateError(
                f"Cannot resume workflow {workflow_id} in state {workflow.status.value}",
                details={"workflow_id": workflow_id, "status": workflow.status.value},
            )
        _, gate = self._controls[workflow_id]
        workflow.status = WorkflowStatus.RUNNING
        gate.resume()
        logger.info(f"Workflow {workflow_id} resumed")
        await self._event_bus.publish(EventType.WORKFLOW_RESUMED, {
            "workflow_id": workflow_id,
            "timestamp": utcnow().isoformat(),
        })

    def cancel_workflow(self, workflow_id: str, reason: Optional[str] = None) -> None:
        """Request cancellation; a paused workflow is released so it can observe it."""
        workflow = self._require(workflow_id)
        controls = self._controls.get(workflow_id)
        if controls is None:
            raise WorkflowStateError(
                f"Workflow {workflow_id} is not executing ({workflow.status.value})",
                details={"workflow_id": workflow_id, "status": workflow.status.value},
            )
        token, gate = controls
        token.cancel(reason)
        gate.resume()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _require(self, workflow_id: str) -> Workflow:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        return self._workflows.get(workflow_id)

    def list_workflows(self, status: Optional[WorkflowStatus] = None) -> List[Workflow]:
        return [w for w in self._workflows.values() if status is None or w.status == status]

    def stats(self) -> Dict[str, Any]:
        by_status: Dict[str, int] = {s.value: 0 for s in WorkflowStatus}
        for workflow in self._workflows.values():
            by_status[workflow.status.value] += 1
        return {"total": len(self._workflows), "by_status": by_status}
