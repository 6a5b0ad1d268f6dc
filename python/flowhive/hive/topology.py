"""
Topology executor: the six coordination strategies.

Every strategy funnels its TaskRunner calls through ``_execute_stage`` so
agent status, performance, hive updates and ``stage-completed`` events are
handled identically whatever the topology.
"""

import asyncio
import math
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
import logging

from flowhive.config.settings import Settings, get_settings
from flowhive.enhanced_logging import track_performance
from flowhive.exceptions_unified import (
    ConfigurationError,
    FlowHiveException,
    TaskExecutionError,
    WorkflowCancelledError,
)
from flowhive.interfaces.event_bus import EventType, IEventBus
from flowhive.interfaces.task_runner import ITaskRunner, coerce_outcome
from flowhive.hive.adaptive import AdaptiveController
from flowhive.hive.agent_registry import AgentRegistry
from flowhive.hive.cancellation import Checkpoint, no_checkpoint
from flowhive.hive.message_bus import TASK_COMPLETED, TASK_FAILED, MessageBus
from flowhive.hive.models import (
    Agent,
    AgentRole,
    Message,
    MessagePriority,
    MessageType,
    StageResult,
    Workflow,
    WorkflowResult,
    utcnow,
)
from flowhive.hive.patterns import CoordinationKind, CoordinationPattern
from flowhive.hive.scoring import mean

logger = logging.getLogger(__name__)

Strategy = Callable[
    [Workflow, CoordinationPattern, str, Dict[str, Any], Checkpoint],
    Awaitable[WorkflowResult],
]

MESH_STAGE = "mesh"
EXPLORE_STAGE = "explore"
EXPLOIT_STAGE = "exploit"


# ============================================================================
# Pure helpers
# ============================================================================

def select_agent_for_stage(agent_ids: Sequence[str], stage: str) -> str:
    """Deterministic stage → agent assignment: sum of character codes mod N."""
    if not agent_ids:
        raise ConfigurationError("Workflow has no agents to assign stages to")
    index = sum(ord(c) for c in stage) % len(agent_ids)
    return agent_ids[index]


def stage_task(stage: str, task: str) -> str:
    return f"{stage}: {task}"


def split_swarm(agent_ids: Sequence[str], exploration_ratio: float = 0.3) -> Tuple[List[str], List[str]]:
    """
    Split a swarm into explorers (first ``ceil(ratio * N)``) and exploiters.

    The product is rounded before ``ceil`` so float noise (0.3 * 10 is
    3.0000000000000004) does not add an explorer.
    """
    n = len(agent_ids)
    count = math.ceil(round(exploration_ratio * n, 9))
    count = max(1, min(n, count)) if n else 0
    return list(agent_ids[:count]), list(agent_ids[count:])


def select_best_approaches(results: Sequence[StageResult], count: int = 3) -> List[StageResult]:
    """Top ``count`` results by quality × confidence; ties keep input order."""
    return sorted(results, key=lambda r: r.score, reverse=True)[:count]


def plan_delegation(
    stages: Sequence[str],
    queen: Agent,
    workers: Sequence[Agent],
) -> List[Tuple[str, str]]:
    """
    Queen's stage → agent plan.

    Workers whose capabilities share a token with the stage name win; among
    candidates the least-loaded one (then earliest listed) is chosen. With no
    workers the queen takes every stage herself.
    """
    if not workers:
        return [(stage, queen.id) for stage in stages]

    load: Dict[str, int] = {w.id: 0 for w in workers}
    plan: List[Tuple[str, str]] = []
    for stage in stages:
        tokens = set(stage.split("-")) | {stage}
        candidates = [w for w in workers if w.capabilities & tokens] or list(workers)
        chosen = min(candidates, key=lambda w: load[w.id])
        load[chosen.id] += 1
        plan.append((stage, chosen.id))
    return plan


def aggregate_stage_results(coordination: str, results: List[StageResult]) -> WorkflowResult:
    """Collapse a stage collection into one successful result."""
    return WorkflowResult(
        success=True,
        coordination=coordination,
        stages=len(results),
        results=results,
        quality=mean(r.quality for r in results),
        duration_ms=sum(r.duration_ms for r in results),
        summary=f"Completed {len(results)} stages successfully",
    )


def mesh_consensus(contributions: Sequence[Optional[StageResult]], agent_count: int) -> WorkflowResult:
    """
    Quality-weighted consensus over mesh contributions.

    ``None`` entries (agents that did not respond) are dropped first. The
    selected output is the one with the highest quality × confidence.
    """
    valid = [c for c in contributions if c is not None]
    if not valid:
        raise TaskExecutionError(
            "Mesh coordination received no contributions",
            stage=MESH_STAGE,
            agent_id="",
        )
    best = max(valid, key=lambda c: c.score)
    return WorkflowResult(
        success=True,
        coordination=CoordinationKind.MESH.value,
        stages=len(valid),
        results=valid,
        quality=mean(c.quality for c in valid),
        duration_ms=sum(c.duration_ms for c in valid),
        output=best.output,
        summary=f"Mesh consensus from {len(valid)} of {agent_count} agents",
        metadata={
            "selected_agent": best.agent_id,
            "contributors": len(valid),
            "non_responding": agent_count - len(valid),
        },
    )


def swarm_convergence(
    exploration: List[StageResult],
    exploitation: List[StageResult],
    best_approaches: List[StageResult],
) -> WorkflowResult:
    """Best refined result wins; without exploiters the best exploration does."""
    candidates = exploitation or exploration
    best = max(candidates, key=lambda r: r.score)
    results = exploration + exploitation
    return WorkflowResult(
        success=True,
        coordination=CoordinationKind.SWARM.value,
        stages=len(results),
        results=results,
        quality=best.quality,
        duration_ms=sum(r.duration_ms for r in results),
        output=best.output,
        summary=(
            f"Swarm converged after {len(exploration)} exploration and "
            f"{len(exploitation)} exploitation attempts"
        ),
        metadata={
            "exploration": len(exploration),
            "exploitation": len(exploitation),
            "best_approaches": [r.agent_id for r in best_approaches],
            "selected_agent": best.agent_id,
        },
    )


# ============================================================================
# Executor
# ============================================================================

class TopologyExecutor:
    """Runs a coordination pattern over a workflow's agents"""

    def __init__(
        self,
        registry: AgentRegistry,
        message_bus: MessageBus,
        event_bus: IEventBus,
        task_runner: ITaskRunner,
        settings: Optional[Settings] = None,
    ):
        self._registry = registry
        self._message_bus = message_bus
        self._event_bus = event_bus
        self._task_runner = task_runner
        self._settings = settings or get_settings()
        self._adaptive = AdaptiveController.from_settings(self.run_strategy, self._settings)

        self._strategies: Dict[CoordinationKind, Strategy] = {
            CoordinationKind.LINEAR: self._run_linear,
            CoordinationKind.PARALLEL: self._run_parallel,
            CoordinationKind.HIERARCHICAL: self._run_hierarchical,
            CoordinationKind.MESH: self._run_mesh,
            CoordinationKind.ADAPTIVE: self._adaptive.run,
            CoordinationKind.SWARM: self._run_swarm,
        }
        missing = set(CoordinationKind) - set(self._strategies)
        if missing:
            raise ConfigurationError(
                f"No strategy registered for: {sorted(k.value for k in missing)}"
            )

    @property
    def adaptive(self) -> AdaptiveController:
        return self._adaptive

    @track_performance(operation="TopologyExecutor.run")
    async def run(
        self,
        workflow: Workflow,
        pattern: CoordinationPattern,
        task: str,
        context: Optional[Dict[str, Any]] = None,
        checkpoint: Optional[Checkpoint] = None,
    ) -> WorkflowResult:
        """Execute ``pattern`` for ``workflow`` under the pattern's coordination kind."""
        return await self.run_strategy(
            pattern.coordination,
            workflow,
            pattern,
            task,
            dict(context or {}),
            checkpoint or no_checkpoint,
        )

    async def run_strategy(
        self,
        kind: CoordinationKind,
        workflow: Workflow,
        pattern: CoordinationPattern,
        task: str,
        context: Dict[str, Any],
        checkpoint: Checkpoint,
    ) -> WorkflowResult:
        logger.debug(f"Workflow {workflow.id}: running '{pattern.name}' as {kind.value}")
        return await self._strategies[kind](workflow, pattern, task, context, checkpoint)

    # ------------------------------------------------------------------
    # Stage execution
    # ------------------------------------------------------------------

    async def _execute_stage(
        self,
        workflow: Workflow,
        stage: str,
        agent_id: str,
        task_text: str,
        context: Dict[str, Any],
    ) -> StageResult:
        agent = self._registry.require(agent_id)
        await self._registry.begin_task(agent_id)
        started = time.perf_counter()
        try:
            try:
                raw = await self._task_runner.execute(agent, task_text, dict(context))
                outcome = coerce_outcome(raw)
            except WorkflowCancelledError:
                raise
            except Exception as e:
                duration_ms = (time.perf_counter() - started) * 1000
                await self._registry.record_completion(agent_id, duration_ms, 0.0, False)
                await self._message_bus.broadcast_hive_update(
                    {
                        "type": TASK_FAILED,
                        "agent_id": agent_id,
                        "task": task_text,
                        "error": str(e),
                    },
                    sender=agent_id,
                )
                logger.warning(f"Workflow {workflow.id}: stage '{stage}' failed on {agent_id}: {e}")
                raise TaskExecutionError(
                    f"Stage '{stage}' failed on agent {agent_id}: {e}",
                    stage=stage,
                    agent_id=agent_id,
                ) from e
        finally:
            await self._registry.end_task(agent_id)

        duration_ms = (time.perf_counter() - started) * 1000
        performance = await self._registry.record_completion(
            agent_id, duration_ms, outcome.quality, True
        )
        result = StageResult(
            stage=stage,
            agent_id=agent_id,
            output=outcome.output,
            quality=outcome.quality,
            confidence=outcome.confidence,
            duration_ms=duration_ms,
            next_actions=list(outcome.next_actions),
        )
        await self._message_bus.broadcast_hive_update(
            {
                "type": TASK_COMPLETED,
                "agent_id": agent_id,
                "task": task_text,
                "result": outcome.model_dump(),
                "performance": performance.to_dict(),
            },
            sender=agent_id,
        )
        await self._event_bus.publish(EventType.STAGE_COMPLETED, {
            "workflow_id": workflow.id,
            "stage": stage,
            "agent_id": agent_id,
            "result": result.to_dict(),
            "timestamp": utcnow().isoformat(),
        })
        return result

    async def _run_assignments(
        self,
        workflow: Workflow,
        assignments: Sequence[Tuple[str, str]],
        task: str,
        context: Dict[str, Any],
        checkpoint: Checkpoint,
        coordination: CoordinationKind,
    ) -> WorkflowResult:
        """Sequential stages; each later stage sees every earlier output."""
        current = dict(context)
        results: List[StageResult] = []
        for stage, agent_id in assignments:
            await checkpoint()
            result = await self._execute_stage(
                workflow, stage, agent_id, stage_task(stage, task), current
            )
            results.append(result)
            current[stage] = result.output
        return aggregate_stage_results(coordination.value, results)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _run_linear(self, workflow, pattern, task, context, checkpoint) -> WorkflowResult:
        assignments = [
            (stage, select_agent_for_stage(workflow.agents, stage)) for stage in pattern.stages
        ]
        return await self._run_assignments(
            workflow, assignments, task, context, checkpoint, CoordinationKind.LINEAR
        )

    async def _run_parallel(self, workflow, pattern, task, context, checkpoint) -> WorkflowResult:
        await checkpoint()
        assignments = [
            (stage, select_agent_for_stage(workflow.agents, stage)) for stage in pattern.stages
        ]
        outcomes = await asyncio.gather(
            *(
                self._execute_stage(workflow, stage, agent_id, stage_task(stage, task), context)
                for stage, agent_id in assignments
            ),
            return_exceptions=True,
        )

        for outcome in outcomes:
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome

        completed = [o for o in outcomes if isinstance(o, StageResult)]
        for (stage, agent_id), outcome in zip(assignments, outcomes):
            if not isinstance(outcome, BaseException):
                continue
            if isinstance(outcome, TaskExecutionError):
                outcome.partial_results = completed
                raise outcome
            error = TaskExecutionError(
                f"Stage '{stage}' failed on agent {agent_id}: {outcome}",
                stage=stage,
                agent_id=agent_id,
                partial_results=completed,
            )
            if isinstance(outcome, FlowHiveException):
                error.details["cause"] = outcome.to_dict()
            raise error from outcome

        return aggregate_stage_results(CoordinationKind.PARALLEL.value, completed)

    async def _run_hierarchical(self, workflow, pattern, task, context, checkpoint) -> WorkflowResult:
        agents = self._registry.list_by_ids(workflow.agents)
        queens = [a for a in agents if a.role == AgentRole.QUEEN]
        if not queens:
            raise ConfigurationError(
                "No queen agent found for hierarchical coordination",
                details={"workflow_id": workflow.id},
            )
        queen = queens[0]
        if len(queens) > 1:
            logger.warning(
                f"Workflow {workflow.id} has {len(queens)} queens; {queen.id} coordinates"
            )

        workers = [a for a in agents if a.id != queen.id and a.role != AgentRole.QUEEN]
        plan = plan_delegation(pattern.stages, queen, workers)

        for stage, agent_id in plan:
            await self._message_bus.send(agent_id, Message(
                sender=queen.id,
                recipient=agent_id,
                type=MessageType.COORDINATION,
                content={
                    "workflow_id": workflow.id,
                    "stage": stage,
                    "task": stage_task(stage, task),
                },
                priority=MessagePriority.HIGH,
            ))

        result = await self._run_assignments(
            workflow, plan, task, context, checkpoint, CoordinationKind.HIERARCHICAL
        )
        result.metadata["queen"] = queen.id
        result.metadata["plan"] = [{"stage": s, "agent_id": a} for s, a in plan]
        return result

    async def _run_mesh(self, workflow, pattern, task, context, checkpoint) -> WorkflowResult:
        await checkpoint()
        shared = dict(context)
        shared["mesh_peers"] = list(workflow.agents)

        async def contribute(agent_id: str) -> Optional[StageResult]:
            if self._registry.get(agent_id) is None:
                logger.warning(f"Workflow {workflow.id}: mesh peer {agent_id} no longer registered")
                return None
            try:
                return await self._execute_stage(
                    workflow, MESH_STAGE, agent_id, stage_task(MESH_STAGE, task), shared
                )
            except TaskExecutionError:
                return None

        contributions = await asyncio.gather(*(contribute(a) for a in workflow.agents))
        return mesh_consensus(contributions, len(workflow.agents))

    async def _run_swarm(self, workflow, pattern, task, context, checkpoint) -> WorkflowResult:
        explorers, exploiters = split_swarm(workflow.agents, self._settings.swarm_exploration_ratio)

        await checkpoint()
        exploration = list(await asyncio.gather(*(
            self._execute_stage(
                workflow, EXPLORE_STAGE, agent_id, stage_task(EXPLORE_STAGE, task), context
            )
            for agent_id in explorers
        )))
        best = select_best_approaches(exploration, self._settings.swarm_top_k)

        exploitation: List[StageResult] = []
        if exploiters:
            await checkpoint()
            exploitation = list(await asyncio.gather(*(
                self._execute_stage(
                    workflow,
                    EXPLOIT_STAGE,
                    agent_id,
                    stage_task(EXPLOIT_STAGE, task),
                    {**context, "approach": best[i % len(best)].output},
                )
                for i, agent_id in enumerate(exploiters)
            )))

        return swarm_convergence(exploration, exploitation, best)
