"""Shared fixtures: a recording TaskRunner stub and freshly wired hive components."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from flowhive.config.settings import Settings
from flowhive.event_bus import InMemoryEventBus
from flowhive.interfaces.task_runner import TaskOutcome
from flowhive.hive.agent_registry import AgentRegistry
from flowhive.hive.engine import CoordinationEngine
from flowhive.hive.message_bus import MessageBus
from flowhive.hive.models import Agent, AgentSpec, Topology, Workflow
from flowhive.hive.topology import TopologyExecutor


@dataclass
class RunnerCall:
    agent_id: str
    agent_type: str
    stage_task: str
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def stage(self) -> str:
        return self.stage_task.split(":", 1)[0]


class StubTaskRunner:
    """Records every call; answers with a fixed-quality TaskOutcome.

    ``fail_on`` lists stage names that raise; ``handler`` (sync or async)
    overrides the answer entirely.
    """

    def __init__(
        self,
        quality: float = 0.9,
        confidence: float = 0.9,
        fail_on: Sequence[str] = (),
        handler: Optional[Callable[..., Any]] = None,
        delay: float = 0.0,
    ):
        self.quality = quality
        self.confidence = confidence
        self.fail_on = set(fail_on)
        self.handler = handler
        self.delay = delay
        self.calls: List[RunnerCall] = []

    async def execute(self, agent: Agent, stage_task: str, context: Dict[str, Any]) -> Any:
        call = RunnerCall(agent.id, agent.type, stage_task, dict(context))
        self.calls.append(call)
        if self.delay:
            await asyncio.sleep(self.delay)
        if call.stage in self.fail_on:
            raise RuntimeError(f"{call.stage} exploded")
        if self.handler is not None:
            result = self.handler(agent, stage_task, context)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        return TaskOutcome(
            output=f"{call.stage} by {agent.id}",
            quality=self.quality,
            confidence=self.confidence,
        )

    @property
    def stages(self) -> List[str]:
        return [c.stage for c in self.calls]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        log_format="text",
        heartbeat_interval_seconds=30.0,
    )


@pytest.fixture
def runner() -> StubTaskRunner:
    return StubTaskRunner()


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def message_bus(event_bus, settings) -> MessageBus:
    return MessageBus(event_bus, settings.message_history_limit, settings.message_inbox_limit)


@pytest.fixture
def registry(event_bus, message_bus) -> AgentRegistry:
    return AgentRegistry(event_bus, message_bus)


@pytest.fixture
def executor(registry, message_bus, event_bus, runner, settings) -> TopologyExecutor:
    return TopologyExecutor(registry, message_bus, event_bus, runner, settings)


@pytest.fixture
def engine(runner, settings) -> CoordinationEngine:
    return CoordinationEngine(runner, settings=settings)


@pytest.fixture
def make_workflow(registry):
    """Spawn agents from (type, role) pairs and wrap them in a pending workflow."""
    counter = {"n": 0}

    async def _make(
        specs: Sequence[Any],
        pattern: str = "test-pattern",
        extra_ids: Sequence[str] = (),
    ) -> Workflow:
        agent_ids = []
        for spec in specs:
            if isinstance(spec, AgentSpec):
                agent_ids.append(await registry.spawn(spec))
            else:
                agent_type, role = spec
                agent_ids.append(await registry.spawn(AgentSpec(type=agent_type, role=role)))
        counter["n"] += 1
        return Workflow(
            id=f"workflow-test-{counter['n']}",
            name="test",
            topology=Topology.ADAPTIVE,
            agents=agent_ids + list(extra_ids),
            coordination_pattern=pattern,
        )

    return _make

