"""Tests for the coordination strategies (flowhive/hive/topology.py)."""

import pytest

from flowhive.exceptions_unified import (
    AgentNotFoundError,
    ConfigurationError,
    TaskExecutionError,
)
from flowhive.event_bus import InMemoryEventBus
from flowhive.interfaces.event_bus import EventType
from flowhive.interfaces.task_runner import TaskOutcome
from flowhive.hive.models import (
    Agent,
    AgentRole,
    AgentSpec,
    AgentStatus,
    MessageType,
    StageResult,
)
from flowhive.hive.patterns import CoordinationPattern
from flowhive.hive.topology import (
    mesh_consensus,
    plan_delegation,
    select_agent_for_stage,
    select_best_approaches,
    split_swarm,
)


def _pattern(kind: str, stages=("a", "b", "c")) -> CoordinationPattern:
    return CoordinationPattern.build(f"test-{kind}", "test", stages, kind)


def _stage(agent_id: str, quality: float, confidence: float = 1.0) -> StageResult:
    return StageResult(
        stage="s",
        agent_id=agent_id,
        output=f"out-{agent_id}",
        quality=quality,
        confidence=confidence,
        duration_ms=1.0,
    )


# --- Pure helpers ---


def test_select_agent_for_stage_sums_character_codes():
    # "a" = 97 -> 97 % 2 = 1
    assert select_agent_for_stage(["x", "y"], "a") == "y"
    assert select_agent_for_stage(["x", "y"], "b") == "x"
    assert select_agent_for_stage(["x", "y", "z"], "ab") == ["x", "y", "z"][(97 + 98) % 3]


def test_select_agent_for_stage_is_stable():
    agents = ["a1", "a2", "a3", "a4"]
    picks = {select_agent_for_stage(agents, "implementation") for _ in range(5)}
    assert len(picks) == 1


def test_select_agent_for_stage_rejects_empty_agent_list():
    with pytest.raises(ConfigurationError):
        select_agent_for_stage([], "a")


def test_split_swarm_of_ten():
    explorers, exploiters = split_swarm([f"a{i}" for i in range(10)], 0.3)
    assert len(explorers) == 3
    assert len(exploiters) == 7
    assert explorers == ["a0", "a1", "a2"]


def test_split_swarm_small_groups():
    assert split_swarm(["solo"], 0.3) == (["solo"], [])
    explorers, exploiters = split_swarm(["a", "b", "c", "d"], 0.3)
    assert (len(explorers), len(exploiters)) == (2, 2)


def test_select_best_approaches_ranks_by_quality_times_confidence():
    results = [_stage("a", 0.9, 0.5), _stage("b", 0.6, 1.0), _stage("c", 0.8, 0.9), _stage("d", 0.1)]
    best = select_best_approaches(results, 3)
    assert [r.agent_id for r in best] == ["c", "b", "a"]


def test_mesh_consensus_filters_missing_contributions():
    result = mesh_consensus([_stage("a", 0.6), None, _stage("b", 0.9)], agent_count=3)
    assert result.stages == 2
    assert result.output == "out-b"
    assert result.quality == pytest.approx(0.75)
    assert result.metadata["non_responding"] == 1


def test_mesh_consensus_with_nothing_left_fails():
    with pytest.raises(TaskExecutionError):
        mesh_consensus([None, None], agent_count=2)


def test_plan_delegation_prefers_capability_match():
    queen = Agent(id="q", type="project-manager", role=AgentRole.QUEEN)
    dev = Agent(id="dev", type="developer", role=AgentRole.WORKER,
                capabilities=frozenset({"coding", "testing"}))
    analyst = Agent(id="an", type="analyst", role=AgentRole.WORKER,
                    capabilities=frozenset({"analysis", "research"}))
    plan = plan_delegation(["analysis", "unit-testing", "execution"], queen, [dev, analyst])
    assert plan[0] == ("analysis", "an")
    assert plan[1] == ("unit-testing", "dev")
    # No match: least-loaded first, both have one stage so the first listed wins
    assert plan[2] == ("execution", "dev")


def test_plan_delegation_without_workers_uses_queen():
    queen = Agent(id="q", type="project-manager", role=AgentRole.QUEEN)
    assert plan_delegation(["a", "b"], queen, []) == [("a", "q"), ("b", "q")]


# --- Linear ---


async def test_linear_runs_stages_in_order_with_accumulated_context(executor, runner, make_workflow):
    wf = await make_workflow([("developer", AgentRole.WORKER), ("analyst", AgentRole.WORKER)])

    result = await executor.run(wf, _pattern("linear"), "build it", {"seed": 1})

    assert runner.stages == ["a", "b", "c"]
    assert runner.calls[0].stage_task == "a: build it"
    assert set(runner.calls[2].context) == {"seed", "a", "b"}
    assert runner.calls[2].context["a"] == result.results[0].output
    assert result.success is True
    assert result.stages == 3
    assert result.coordination == "linear"
    assert result.summary == "Completed 3 stages successfully"


async def test_linear_uses_hash_assignment(executor, runner, make_workflow):
    wf = await make_workflow([("developer", AgentRole.WORKER), ("analyst", AgentRole.WORKER)])
    await executor.run(wf, _pattern("linear"), "t")
    assert [c.agent_id for c in runner.calls] == [
        select_agent_for_stage(wf.agents, s) for s in ("a", "b", "c")
    ]


async def test_linear_is_fail_fast(executor, runner, make_workflow):
    runner.fail_on = {"b"}
    wf = await make_workflow([("developer", AgentRole.WORKER)])

    with pytest.raises(TaskExecutionError) as exc_info:
        await executor.run(wf, _pattern("linear"), "t")

    assert runner.stages == ["a", "b"]
    assert exc_info.value.stage == "b"
    assert exc_info.value.agent_id == wf.agents[0]
    assert isinstance(exc_info.value.__cause__, RuntimeError)


async def test_linear_does_not_mutate_caller_context(executor, make_workflow):
    wf = await make_workflow([("developer", AgentRole.WORKER)])
    context = {"seed": 1}
    await executor.run(wf, _pattern("linear"), "t", context)
    assert context == {"seed": 1}


async def test_linear_missing_agent_raises_not_found(executor, make_workflow):
    wf = await make_workflow([], extra_ids=["agent-ghost-000000000000"])
    with pytest.raises(AgentNotFoundError):
        await executor.run(wf, _pattern("linear"), "t")


# --- Parallel ---


async def test_parallel_aggregates_quality_and_count(executor, runner, make_workflow):
    runner.quality = 1.0
    wf = await make_workflow([("developer", AgentRole.WORKER)] * 3)

    result = await executor.run(wf, _pattern("parallel"), "t")

    assert result.quality == 1.0
    assert result.stages == 3
    assert sorted(runner.stages) == ["a", "b", "c"]


async def test_parallel_shares_unmodified_context(executor, runner, make_workflow):
    wf = await make_workflow([("developer", AgentRole.WORKER)] * 2)
    await executor.run(wf, _pattern("parallel"), "t", {"seed": 1})
    assert all(call.context == {"seed": 1} for call in runner.calls)


async def test_parallel_failure_carries_partial_results(executor, runner, make_workflow):
    runner.fail_on = {"b"}
    wf = await make_workflow([("developer", AgentRole.WORKER)] * 3)

    with pytest.raises(TaskExecutionError) as exc_info:
        await executor.run(wf, _pattern("parallel"), "t")

    # Every stage was launched and allowed to settle
    assert sorted(runner.stages) == ["a", "b", "c"]
    assert exc_info.value.stage == "b"
    assert sorted(r.stage for r in exc_info.value.partial_results) == ["a", "c"]


async def test_parallel_concurrent_completions_on_same_agent_are_all_counted(
    executor, registry, make_workflow
):
    wf = await make_workflow([("developer", AgentRole.WORKER)])
    pattern = _pattern("parallel", stages=[f"s{i}" for i in range(8)])

    await executor.run(wf, pattern, "t")

    agent = registry.get(wf.agents[0])
    assert agent.performance.tasks_completed == 8
    assert agent.performance.success_rate == 1.0
    assert agent.status == AgentStatus.ACTIVE


# --- Hierarchical ---


async def test_hierarchical_without_queen_fails_before_any_call(executor, runner, make_workflow):
    wf = await make_workflow([("developer", AgentRole.WORKER)] * 2)

    with pytest.raises(ConfigurationError, match="No queen agent found"):
        await executor.run(wf, _pattern("hierarchical"), "t")

    assert runner.calls == []


async def test_hierarchical_executes_queen_plan(executor, runner, message_bus, make_workflow):
    wf = await make_workflow([
        AgentSpec("project-manager", AgentRole.QUEEN, frozenset({"planning"})),
        AgentSpec("developer", AgentRole.WORKER, frozenset({"coding", "testing"})),
        AgentSpec("analyst", AgentRole.WORKER, frozenset({"analysis"})),
    ])
    queen_id, dev_id, analyst_id = wf.agents
    pattern = _pattern("hierarchical", stages=("analysis", "testing", "deployment"))

    result = await executor.run(wf, pattern, "ship")

    assert runner.stages == ["analysis", "testing", "deployment"]
    assert [c.agent_id for c in runner.calls] == [analyst_id, dev_id, dev_id]
    assert "analysis" in runner.calls[1].context
    assert result.metadata["queen"] == queen_id
    assert result.coordination == "hierarchical"

    orders = message_bus.receive(dev_id, message_type=MessageType.COORDINATION)
    assert [m.content["stage"] for m in orders] == ["testing", "deployment"]
    assert all(m.sender == queen_id for m in orders)


async def test_hierarchical_queen_alone_takes_every_stage(executor, runner, make_workflow):
    wf = await make_workflow([("project-manager", AgentRole.QUEEN)])
    await executor.run(wf, _pattern("hierarchical"), "t")
    assert {c.agent_id for c in runner.calls} == {wf.agents[0]}


# --- Mesh ---


async def test_mesh_tolerates_unresolvable_agent(executor, runner, make_workflow):
    wf = await make_workflow(
        [("developer", AgentRole.WORKER)] * 2,
        extra_ids=["agent-ghost-000000000000"],
    )

    result = await executor.run(wf, _pattern("mesh"), "review")

    assert result.success is True
    assert result.stages == 2
    assert len(runner.calls) == 2
    assert all(c.stage_task == "mesh: review" for c in runner.calls)
    assert runner.calls[0].context["mesh_peers"] == wf.agents


async def test_mesh_tolerates_failing_agent(executor, runner, make_workflow):
    wf = await make_workflow([("developer", AgentRole.WORKER)] * 3)
    failing = wf.agents[1]

    def handler(agent, stage_task, context):
        if agent.id == failing:
            raise RuntimeError("offline")
        return {"output": agent.id, "quality": 0.9}

    runner.handler = handler
    result = await executor.run(wf, _pattern("mesh"), "t")
    assert result.stages == 2
    assert failing not in {r.agent_id for r in result.results}


async def test_mesh_selects_highest_weighted_output(executor, runner, make_workflow):
    wf = await make_workflow([("developer", AgentRole.WORKER)] * 3)
    scores = dict(zip(wf.agents, [(0.9, 0.5), (0.7, 1.0), (0.6, 0.6)]))

    def handler(agent, stage_task, context):
        quality, confidence = scores[agent.id]
        return TaskOutcome(output=agent.id, quality=quality, confidence=confidence)

    runner.handler = handler
    result = await executor.run(wf, _pattern("mesh"), "t")
    assert result.output == wf.agents[1]
    assert result.quality == pytest.approx((0.9 + 0.7 + 0.6) / 3)


# --- Swarm ---


async def test_swarm_of_ten_explores_three_and_exploits_seven(executor, runner, make_workflow):
    wf = await make_workflow([("developer", AgentRole.WORKER)] * 10)

    result = await executor.run(wf, _pattern("swarm"), "optimise")

    assert runner.stages.count("explore") == 3
    assert runner.stages.count("exploit") == 7
    assert result.metadata["exploration"] == 3
    assert result.metadata["exploitation"] == 7
    assert result.stages == 10
    explorer_ids = {c.agent_id for c in runner.calls if c.stage == "explore"}
    assert explorer_ids == set(wf.agents[:3])


async def test_swarm_exploiters_refine_best_approaches(executor, runner, make_workflow):
    wf = await make_workflow([("developer", AgentRole.WORKER)] * 5)
    explorer_quality = {wf.agents[0]: 0.5, wf.agents[1]: 0.9}

    def handler(agent, stage_task, context):
        if stage_task.startswith("explore"):
            return TaskOutcome(output=f"idea-{agent.id}", quality=explorer_quality[agent.id])
        return TaskOutcome(output=f"refined {context['approach']}", quality=0.95)

    runner.handler = handler
    result = await executor.run(wf, _pattern("swarm"), "t")

    exploit_calls = [c for c in runner.calls if c.stage == "exploit"]
    # Best approach first, then cycle through the ranked list
    assert [c.context["approach"] for c in exploit_calls] == [
        f"idea-{wf.agents[1]}",
        f"idea-{wf.agents[0]}",
        f"idea-{wf.agents[1]}",
    ]
    assert result.output.startswith("refined")
    assert result.quality == 0.95


async def test_swarm_without_exploiters_uses_best_exploration(executor, runner, make_workflow):
    wf = await make_workflow([("developer", AgentRole.WORKER)])
    result = await executor.run(wf, _pattern("swarm"), "t")
    assert runner.stages == ["explore"]
    assert result.output == runner.calls[0].stage + f" by {wf.agents[0]}"


async def test_swarm_is_fail_fast(executor, runner, make_workflow):
    runner.fail_on = {"explore"}
    wf = await make_workflow([("developer", AgentRole.WORKER)] * 4)
    with pytest.raises(TaskExecutionError):
        await executor.run(wf, _pattern("swarm"), "t")
    assert "exploit" not in runner.stages


# --- Stage execution side effects ---


async def test_stage_marks_agent_busy_while_running(executor, runner, registry, make_workflow):
    wf = await make_workflow([("developer", AgentRole.WORKER)])
    seen = []

    def handler(agent, stage_task, context):
        seen.append(registry.get(agent.id).status)
        return {"output": "ok"}

    runner.handler = handler
    await executor.run(wf, _pattern("linear", stages=("a",)), "t")

    assert seen == [AgentStatus.BUSY]
    assert registry.get(wf.agents[0]).status == AgentStatus.ACTIVE


async def test_failed_stage_records_failure(executor, runner, registry, make_workflow):
    runner.fail_on = {"b"}
    wf = await make_workflow([("developer", AgentRole.WORKER)])
    with pytest.raises(TaskExecutionError):
        await executor.run(wf, _pattern("linear"), "t")

    perf = registry.get(wf.agents[0]).performance
    assert perf.tasks_completed == 2
    assert perf.success_rate == pytest.approx(0.5)
    assert perf.average_quality == pytest.approx(0.45)


async def test_invalid_outcome_is_wrapped(executor, runner, make_workflow):
    runner.handler = lambda agent, stage_task, context: {"output": "x", "quality": 1.5}
    wf = await make_workflow([("developer", AgentRole.WORKER)])
    with pytest.raises(TaskExecutionError):
        await executor.run(wf, _pattern("linear", stages=("a",)), "t")


async def test_stage_events_and_hive_updates(executor, event_bus, message_bus, runner, make_workflow):
    wf = await make_workflow([("developer", AgentRole.WORKER), ("qa", AgentRole.WORKER)])
    stages, updates = [], []
    await event_bus.subscribe(EventType.STAGE_COMPLETED, stages.append)
    await event_bus.subscribe(EventType.HIVE_UPDATE, updates.append)

    await executor.run(wf, _pattern("linear"), "t")

    assert [e["stage"] for e in stages] == ["a", "b", "c"]
    assert all(e["workflow_id"] == wf.id for e in stages)
    assert [u["type"] for u in updates] == ["result"] * 3
    assert updates[0]["content"]["type"] == "task-completed"
    assert updates[0]["content"]["performance"]["tasks_completed"] == 1

    # The reporting agent never receives its own update
    reporter = stages[0]["agent_id"]
    other = next(a for a in wf.agents if a != reporter)
    inbox = message_bus.receive(other, message_type=MessageType.RESULT)
    assert any(m.sender == reporter for m in inbox)
    own = message_bus.receive(reporter, message_type=MessageType.RESULT)
    assert all(m.sender != reporter for m in own)


async def test_failed_stage_broadcasts_high_priority_alert(executor, event_bus, runner, make_workflow):
    runner.fail_on = {"a"}
    wf = await make_workflow([("developer", AgentRole.WORKER)])
    updates = []
    await event_bus.subscribe(EventType.HIVE_UPDATE, updates.append)

    with pytest.raises(TaskExecutionError):
        await executor.run(wf, _pattern("linear"), "t")

    assert updates[-1]["type"] == "alert"
    assert updates[-1]["priority"] == "high"
    assert updates[-1]["content"]["error"] == "a exploded"


def test_executor_covers_every_kind(registry, message_bus, runner, settings):
    from flowhive.hive.patterns import CoordinationKind
    from flowhive.hive.topology import TopologyExecutor

    executor = TopologyExecutor(registry, message_bus, InMemoryEventBus(), runner, settings)
    assert set(executor._strategies) == set(CoordinationKind)


async def test_runner_raised_task_error_is_still_recorded(executor, event_bus, runner, registry, make_workflow):
    def refuse(agent, stage_task, context):
        raise TaskExecutionError("upstream refused", stage="nested", agent_id=agent.id)

    runner.handler = refuse
    wf = await make_workflow([("developer", AgentRole.WORKER)])
    updates = []
    await event_bus.subscribe(EventType.HIVE_UPDATE, updates.append)

    with pytest.raises(TaskExecutionError) as exc_info:
        await executor.run(wf, _pattern("linear", stages=("a",)), "t")

    assert exc_info.value.stage == "a"
    assert isinstance(exc_info.value.__cause__, TaskExecutionError)
    perf = registry.get(wf.agents[0]).performance
    assert perf.tasks_completed == 1
    assert perf.success_rate == 0.0
    assert updates[-1]["content"]["type"] == "task-failed"
    assert updates[-1]["content"]["error"] == "upstream refused"
