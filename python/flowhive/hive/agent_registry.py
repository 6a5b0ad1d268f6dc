"""
Agent registry: the single owner of every Agent record.

Callers only ever get copies back; all mutation goes through the registry,
and performance updates for one agent are serialized by a per-agent lock.
"""

import asyncio
import copy
import uuid
from typing import Any, Dict, Iterable, List, Optional
import logging

from flowhive.exceptions_unified import AgentNotFoundError
from flowhive.interfaces.event_bus import EventType, IEventBus
from flowhive.hive.message_bus import MessageBus
from flowhive.hive.models import (
    Agent,
    AgentPerformance,
    AgentSpec,
    AgentStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


def _running_mean(old: float, value: float, n: int) -> float:
    """Fold ``value`` into a mean over ``n`` samples (``n`` already includes it)."""
    return (old * (n - 1) + value) / n


class AgentRegistry:
    """Flat id-keyed store of hive agents."""

    def __init__(self, event_bus: IEventBus, message_bus: MessageBus):
        self._event_bus = event_bus
        self._message_bus = message_bus
        self._agents: Dict[str, Agent] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._in_flight: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    async def spawn(self, spec: AgentSpec) -> str:
        """
        Register a new agent and connect it to the hive.

        Not idempotent: every call allocates a fresh id.

        Returns:
            The new agent id
        """
        agent_id = f"agent-{spec.type}-{uuid.uuid4().hex[:12]}"
        agent = Agent(
            id=agent_id,
            type=spec.type,
            role=spec.role,
            capabilities=frozenset(spec.capabilities),
            status=AgentStatus.ACTIVE,
            performance=AgentPerformance(),
            last_heartbeat=utcnow(),
        )
        self._agents[agent_id] = agent
        self._locks[agent_id] = asyncio.Lock()
        self._in_flight[agent_id] = 0

        self._message_bus.connect(agent_id)
        agent.connected = True

        logger.info(f"Spawned agent {agent_id} ({spec.type}, {spec.role.value})")
        await self._event_bus.publish(EventType.AGENT_SPAWNED, {
            "agent_id": agent_id,
            "type": spec.type,
            "role": spec.role.value,
            "timestamp": utcnow().isoformat(),
        })
        return agent_id

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, agent_id: str) -> Optional[Agent]:
        agent = self._agents.get(agent_id)
        return copy.deepcopy(agent) if agent is not None else None

    def require(self, agent_id: str) -> Agent:
        agent = self.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def list_by_ids(self, agent_ids: Iterable[str]) -> List[Agent]:
        """Copies of the given agents, in order; unknown ids are skipped."""
        return [copy.deepcopy(self._agents[a]) for a in agent_ids if a in self._agents]

    def list_agents(self) -> List[Agent]:
        return [copy.deepcopy(a) for a in self._agents.values()]

    def _lookup(self, agent_id: str) -> Agent:
        try:
            return self._agents[agent_id]
        except KeyError:
            raise AgentNotFoundError(agent_id) from None

    # ------------------------------------------------------------------
    # Task lifecycle
    # ------------------------------------------------------------------

    async def begin_task(self, agent_id: str) -> None:
        agent = self._lookup(agent_id)
        async with self._locks[agent_id]:
            self._in_flight[agent_id] += 1
            if agent.status != AgentStatus.OFFLINE:
                agent.status = AgentStatus.BUSY

    async def end_task(self, agent_id: str) -> None:
        agent = self._lookup(agent_id)
        async with self._locks[agent_id]:
            self._in_flight[agent_id] = max(0, self._in_flight[agent_id] - 1)
            if self._in_flight[agent_id] == 0 and agent.status == AgentStatus.BUSY:
                agent.status = AgentStatus.ACTIVE

    async def record_completion(
        self,
        agent_id: str,
        duration_ms: float,
        quality: float,
        success: bool,
    ) -> AgentPerformance:
        """
        Fold one task outcome into the agent's running performance.

        Returns:
            Copy of the updated performance
        """
        agent = self._lookup(agent_id)
        async with self._locks[agent_id]:
            perf = agent.performance
            perf.tasks_completed += 1
            n = perf.tasks_completed
            perf.average_quality = _running_mean(perf.average_quality, quality, n)
            perf.avg_response_time_ms = _running_mean(perf.avg_response_time_ms, duration_ms, n)
            perf.success_rate = _running_mean(perf.success_rate, 1.0 if success else 0.0, n)
            return copy.copy(perf)

    async def set_status(self, agent_id: str, status: AgentStatus) -> None:
        agent = self._lookup(agent_id)
        async with self._locks[agent_id]:
            agent.status = status

    async def mark_offline(self, agent_id: str) -> None:
        await self.set_status(agent_id, AgentStatus.OFFLINE)
        self._message_bus.disconnect(agent_id)
        self._agents[agent_id].connected = False
        logger.info(f"Agent {agent_id} marked offline")

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    async def heartbeat_all(self) -> int:
        """
        Refresh ``last_heartbeat`` on every agent and emit their heartbeats.

        Returns:
            Number of agents beaten
        """
        now = utcnow()
        agent_ids = list(self._agents)
        for agent_id in agent_ids:
            self._agents[agent_id].last_heartbeat = now
            self._message_bus.post_heartbeat(agent_id)
            await self._event_bus.publish(EventType.HEARTBEAT, {
                "agent_id": agent_id,
                "timestamp": now.isoformat(),
            })
        return len(agent_ids)

    def stats(self) -> Dict[str, Any]:
        by_status: Dict[str, int] = {s.value: 0 for s in AgentStatus}
        by_role: Dict[str, int] = {}
        for agent in self._agents.values():
            by_status[agent.status.value] += 1
            by_role[agent.role.value] = by_role.get(agent.role.value, 0) + 1
        return {
            "total": len(self._agents),
            "by_status": by_status,
            "by_role": by_role,
        }
