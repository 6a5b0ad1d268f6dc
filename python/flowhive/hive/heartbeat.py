"""
Periodic hive heartbeat.

Runs as its own asyncio task, independent of any workflow: each tick
refreshes every agent's heartbeat and publishes a metrics snapshot.
"""

import asyncio
from typing import Any, Callable, Dict, Optional
import logging

from flowhive.interfaces.event_bus import EventType, IEventBus
from flowhive.hive.agent_registry import AgentRegistry
from flowhive.hive.models import utcnow

logger = logging.getLogger(__name__)


class HiveHeartbeat:
    """Background heartbeat loop for one engine instance"""

    def __init__(
        self,
        registry: AgentRegistry,
        event_bus: IEventBus,
        interval_seconds: float = 30.0,
        metrics_provider: Optional[Callable[[], Dict[str, Any]]] = None,
    ):
        self._registry = registry
        self._event_bus = event_bus
        self.interval_seconds = interval_seconds
        self._metrics_provider = metrics_provider
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the heartbeat loop"""
        if not self._running:
            self._running = True
            self._task = asyncio.create_task(self._loop())
            logger.info(f"Hive heartbeat started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the heartbeat loop"""
        if self._running:
            self._running = False
            if self._task:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
                self._task = None
            logger.info("Hive heartbeat stopped")

    async def tick(self) -> None:
        """One heartbeat: refresh agents, then publish hive metrics."""
        await self._registry.heartbeat_all()
        self.ticks += 1
        if self._metrics_provider is not None:
            metrics = dict(self._metrics_provider())
            metrics["timestamp"] = utcnow().isoformat()
            await self._event_bus.publish(EventType.METRICS_UPDATE, metrics)

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.tick()
            except Exception:
                logger.exception("Hive heartbeat tick failed")
