"""
Hive message bus.

Per-agent inbound queues plus a bus-wide log, both bounded. An inbox lives
only while its agent is connected. Broadcasts are also
surfaced to external observers as ``hive-update`` events.
"""

from collections import deque
from typing import Any, Deque, Dict, List, Optional, Set
import logging

from flowhive.interfaces.event_bus import EventType, IEventBus
from flowhive.hive.models import (
    BROADCAST,
    Message,
    MessagePriority,
    MessageType,
    PRIORITY_ORDER,
)

logger = logging.getLogger(__name__)

TASK_COMPLETED = "task-completed"
TASK_FAILED = "task-failed"


class MessageBus:
    """
    Inter-agent messaging for one engine instance.

    Features:
    - Connection tracking (only connected agents receive broadcasts)
    - Inbound queue per connected agent, drained in priority order and
      capped at ``inbox_limit`` (oldest messages are dropped first)
    - Bus-wide message log bounded by ``history_limit``
    """

    def __init__(
        self,
        event_bus: IEventBus,
        history_limit: int = 10000,
        inbox_limit: int = 1000,
    ):
        self._event_bus = event_bus
        self._connected: Set[str] = set()
        self._inbox_limit = inbox_limit
        self._queues: Dict[str, Deque[Message]] = {}
        self._history: Deque[Message] = deque(maxlen=history_limit)
        self._sent = 0
        self._broadcasts = 0

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def connect(self, agent_id: str) -> None:
        self._connected.add(agent_id)
        self._queues.setdefault(agent_id, deque(maxlen=self._inbox_limit))

    def disconnect(self, agent_id: str) -> None:
        """Stop delivering to ``agent_id`` and free its inbox."""
        self._connected.discard(agent_id)
        dropped = self._queues.pop(agent_id, None)
        if dropped:
            logger.debug(f"Hive: dropped {len(dropped)} pending messages for {agent_id}")

    def is_connected(self, agent_id: str) -> bool:
        return agent_id in self._connected

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def broadcast(self, message: Message) -> int:
        """
        Deliver to every connected agent except the sender.

        Returns:
            Number of inboxes the message was queued on
        """
        self._history.append(message)
        self._broadcasts += 1

        await self._event_bus.publish(EventType.HIVE_UPDATE, message.to_dict())

        delivered = 0
        for agent_id in sorted(self._connected):
            if agent_id == message.sender:
                continue
            self._queues[agent_id].append(message)
            delivered += 1

        logger.debug(
            f"Hive: {message.sender} → broadcast ({message.type.value}) "
            f"[{message.priority.value}] delivered={delivered}"
        )
        return delivered

    async def send(self, agent_id: str, message: Message) -> None:
        """Queue a message on a single agent's inbox; disconnected agents get nothing."""
        self._history.append(message)
        self._sent += 1
        queue = self._queues.get(agent_id)
        if queue is None:
            logger.debug(f"Hive: {agent_id} is not connected, message {message.id[:8]} not queued")
            return
        queue.append(message)
        logger.debug(
            f"Hive: {message.sender} → {agent_id} ({message.type.value}) "
            f"[{message.priority.value}] msg_id={message.id[:8]}"
        )

    async def broadcast_hive_update(
        self,
        update: Dict[str, Any],
        sender: str,
        priority: Optional[MessagePriority] = None,
    ) -> Message:
        """Wrap a task-completed / task-failed update and broadcast it."""
        failed = update.get("type") == TASK_FAILED
        message = Message(
            sender=sender,
            recipient=BROADCAST,
            type=MessageType.ALERT if failed else MessageType.RESULT,
            content=update,
            priority=priority or (MessagePriority.HIGH if failed else MessagePriority.MEDIUM),
        )
        await self.broadcast(message)
        return message

    def post_heartbeat(self, agent_id: str) -> Message:
        """Log a heartbeat from ``agent_id``; heartbeats are never queued."""
        message = Message(
            sender=agent_id,
            recipient=BROADCAST,
            type=MessageType.HEARTBEAT,
            content={"status": "alive"},
            priority=MessagePriority.LOW,
        )
        self._history.append(message)
        return message

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    def receive(
        self,
        agent_id: str,
        limit: Optional[int] = None,
        message_type: Optional[MessageType] = None,
    ) -> List[Message]:
        """
        Drain messages from an agent's inbox.

        Args:
            agent_id: Receiver
            limit: Maximum number of messages to drain
            message_type: Only drain messages of this type

        Returns:
            Messages ordered critical → low, FIFO within a priority
        """
        queue = self._queues.get(agent_id)
        if not queue:
            return []

        selected = [m for m in queue if message_type is None or m.type == message_type]
        # sorted() is stable, so arrival order is kept within a priority
        selected = sorted(selected, key=lambda m: PRIORITY_ORDER[m.priority])
        if limit is not None:
            selected = selected[:limit]

        drained = {id(m) for m in selected}
        self._queues[agent_id] = deque(
            (m for m in queue if id(m) not in drained), maxlen=self._inbox_limit
        )
        return selected

    def pending(self, agent_id: str) -> int:
        return len(self._queues.get(agent_id, []))

    def history(self, agent_id: Optional[str] = None, limit: int = 100) -> List[Message]:
        """Most recent messages, optionally those sent by or to one agent."""
        messages = list(self._history)
        if agent_id is not None:
            messages = [
                m for m in messages
                if m.sender == agent_id or m.recipient in (agent_id, BROADCAST)
            ]
        return messages[-limit:]

    def stats(self) -> Dict[str, Any]:
        return {
            "connected_agents": len(self._connected),
            "messages_sent": self._sent,
            "broadcasts": self._broadcasts,
            "history_size": len(self._history),
            "pending_messages": sum(len(q) for q in self._queues.values()),
        }
