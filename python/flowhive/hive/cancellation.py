"""
Cooperative cancellation and pause for workflow execution.

Strategies await a checkpoint before each stage (linear, hierarchical) and
before each fan-out batch (parallel, mesh, swarm). Calls already handed to
the TaskRunner always run to completion.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from flowhive.exceptions_unified import WorkflowCancelledError

Checkpoint = Callable[[], Awaitable[None]]


class CancellationToken:
    """One-way cancellation flag shared between a caller and a running workflow"""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            message = "Workflow execution cancelled"
            if self._reason:
                message = f"{message}: {self._reason}"
            raise WorkflowCancelledError(message)


class PauseGate:
    """Open while a workflow runs, closed while it is paused"""

    def __init__(self) -> None:
        self._open = asyncio.Event()
        self._open.set()

    @property
    def paused(self) -> bool:
        return not self._open.is_set()

    def pause(self) -> None:
        self._open.clear()

    def resume(self) -> None:
        self._open.set()

    async def wait(self) -> None:
        await self._open.wait()


def make_checkpoint(token: CancellationToken, gate: PauseGate) -> Checkpoint:
    """Checkpoint that raises on cancellation and blocks while paused."""
    async def checkpoint() -> None:
        token.raise_if_cancelled()
        await gate.wait()
        # Cancellation may arrive while paused
        token.raise_if_cancelled()

    return checkpoint


async def no_checkpoint() -> None:
    return None
