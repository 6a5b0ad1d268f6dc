"""Interface for the pluggable agent task runner.

The engine never talks to an LLM itself. Each stage is handed to an
``ITaskRunner`` which returns a ``TaskOutcome``, a plain mapping, or the raw
JSON text an agent produced; ``coerce_outcome`` normalises all three.
"""

import json
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Protocol, Union

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from flowhive.hive.models import Agent


class TaskOutcome(BaseModel):
    """Normalised result of one TaskRunner call."""
    output: Any = None
    quality: float = Field(default=0.8, ge=0.0, le=1.0)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    next_actions: List[str] = Field(default_factory=list)
    coordination_notes: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


# Quality/confidence assigned to free-text answers that are not JSON
TEXT_OUTCOME_SCORE = 0.7

RawOutcome = Union[TaskOutcome, Mapping[str, Any], str]


class ITaskRunner(Protocol):
    """Executes one stage task on behalf of an agent."""

    async def execute(
        self,
        agent: "Agent",
        stage_task: str,
        context: Dict[str, Any]
    ) -> RawOutcome:
        """Run ``stage_task`` as ``agent``.

        Args:
            agent: Snapshot of the executing agent
            stage_task: ``"<stage>: <task>"`` instruction
            context: Accumulated workflow context (read-only for the runner)

        Returns:
            TaskOutcome, a mapping with the same keys, or JSON text
        """
        ...


def coerce_outcome(raw: RawOutcome) -> TaskOutcome:
    """Normalise whatever a runner returned into a ``TaskOutcome``.

    Raises pydantic.ValidationError for out-of-range scores and TypeError for
    unsupported result types.
    """
    if isinstance(raw, TaskOutcome):
        return raw
    if isinstance(raw, Mapping):
        return TaskOutcome.model_validate(dict(raw))
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return TaskOutcome.model_validate(parsed)
        return TaskOutcome(
            output=raw,
            quality=TEXT_OUTCOME_SCORE,
            confidence=TEXT_OUTCOME_SCORE,
        )
    raise TypeError(f"Unsupported task outcome type: {type(raw).__name__}")
