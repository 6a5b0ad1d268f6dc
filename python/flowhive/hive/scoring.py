"""Quality and efficiency heuristics for coordination results."""

from typing import Iterable

from flowhive.hive.models import WorkflowResult

DEFAULT_STAGE_BUDGET_MS = 30000.0


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def mean(values: Iterable[float]) -> float:
    items = list(values)
    if not items:
        return 0.0
    return sum(items) / len(items)


def assess_result_quality(result: WorkflowResult) -> float:
    """Aggregated quality of a result, clamped to [0, 1]."""
    return clamp_unit(result.quality)


def calculate_efficiency(
    duration_ms: float,
    stage_count: int,
    stage_budget_ms: float = DEFAULT_STAGE_BUDGET_MS,
) -> float:
    """
    Ratio of the latency budget to the time actually spent, capped at 1.

    The budget grows with the number of stages, so a five-stage run is not
    penalised for taking longer than a single-stage one.
    """
    budget = stage_budget_ms * max(1, stage_count)
    if duration_ms <= 0:
        return 1.0
    return clamp_unit(budget / duration_ms)
