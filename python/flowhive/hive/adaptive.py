"""
Adaptive coordination: bounded search over the concrete strategies.

Each iteration runs one strategy over the whole pattern, scores the result,
and either returns it or picks the next strategy. Stages are never retried
individually; a retry always re-runs the full pattern.
"""

import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

from flowhive.config.settings import Settings
from flowhive.exceptions_unified import AdaptiveConvergenceError, WorkflowCancelledError
from flowhive.hive.cancellation import Checkpoint
from flowhive.hive.models import Workflow, WorkflowResult
from flowhive.hive.patterns import CoordinationKind, CoordinationPattern
from flowhive.hive.scoring import (
    DEFAULT_STAGE_BUDGET_MS,
    assess_result_quality,
    calculate_efficiency,
)

logger = logging.getLogger(__name__)

StrategyRunner = Callable[
    [CoordinationKind, Workflow, CoordinationPattern, str, Dict[str, Any], Checkpoint],
    Awaitable[WorkflowResult],
]

# Strategy that follows the one that just raised
FAILURE_CYCLE = (
    CoordinationKind.PARALLEL,
    CoordinationKind.LINEAR,
    CoordinationKind.HIERARCHICAL,
)


class AdaptiveController:
    """Runs a pattern under changing strategies until the result is good enough"""

    def __init__(
        self,
        run_strategy: StrategyRunner,
        max_iterations: int = 3,
        quality_threshold: float = 0.8,
        efficiency_threshold: float = 0.7,
        stage_budget_ms: float = DEFAULT_STAGE_BUDGET_MS,
        initial_strategy: CoordinationKind = CoordinationKind.PARALLEL,
    ):
        if initial_strategy not in FAILURE_CYCLE:
            raise ValueError(f"Adaptive coordination cannot start from {initial_strategy.value}")
        self._run_strategy = run_strategy
        self.max_iterations = max_iterations
        self.quality_threshold = quality_threshold
        self.efficiency_threshold = efficiency_threshold
        self.stage_budget_ms = stage_budget_ms
        self.initial_strategy = initial_strategy

    @classmethod
    def from_settings(cls, run_strategy: StrategyRunner, settings: Settings) -> "AdaptiveController":
        return cls(
            run_strategy,
            max_iterations=settings.adaptive_max_iterations,
            quality_threshold=settings.adaptive_quality_threshold,
            efficiency_threshold=settings.adaptive_efficiency_threshold,
            stage_budget_ms=settings.adaptive_stage_budget_ms,
        )

    def is_converged(self, quality: float, efficiency: float) -> bool:
        return quality >= self.quality_threshold and efficiency >= self.efficiency_threshold

    @staticmethod
    def adapt_strategy(quality: float, efficiency: float) -> CoordinationKind:
        """Next strategy after a run that completed but did not converge."""
        if efficiency < 0.5:
            return CoordinationKind.HIERARCHICAL
        if quality < 0.7:
            return CoordinationKind.LINEAR
        return CoordinationKind.PARALLEL

    @staticmethod
    def adapt_on_failure(current: CoordinationKind) -> CoordinationKind:
        """Next strategy after a run that raised."""
        index = FAILURE_CYCLE.index(current) if current in FAILURE_CYCLE else -1
        return FAILURE_CYCLE[(index + 1) % len(FAILURE_CYCLE)]

    async def run(
        self,
        workflow: Workflow,
        pattern: CoordinationPattern,
        task: str,
        context: Dict[str, Any],
        checkpoint: Checkpoint,
    ) -> WorkflowResult:
        """
        Iterate strategies until convergence.

        Raises:
            WorkflowCancelledError: cancellation observed at any checkpoint
            AdaptiveConvergenceError: iteration budget exhausted
        """
        strategy = self.initial_strategy
        attempts: List[Dict[str, Any]] = []

        for iteration in range(1, self.max_iterations + 1):
            await checkpoint()
            started = time.perf_counter()
            try:
                result = await self._run_strategy(
                    strategy, workflow, pattern, task, context, checkpoint
                )
            except WorkflowCancelledError:
                raise
            except Exception as e:
                logger.warning(
                    f"Adaptive iteration {iteration} ({strategy.value}) failed "
                    f"for workflow {workflow.id}: {e}"
                )
                attempts.append(_attempt(iteration, strategy, error=str(e)))
                strategy = self.adapt_on_failure(strategy)
                continue

            elapsed_ms = (time.perf_counter() - started) * 1000
            quality = assess_result_quality(result)
            efficiency = calculate_efficiency(elapsed_ms, len(pattern.stages), self.stage_budget_ms)
            attempts.append(_attempt(iteration, strategy, quality, efficiency))

            if self.is_converged(quality, efficiency):
                logger.info(
                    f"Adaptive coordination converged on {strategy.value} after "
                    f"{iteration} iteration(s) (quality={quality:.2f}, efficiency={efficiency:.2f})"
                )
                result.coordination = CoordinationKind.ADAPTIVE.value
                result.metadata["strategy"] = strategy.value
                result.metadata["iterations"] = iteration
                result.metadata["attempts"] = attempts
                return result

            next_strategy = self.adapt_strategy(quality, efficiency)
            logger.debug(
                f"Adaptive iteration {iteration}: {strategy.value} → {next_strategy.value} "
                f"(quality={quality:.2f}, efficiency={efficiency:.2f})"
            )
            strategy = next_strategy

        raise AdaptiveConvergenceError(self.max_iterations, attempts)


def _attempt(
    iteration: int,
    strategy: CoordinationKind,
    quality: Optional[float] = None,
    efficiency: Optional[float] = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "iteration": iteration,
        "strategy": strategy.value,
        "quality": quality,
        "efficiency": efficiency,
        "error": error,
    }
