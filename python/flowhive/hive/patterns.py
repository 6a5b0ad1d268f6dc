"""
Coordination pattern catalog.

A pattern names an ordered list of stages and the topology strategy that
runs them. The catalog is fixed once built; lookups never mutate it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
import logging

from flowhive.exceptions_unified import ConfigurationError

logger = logging.getLogger(__name__)


class CoordinationKind(str, Enum):
    """Executable coordination strategies"""
    LINEAR = "linear"
    PARALLEL = "parallel"
    HIERARCHICAL = "hierarchical"
    MESH = "mesh"
    ADAPTIVE = "adaptive"
    SWARM = "swarm"


# Descriptive labels with no strategy of their own; they run adaptively
DESCRIPTIVE_KINDS = frozenset({
    "iterative",
    "collaborative",
    "pipeline",
    "distributed",
    "layered",
    "emergency",
})


def resolve_kind(label: str) -> CoordinationKind:
    """
    Map a coordination label to an executable kind.

    Raises:
        ConfigurationError: label is neither a kind nor a descriptive label
    """
    try:
        return CoordinationKind(label)
    except ValueError:
        pass
    if label in DESCRIPTIVE_KINDS:
        return CoordinationKind.ADAPTIVE
    raise ConfigurationError(
        f"Unknown coordination kind '{label}'",
        details={"coordination": label},
    )


@dataclass(frozen=True)
class CoordinationPattern:
    """Named, ordered stage list plus its coordination kind"""
    name: str
    description: str
    stages: Tuple[str, ...]
    coordination: CoordinationKind

    @classmethod
    def build(
        cls,
        name: str,
        description: str,
        stages: Iterable[str],
        coordination: str,
    ) -> "CoordinationPattern":
        stage_tuple = tuple(stages)
        if not stage_tuple:
            raise ConfigurationError(
                f"Coordination pattern '{name}' has no stages",
                details={"pattern": name},
            )
        return cls(
            name=name,
            description=description,
            stages=stage_tuple,
            coordination=resolve_kind(coordination),
        )


# name -> (description, stages, coordination label)
BUILTIN_PATTERNS: Dict[str, Tuple[str, List[str], str]] = {
    # Development
    "sequential-development": (
        "Sequential development workflow with handoffs",
        ["analysis", "design", "implementation", "testing", "deployment"],
        "linear",
    ),
    "parallel-feature-development": (
        "Parallel feature development with integration points",
        ["feature-planning", "parallel-development", "integration", "testing"],
        "parallel",
    ),
    "agile-sprint-coordination": (
        "Agile sprint coordination with daily standups",
        ["sprint-planning", "daily-coordination", "sprint-review", "retrospective"],
        "iterative",
    ),
    # Creative
    "creative-brainstorming": (
        "Collaborative creative brainstorming session",
        ["idea-generation", "idea-refinement", "concept-selection", "execution"],
        "collaborative",
    ),
    "content-production-pipeline": (
        "Content creation and production pipeline",
        ["research", "writing", "editing", "review", "publishing"],
        "pipeline",
    ),
    # Business
    "strategic-planning": (
        "Strategic business planning coordination",
        ["analysis", "strategy-formulation", "planning", "execution", "monitoring"],
        "hierarchical",
    ),
    "market-research-coordination": (
        "Coordinated market research and analysis",
        ["data-collection", "analysis", "insights", "recommendations"],
        "distributed",
    ),
    # Technical
    "microservices-orchestration": (
        "Microservices development and deployment coordination",
        ["service-design", "parallel-development", "integration", "deployment"],
        "distributed",
    ),
    "ai-model-training": (
        "AI model training and optimization coordination",
        ["data-preparation", "model-training", "validation", "deployment"],
        "pipeline",
    ),
    # Quality assurance
    "comprehensive-testing": (
        "Comprehensive testing coordination across multiple levels",
        ["unit-testing", "integration-testing", "system-testing", "acceptance-testing"],
        "layered",
    ),
    "peer-review-mesh": (
        "Every agent reviews the whole deliverable; consensus picks the best review",
        ["review"],
        "mesh",
    ),
    # Emergency response
    "incident-response": (
        "Emergency incident response coordination",
        ["detection", "assessment", "response", "recovery", "post-mortem"],
        "emergency",
    ),
    # Adaptive
    "adaptive-workflow": (
        "Self-adapting workflow based on performance metrics",
        ["execution", "monitoring", "adaptation", "optimization"],
        "adaptive",
    ),
    # Swarm intelligence
    "swarm-optimization": (
        "Swarm intelligence for complex problem solving",
        ["exploration", "exploitation", "convergence", "refinement"],
        "swarm",
    ),
}


class CoordinationPatternCatalog:
    """Read-only registry of coordination patterns"""

    def __init__(
        self,
        extra_patterns: Optional[Iterable[CoordinationPattern]] = None,
        include_builtin: bool = True,
    ):
        patterns: Dict[str, CoordinationPattern] = {}
        if include_builtin:
            for name, (description, stages, coordination) in BUILTIN_PATTERNS.items():
                patterns[name] = CoordinationPattern.build(name, description, stages, coordination)
        for pattern in extra_patterns or ():
            if pattern.name in patterns:
                logger.warning(f"Coordination pattern '{pattern.name}' overrides a built-in")
            patterns[pattern.name] = pattern
        self._patterns = patterns
        logger.debug(f"Loaded {len(patterns)} coordination patterns")

    def get(self, name: str) -> Optional[CoordinationPattern]:
        return self._patterns.get(name)

    def require(self, name: str) -> CoordinationPattern:
        pattern = self._patterns.get(name)
        if pattern is None:
            raise ConfigurationError(
                f"Coordination pattern {name} not found",
                details={"pattern": name},
            )
        return pattern

    def names(self) -> List[str]:
        return list(self._patterns)

    def by_kind(self, kind: CoordinationKind) -> List[CoordinationPattern]:
        return [p for p in self._patterns.values() if p.coordination == kind]

    def __contains__(self, name: object) -> bool:
        return name in self._patterns

    def __len__(self) -> int:
        return len(self._patterns)

    def __iter__(self) -> Iterator[CoordinationPattern]:
        return iter(self._patterns.values())
