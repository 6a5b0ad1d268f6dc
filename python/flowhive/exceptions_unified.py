"""
Unified error system for the flowhive coordination engine.

Every error raised by the engine derives from FlowHiveException and carries
an ErrorContext, so a failed workflow can always record a structured error
(error id, category, severity, details) in its ``workflow-failed`` event.

Taxonomy:
- ConfigurationError      unknown pattern, no queen agent, empty agent list
- AgentNotFoundError      registry lookup of an absent agent id
- WorkflowNotFoundError   unknown workflow id
- WorkflowStateError      illegal execute/pause/resume transition
- WorkflowCancelledError  cooperative cancellation observed at a checkpoint
- TaskExecutionError      TaskRunner failure for a (stage, agent) pair
- AdaptiveConvergenceError adaptive strategy exhausted its iteration budget
"""

import traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ============================================================================
# Enums
# ============================================================================

class ErrorSeverity(Enum):
    """Error severity levels."""
    CRITICAL = "critical"      # Engine cannot continue
    ERROR = "error"            # Workflow failure
    WARNING = "warning"        # Degraded, workflow may still complete
    INFO = "info"


class ErrorCategory(Enum):
    """Error categories for classification and routing."""
    VALIDATION = "validation"           # Bad input or illegal state transition
    CONFIGURATION = "configuration"     # Catalog / topology misconfiguration
    NOT_FOUND = "not_found"             # Unknown agent or workflow id
    EXECUTION = "execution"             # TaskRunner failure
    COORDINATION = "coordination"       # Strategy-level failure (convergence)
    CANCELLED = "cancelled"             # Cooperative cancellation
    TIMEOUT = "timeout"
    INTERNAL = "internal"


# ============================================================================
# Error context
# ============================================================================

@dataclass
class ErrorContext:
    """Rich error context with metadata."""
    error_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.INTERNAL
    error_type: str = ""
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None
    is_recoverable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (stack trace excluded)."""
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "category": self.category.value,
            "error_type": self.error_type,
            "message": self.message,
            "details": self.details,
            "is_recoverable": self.is_recoverable,
        }


# ============================================================================
# Exception Hierarchy
# ============================================================================

class FlowHiveException(Exception):
    """Base exception for all flowhive errors with rich context."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        is_recoverable: bool = True,
    ):
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.is_recoverable = is_recoverable
        self.context = ErrorContext(
            severity=severity,
            category=category,
            error_type=type(self).__name__,
            message=message,
            details=self.details,
            stack_trace=traceback.format_exc(),
            is_recoverable=is_recoverable,
        )
        super().__init__(message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return self.context.to_dict()


class ConfigurationError(FlowHiveException):
    """Unknown coordination pattern, missing queen, or otherwise unusable setup."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        kwargs.setdefault("is_recoverable", False)
        super().__init__(message, **kwargs)


class AgentNotFoundError(FlowHiveException):
    """Agent id is not present in the registry."""
    def __init__(self, agent_id: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.NOT_FOUND)
        kwargs.setdefault("details", {"agent_id": agent_id})
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id} not found", **kwargs)


class WorkflowNotFoundError(FlowHiveException):
    """Workflow id is not known to the coordinator."""
    def __init__(self, workflow_id: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.NOT_FOUND)
        kwargs.setdefault("details", {"workflow_id": workflow_id})
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} not found", **kwargs)


class WorkflowStateError(FlowHiveException):
    """Requested transition is not legal from the workflow's current status."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        super().__init__(message, **kwargs)


class WorkflowCancelledError(FlowHiveException):
    """Cancellation was requested and observed at a stage boundary."""
    def __init__(self, message: str = "Workflow execution cancelled", **kwargs):
        kwargs.setdefault("category", ErrorCategory.CANCELLED)
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        kwargs.setdefault("is_recoverable", False)
        super().__init__(message, **kwargs)


class TaskExecutionError(FlowHiveException):
    """TaskRunner failed for one (stage, agent) pair.

    ``partial_results`` is filled by the parallel strategy with whichever
    stage results had already resolved when the join failed.
    """
    def __init__(
        self,
        message: str,
        stage: str,
        agent_id: str,
        partial_results: Optional[List[Any]] = None,
        **kwargs,
    ):
        kwargs.setdefault("category", ErrorCategory.EXECUTION)
        kwargs.setdefault("details", {"stage": stage, "agent_id": agent_id})
        self.stage = stage
        self.agent_id = agent_id
        self.partial_results: List[Any] = list(partial_results or [])
        super().__init__(message, **kwargs)


class AdaptiveConvergenceError(FlowHiveException):
    """Adaptive coordination exhausted its iterations without converging."""
    def __init__(
        self,
        iterations: int,
        attempts: Optional[List[Dict[str, Any]]] = None,
        **kwargs,
    ):
        kwargs.setdefault("category", ErrorCategory.COORDINATION)
        kwargs.setdefault(
            "details", {"iterations": iterations, "attempts": list(attempts or [])}
        )
        self.iterations = iterations
        self.attempts: List[Dict[str, Any]] = list(attempts or [])
        super().__init__(
            f"Adaptive coordination failed to converge after {iterations} iterations",
            **kwargs,
        )


# ============================================================================
# Utility Functions
# ============================================================================

def create_error_context(error: BaseException) -> ErrorContext:
    """
    Create ErrorContext from any exception.

    FlowHive errors already carry one; foreign exceptions (a TaskRunner's own
    error types, for example) are categorized by name.
    """
    if isinstance(error, FlowHiveException):
        return error.context

    return ErrorContext(
        severity=ErrorSeverity.ERROR,
        category=_categorize_error(error),
        error_type=type(error).__name__,
        message=str(error),
        stack_trace="".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        ),
        is_recoverable=True,
    )


def _categorize_error(error: BaseException) -> ErrorCategory:
    """Auto-categorize exception."""
    error_type = type(error).__name__.lower()

    if "cancel" in error_type:
        return ErrorCategory.CANCELLED
    elif "timeout" in error_type:
        return ErrorCategory.TIMEOUT
    elif "validation" in error_type or "value" in error_type:
        return ErrorCategory.VALIDATION
    elif "key" in error_type or "lookup" in error_type:
        return ErrorCategory.NOT_FOUND
    else:
        return ErrorCategory.INTERNAL


__all__ = [
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorContext",
    "FlowHiveException",
    "ConfigurationError",
    "AgentNotFoundError",
    "WorkflowNotFoundError",
    "WorkflowStateError",
    "WorkflowCancelledError",
    "TaskExecutionError",
    "AdaptiveConvergenceError",
    "create_error_context",
]
