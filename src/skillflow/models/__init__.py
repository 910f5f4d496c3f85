"""Core data models for workflow execution.

Defines types for workflow definitions, run state, retry behavior,
metrics, results and lifecycle events.

Design: Dependency-Free Models
These types have no dependencies on core or executor modules to
prevent circular imports and enable clean layering.
"""

from skillflow.models.context import WorkflowContext
from skillflow.models.events import (
    CallbackObserver,
    ExecutionFinished,
    ExecutionObserver,
    StepCompleted,
    StepFailed,
    StepSkipped,
    StepStarted,
    WorkflowCompleted,
    WorkflowEvent,
    WorkflowFailed,
    WorkflowStarted,
)
from skillflow.models.json_value import (
    JsonObject,
    JsonValue,
    canonical_json,
    to_json_object,
    to_json_value,
)
from skillflow.models.metrics import ExecutionMetrics
from skillflow.models.result import (
    CacheStats,
    DagSummary,
    ExecutionPlan,
    ExecutionResult,
    ParallelEntry,
    ParallelExecutionResult,
    ValidationResult,
)
from skillflow.models.retry import BackoffKind, RetryableError, RetryPolicy
from skillflow.models.status import StepStatus, WorkflowStatus
from skillflow.models.workflow import OnFailure, StepRetry, Workflow, WorkflowStep

__all__ = [
    "JsonValue",
    "JsonObject",
    "canonical_json",
    "to_json_value",
    "to_json_object",
    "Workflow",
    "WorkflowStep",
    "StepRetry",
    "OnFailure",
    "BackoffKind",
    "RetryPolicy",
    "RetryableError",
    "WorkflowStatus",
    "StepStatus",
    "WorkflowContext",
    "ExecutionMetrics",
    "ValidationResult",
    "ExecutionPlan",
    "ExecutionResult",
    "DagSummary",
    "ParallelEntry",
    "ParallelExecutionResult",
    "CacheStats",
    "WorkflowEvent",
    "WorkflowStarted",
    "StepStarted",
    "StepCompleted",
    "StepFailed",
    "StepSkipped",
    "WorkflowCompleted",
    "WorkflowFailed",
    "ExecutionFinished",
    "ExecutionObserver",
    "CallbackObserver",
]
