"""
Core algorithms for skillflow.

Everything here is synchronous and pure:
- errors: Exception taxonomy shared by every layer
- validator: Parse workflow definitions and check their structure
- graph: Topological order, ready-step selection, parallel groups
- template: {{ path }} substitution against a run's context
"""

from skillflow.core.errors import (
    ConfigurationError,
    DeadlockError,
    SkillExecutionError,
    SkillflowError,
    SkillNotFoundError,
    StepTimeoutError,
    ValidationError,
    WorkflowTimeoutError,
)
from skillflow.core.graph import (
    build_execution_plan,
    get_next_steps,
    level_graph,
    parallel_groups,
    resolve_execution_order,
    summarize,
    transitive_dependents,
)
from skillflow.core.template import resolve_path, substitute
from skillflow.core.validator import (
    ensure_valid,
    find_cycle,
    load_workflow,
    load_workflow_file,
    parse_workflow,
    validate_workflow,
)

__all__ = [
    # Errors
    "SkillflowError",
    "ValidationError",
    "ConfigurationError",
    "SkillNotFoundError",
    "SkillExecutionError",
    "StepTimeoutError",
    "WorkflowTimeoutError",
    "DeadlockError",
    # Validation
    "parse_workflow",
    "load_workflow",
    "load_workflow_file",
    "validate_workflow",
    "ensure_valid",
    "find_cycle",
    # Graph
    "resolve_execution_order",
    "get_next_steps",
    "parallel_groups",
    "build_execution_plan",
    "transitive_dependents",
    "summarize",
    "level_graph",
    # Templates
    "substitute",
    "resolve_path",
]
