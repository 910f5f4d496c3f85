"""
Skillflow: Workflow execution engine for skill pipelines.

Runs a named, versioned DAG of skill invocations: outputs of earlier
steps flow into the inputs of later ones through {{ path }} templates,
and every call gets timeouts, retries with backoff, optional caching
and per-step failure policies.

Design Pattern: Façade Pattern
This module re-exports the public API so callers import from one place.

Example:
    ```python
    import asyncio
    from skillflow import (
        ExecutionOptions, Scheduler, SkillInvoker, SkillRegistry, load_workflow,
    )

    registry = SkillRegistry()

    @registry.skill()
    async def web_research(input):
        return {"summary": f"notes on {input['query']}"}

    @registry.skill()
    async def report_writer(input):
        return {"report": input["notes"].upper()}

    workflow = load_workflow('''
    name: research
    version: "1.0"
    steps:
      - id: research
        skill: web_research
        input: {query: "{{ variables.topic }}"}
      - id: report
        skill: report_writer
        depends_on: [research]
        input: {notes: "{{ steps.research.summary }}"}
    ''')

    async def main():
        scheduler = Scheduler(SkillInvoker(registry))
        result = await scheduler.execute(
            workflow, ExecutionOptions(variables={"topic": "solar"})
        )
        print(result.results["report"])

    asyncio.run(main())
    ```
"""

from skillflow.config import EngineConfig
from skillflow.core import (
    ConfigurationError,
    DeadlockError,
    SkillExecutionError,
    SkillflowError,
    SkillNotFoundError,
    StepTimeoutError,
    ValidationError,
    WorkflowTimeoutError,
    build_execution_plan,
    ensure_valid,
    get_next_steps,
    level_graph,
    load_workflow,
    load_workflow_file,
    parallel_groups,
    parse_workflow,
    resolve_execution_order,
    resolve_path,
    substitute,
    summarize,
    transitive_dependents,
    validate_workflow,
)
from skillflow.executor import (
    CacheEntry,
    ExecutionOptions,
    ResultCache,
    Scheduler,
    SkillBackend,
    SkillInvoker,
    SkillRegistry,
)
from skillflow.models import (
    BackoffKind,
    CacheStats,
    CallbackObserver,
    DagSummary,
    ExecutionFinished,
    ExecutionMetrics,
    ExecutionObserver,
    ExecutionPlan,
    ExecutionResult,
    JsonObject,
    JsonValue,
    OnFailure,
    ParallelEntry,
    ParallelExecutionResult,
    RetryableError,
    RetryPolicy,
    StepCompleted,
    StepFailed,
    StepRetry,
    StepSkipped,
    StepStarted,
    StepStatus,
    ValidationResult,
    Workflow,
    WorkflowCompleted,
    WorkflowContext,
    WorkflowEvent,
    WorkflowFailed,
    WorkflowStarted,
    WorkflowStatus,
    WorkflowStep,
)

__version__ = "0.1.0"

__all__ = [
    # Definitions
    "Workflow",
    "WorkflowStep",
    "StepRetry",
    "OnFailure",
    "BackoffKind",
    "JsonValue",
    "JsonObject",
    # Parsing and validation
    "parse_workflow",
    "load_workflow",
    "load_workflow_file",
    "validate_workflow",
    "ensure_valid",
    "ValidationResult",
    # Graph
    "resolve_execution_order",
    "get_next_steps",
    "parallel_groups",
    "build_execution_plan",
    "transitive_dependents",
    "summarize",
    "level_graph",
    "ExecutionPlan",
    "DagSummary",
    # Templates
    "substitute",
    "resolve_path",
    # Invocation
    "SkillBackend",
    "SkillRegistry",
    "SkillInvoker",
    "RetryPolicy",
    "RetryableError",
    "ResultCache",
    "CacheEntry",
    "CacheStats",
    "ExecutionMetrics",
    "ParallelEntry",
    "ParallelExecutionResult",
    # Scheduling
    "Scheduler",
    "ExecutionOptions",
    "ExecutionResult",
    "WorkflowContext",
    "WorkflowStatus",
    "StepStatus",
    "EngineConfig",
    # Events
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
    # Errors
    "SkillflowError",
    "ValidationError",
    "ConfigurationError",
    "SkillNotFoundError",
    "SkillExecutionError",
    "StepTimeoutError",
    "WorkflowTimeoutError",
    "DeadlockError",
    # Metadata
    "__version__",
]
