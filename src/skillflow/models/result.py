"""Result types returned by the engine.

All of these are produced once and handed to the caller; they are
frozen so a consumer holding one cannot observe later mutation.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from skillflow.models.context import WorkflowContext
from skillflow.models.json_value import JsonValue
from skillflow.models.status import StepStatus, WorkflowStatus


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of static workflow validation.

    **Attributes**:
        valid: True iff errors is empty
        errors: Every problem found (validation does not short-circuit)
        warnings: Advice that never affects validity
    """

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ExecutionPlan:
    """
    Dry-run view of how a workflow would be scheduled.

    **Attributes**:
        steps: Step ids in topological order
        dependencies: step id -> ids it depends on
        parallel_groups: Steps sharing an identical dependency set
    """

    steps: list[str]
    dependencies: dict[str, list[str]]
    parallel_groups: list[list[str]]


@dataclass(frozen=True)
class DagSummary:
    """
    Summary information about a workflow's dependency graph.

    **Attributes**:
        total_steps: Total number of steps
        root_count: Number of root steps (no dependencies)
        leaf_count: Number of leaf steps (nothing depends on them)
        max_depth: Longest dependency chain, roots at depth 0
        roots: Root step ids
        leaves: Leaf step ids
    """

    total_steps: int
    root_count: int
    leaf_count: int
    max_depth: int
    roots: list[str]
    leaves: list[str]


@dataclass(frozen=True)
class ExecutionResult:
    """
    Terminal artifact of one workflow run.

    **Attributes**:
        run_id: Unique id of this run
        workflow_name: Name of the executed workflow
        status: Final workflow status
        success: True iff the run completed with no failed step
        results: step id -> output, for completed steps
        errors: step id -> error message, for failed steps
        executed_steps: Completed step ids, in completion order
        failed_steps: Failed step ids, in completion order
        skipped_steps: Step ids that never ran
        duration_ms: Wall-clock duration of the run
        context: Snapshot of the run's context at the end
        error: Message of the failure that ended the run, if any
        step_statuses: Final status of every step
    """

    run_id: str
    workflow_name: str
    status: WorkflowStatus
    success: bool
    results: dict[str, JsonValue]
    errors: dict[str, str]
    executed_steps: list[str]
    failed_steps: list[str]
    skipped_steps: list[str]
    duration_ms: float
    context: WorkflowContext
    error: str | None = None
    step_statuses: dict[str, StepStatus] = field(default_factory=dict)


@dataclass(frozen=True)
class ParallelEntry:
    """
    One entry of a parallel batch: exactly one of output/error is meaningful.

    **Attributes**:
        index: Position of the call in the submitted batch
        skill: Skill name
        output: Result on success
        error: Exception on failure
        duration_ms: Wall-clock time of this entry
    """

    index: int
    skill: str
    output: JsonValue = None
    error: Exception | None = None
    duration_ms: float = 0.0

    @property
    def key(self) -> str:
        return f"{self.skill}_{self.index}"

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ParallelExecutionResult:
    """
    Outcome of SkillInvoker.execute_skills_parallel.

    **Attributes**:
        entries: One entry per submitted call, in submission order
        duration_ms: Wall-clock duration of the whole batch
    """

    entries: list[ParallelEntry]
    duration_ms: float

    @property
    def success(self) -> bool:
        return all(entry.ok for entry in self.entries)

    @property
    def results(self) -> dict[str, JsonValue]:
        """Map of <skill>_<index> to output, for successful entries."""
        return {entry.key: entry.output for entry in self.entries if entry.ok}

    @property
    def errors(self) -> dict[str, Exception]:
        """Map of <skill>_<index> to exception, for failed entries."""
        return {entry.key: entry.error for entry in self.entries if entry.error is not None}


@dataclass(frozen=True)
class CacheStats:
    """Size of the result cache and its keys, as "<skill>:<fingerprint>"."""

    size: int
    keys: list[str]
