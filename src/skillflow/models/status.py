"""Status enumerations for workflow execution tracking.

Defines lifecycle states for a whole workflow run and for the
individual steps inside it.
"""

from enum import Enum


class WorkflowStatus(Enum):
    """Status of a workflow run.

    Lifecycle:
        NOT_STARTED → RUNNING → COMPLETED / FAILED / TIMED_OUT
    """

    NOT_STARTED = "not_started"
    """Run has been created but no step has been dispatched."""

    RUNNING = "running"
    """Scheduler loop is dispatching waves."""

    COMPLETED = "completed"
    """Every step completed, or failed under on_failure=continue."""

    FAILED = "failed"
    """A step failed under on_failure=stop, or the scheduler deadlocked."""

    TIMED_OUT = "timed_out"
    """The whole-workflow timeout fired before all steps were accounted for."""

    @property
    def is_terminal(self) -> bool:
        """True once the run has finished and will dispatch nothing more."""
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED, WorkflowStatus.TIMED_OUT)

    def __str__(self) -> str:
        return self.value


class StepStatus(Enum):
    """Status of a single step within a run.

    Lifecycle:
        PENDING → RUNNING → COMPLETED / FAILED / TIMED_OUT
        PENDING → SKIPPED

    A step is SKIPPED when it can never run: the run was stopped by a
    failure elsewhere, or one of its dependencies failed.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal."""
        return self not in (StepStatus.PENDING, StepStatus.RUNNING)

    def __str__(self) -> str:
        return self.value
