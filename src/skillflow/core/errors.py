"""
Exception taxonomy for the workflow engine.

    SkillflowError
    ├── ValidationError        malformed workflow, raised before any step runs
    ├── ConfigurationError     malformed engine configuration
    ├── SkillNotFoundError     no implementation registered for a skill name
    ├── SkillExecutionError    the skill itself raised (original is __cause__)
    ├── StepTimeoutError       one attempt exceeded its timeout
    ├── WorkflowTimeoutError   the whole run exceeded its budget
    └── DeadlockError          no step is ready but work remains

Only ValidationError, WorkflowTimeoutError and DeadlockError escape
Scheduler.execute(); every other failure is recorded in the run's
ExecutionResult. The last two carry that partial result with them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from skillflow.models.retry import RetryableError

if TYPE_CHECKING:
    from skillflow.models.result import ExecutionResult


class SkillflowError(Exception):
    """Base class for every error raised by skillflow."""

    pass


class ValidationError(SkillflowError):
    """
    Workflow definition is malformed.

    Always fatal before execution starts and never retried.

    Attributes:
        errors: Individual problems found; a parse failure has exactly one
    """

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = list(errors) if errors else [message]


class ConfigurationError(SkillflowError):
    """Engine configuration (usually from the environment) is invalid."""

    pass


class SkillNotFoundError(SkillflowError):
    """No implementation is registered for the named skill. Not retried."""

    def __init__(self, skill: str):
        super().__init__(f"Skill not found: {skill}")
        self.skill = skill


class SkillExecutionError(SkillflowError):
    """
    The skill raised while executing.

    The original exception is chained as __cause__. Retried up to the
    step's configured attempts.
    """

    def __init__(self, skill: str, message: str):
        super().__init__(f"Skill '{skill}' failed: {message}")
        self.skill = skill

    @property
    def retryable(self) -> bool:
        """False when the cause is a RetryableError that declined retry."""
        cause = self.__cause__
        if isinstance(cause, RetryableError):
            return cause.is_retryable()
        return True


class StepTimeoutError(SkillflowError):
    """
    One invocation attempt exceeded its timeout.

    Counted as a failed attempt and eligible for retry. The underlying
    call is not cancelled; its eventual result is discarded.
    """

    def __init__(self, skill: str, timeout_ms: float, step_id: str | None = None):
        label = f"Step {step_id}" if step_id else f"Skill '{skill}'"
        super().__init__(f"{label} execution timeout after {timeout_ms:g}ms")
        self.skill = skill
        self.timeout_ms = timeout_ms
        self.step_id = step_id


class WorkflowTimeoutError(SkillflowError):
    """
    The whole run exceeded its global budget.

    Attributes:
        timeout_ms: The budget that was exceeded
        result: Partial ExecutionResult accumulated before the timeout
    """

    def __init__(self, timeout_ms: float, result: ExecutionResult | None = None):
        super().__init__(f"Workflow execution timeout after {timeout_ms:g}ms")
        self.timeout_ms = timeout_ms
        self.result = result


class DeadlockError(SkillflowError):
    """
    The scheduler found no ready step while work remains.

    Indicates a graph that slipped past validation. Reported, never
    swallowed.

    Attributes:
        pending: Step ids that could never become ready
        result: Partial ExecutionResult accumulated before the deadlock
    """

    def __init__(self, pending: list[str], result: ExecutionResult | None = None):
        super().__init__(
            f"Deadlock: no steps ready but {len(pending)} remain: {', '.join(pending)}"
        )
        self.pending = list(pending)
        self.result = result


__all__ = [
    "SkillflowError",
    "ValidationError",
    "ConfigurationError",
    "SkillNotFoundError",
    "SkillExecutionError",
    "StepTimeoutError",
    "WorkflowTimeoutError",
    "DeadlockError",
]
