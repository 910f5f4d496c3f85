"""Workflow definition types.

A Workflow is parsed once and treated as read-only for every run, so
all types here are frozen dataclasses holding tuples rather than lists.
Step inputs are the one mutable-looking field; the scheduler never
writes to them, it substitutes into a fresh copy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from skillflow.models.json_value import JsonObject
from skillflow.models.retry import BackoffKind, RetryPolicy


class OnFailure(Enum):
    """What the scheduler does when a step ends in failure."""

    STOP = "stop"
    """Abort the run: no further waves are dispatched."""

    CONTINUE = "continue"
    """Record the failure, skip the step's dependents, keep going."""

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class StepRetry:
    """Retry block of a step definition.

    Attributes:
        max_attempts: Total attempts including the first (must be >= 1)
        backoff: Delay curve between attempts
    """

    max_attempts: int
    backoff: BackoffKind = BackoffKind.EXPONENTIAL

    def to_policy(self, base: RetryPolicy) -> RetryPolicy:
        """Build a RetryPolicy using this block's attempts and curve.

        Delays (initial, cap, multiplier) come from `base`, which is the
        engine's configured policy.
        """
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_delay_ms=base.initial_delay_ms,
            max_delay_ms=base.max_delay_ms,
            backoff_multiplier=base.backoff_multiplier,
            backoff=self.backoff,
        )


@dataclass(frozen=True)
class WorkflowStep:
    """A single skill invocation inside a workflow.

    Attributes:
        id: Identifier, unique within the workflow
        skill: Name of the skill to invoke
        input: JSON object, may contain {{ path }} tokens
        depends_on: Ids of steps that must complete first
        timeout_ms: Per-attempt timeout; None means use the caller default
        retry: Optional retry block; None means a single attempt
        on_failure: Failure policy for this step
        name: Optional human readable label
    """

    id: str
    skill: str
    input: JsonObject = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    timeout_ms: float | None = None
    retry: StepRetry | None = None
    on_failure: OnFailure = OnFailure.STOP
    name: str | None = None

    def effective_timeout_ms(self, default_ms: float) -> float:
        """The step's own timeout if declared, else the caller default."""
        return self.timeout_ms if self.timeout_ms is not None else default_ms

    def retry_policy(self, base: RetryPolicy) -> RetryPolicy:
        """Retry policy for this step: its retry block, or a single attempt."""
        if self.retry is None:
            return RetryPolicy.NONE
        return self.retry.to_policy(base)


@dataclass(frozen=True)
class Workflow:
    """A named, versioned DAG of steps.

    Attributes:
        name: Workflow name
        version: Version string
        steps: Steps in declaration order
        description: Optional free text
    """

    name: str
    version: str
    steps: tuple[WorkflowStep, ...]
    description: str | None = None

    @property
    def step_ids(self) -> list[str]:
        """Step ids in declaration order."""
        return [step.id for step in self.steps]

    def get_step(self, step_id: str) -> WorkflowStep | None:
        """Return the first step with the given id, or None."""
        return next((s for s in self.steps if s.id == step_id), None)

    def __len__(self) -> int:
        return len(self.steps)
