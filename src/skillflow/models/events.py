"""
Lifecycle events emitted by the scheduler.

**Design Pattern**: State machine events as a union of frozen dataclasses,
consumed through the Observer pattern.

Every event carries a `type` tag matching the wire names used by
hosting transports (`workflow-start`, `step-start`, ...), so a
transport can serialize events without a lookup table.

Events are delivered synchronously, in the causal order steps actually
execute. A consumer either subclasses ExecutionObserver, wraps a
callable in CallbackObserver, or pulls them from Scheduler.stream().

Example:
    ```python
    async for event in scheduler.stream(workflow):
        match event:
            case StepCompleted(step_id=step_id, output=output):
                print(f"{step_id} -> {output}")
            case StepFailed(step_id=step_id, error=error):
                print(f"{step_id} failed: {error}")
            case ExecutionFinished(result=result):
                print(f"done: {result.status}")
    ```
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, Union

from skillflow.models.context import WorkflowContext
from skillflow.models.json_value import JsonValue
from skillflow.models.workflow import WorkflowStep

if TYPE_CHECKING:
    from skillflow.models.result import ExecutionResult

__all__ = [
    "WorkflowStarted",
    "StepStarted",
    "StepCompleted",
    "StepFailed",
    "StepSkipped",
    "WorkflowCompleted",
    "WorkflowFailed",
    "ExecutionFinished",
    "WorkflowEvent",
    "ExecutionObserver",
    "CallbackObserver",
]


@dataclass(frozen=True)
class WorkflowStarted:
    type: ClassVar[str] = "workflow-start"

    run_id: str
    workflow_name: str


@dataclass(frozen=True)
class StepStarted:
    type: ClassVar[str] = "step-start"

    step_id: str
    step: WorkflowStep


@dataclass(frozen=True)
class StepCompleted:
    type: ClassVar[str] = "step-complete"

    step_id: str
    output: JsonValue


@dataclass(frozen=True)
class StepFailed:
    """A step ended in failure after all of its attempts.

    `error` is the message; `exception` keeps the original object for
    callers that need to branch on its type (it is not serialized).
    """

    type: ClassVar[str] = "step-error"

    step_id: str
    error: str
    exception: BaseException | None = field(default=None, compare=False)


@dataclass(frozen=True)
class StepSkipped:
    type: ClassVar[str] = "step-skip"

    step_id: str
    reason: str


@dataclass(frozen=True)
class WorkflowCompleted:
    type: ClassVar[str] = "workflow-complete"

    context: WorkflowContext


@dataclass(frozen=True)
class WorkflowFailed:
    type: ClassVar[str] = "workflow-error"

    error: str
    exception: BaseException | None = field(default=None, compare=False)


@dataclass(frozen=True)
class ExecutionFinished:
    """Last item of Scheduler.stream(): the run's final report."""

    type: ClassVar[str] = "complete"

    result: ExecutionResult


WorkflowEvent = Union[
    WorkflowStarted,
    StepStarted,
    StepCompleted,
    StepFailed,
    StepSkipped,
    WorkflowCompleted,
    WorkflowFailed,
    ExecutionFinished,
]


class ExecutionObserver:
    """
    Synchronous receiver of lifecycle events.

    Subclasses override the hooks they care about; the defaults do
    nothing. The scheduler calls `notify()`, which dispatches to the
    matching hook. Hooks run inline in the scheduler loop, so they must
    not block. An exception raised by a hook is logged and the run
    carries on.
    """

    def notify(self, event: WorkflowEvent) -> None:
        match event:
            case WorkflowStarted():
                self.on_workflow_start(event)
            case StepStarted():
                self.on_step_start(event)
            case StepCompleted():
                self.on_step_complete(event)
            case StepFailed():
                self.on_step_error(event)
            case StepSkipped():
                self.on_step_skip(event)
            case WorkflowCompleted():
                self.on_workflow_complete(event)
            case WorkflowFailed():
                self.on_workflow_error(event)

    def on_workflow_start(self, event: WorkflowStarted) -> None:
        pass

    def on_step_start(self, event: StepStarted) -> None:
        pass

    def on_step_complete(self, event: StepCompleted) -> None:
        pass

    def on_step_error(self, event: StepFailed) -> None:
        pass

    def on_step_skip(self, event: StepSkipped) -> None:
        pass

    def on_workflow_complete(self, event: WorkflowCompleted) -> None:
        pass

    def on_workflow_error(self, event: WorkflowFailed) -> None:
        pass


class CallbackObserver(ExecutionObserver):
    """Observer forwarding every event to a single callable."""

    def __init__(self, callback: Callable[[WorkflowEvent], None]):
        self._callback = callback

    def notify(self, event: WorkflowEvent) -> None:
        self._callback(event)
