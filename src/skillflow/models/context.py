"""Per-run execution context.

WorkflowContext accumulates the outputs of completed steps. Each run
owns a private instance; the scheduler is the only writer and the
template engine reads it through to_scope() when substituting inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from skillflow.models.json_value import JsonValue


@dataclass
class WorkflowContext:
    """Mutable accumulator of step outputs.

    Attributes:
        steps: step id -> output of the completed step
        variables: caller supplied values, addressable as {{ variables.x }}
    """

    steps: dict[str, JsonValue] = field(default_factory=dict)
    variables: dict[str, JsonValue] = field(default_factory=dict)

    def record(self, step_id: str, output: JsonValue) -> None:
        """Store the output of a completed step."""
        self.steps[step_id] = output

    def to_scope(self) -> dict[str, Any]:
        """Root object that template paths are resolved against."""
        return {"steps": self.steps, "variables": self.variables}

    def snapshot(self) -> WorkflowContext:
        """Shallow copy, used when handing the context to a result or event."""
        return WorkflowContext(steps=dict(self.steps), variables=dict(self.variables))
