"""Workflow parsing and static validation.

parse_workflow() turns a raw mapping (decoded YAML or JSON) into a typed
Workflow. It is lenient: it only rejects definitions it cannot build a
Workflow from at all. validate_workflow() then checks the structure and
reports every problem it finds in one pass, so an author sees all of
them at once instead of fixing one per run.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from skillflow.core.errors import ValidationError
from skillflow.models.json_value import to_json_object
from skillflow.models.result import ValidationResult
from skillflow.models.retry import BackoffKind
from skillflow.models.workflow import OnFailure, StepRetry, Workflow, WorkflowStep

logger = logging.getLogger(__name__)

# Recognised workflow file extensions.
_WORKFLOW_EXTS = frozenset({".yaml", ".yml", ".json"})

# Above this many steps validation suggests splitting the workflow.
MAX_RECOMMENDED_STEPS = 10


# =============================================================================
# Parsing
# =============================================================================


def parse_workflow(raw: Any) -> Workflow:
    """Build a Workflow from a decoded definition.

    Args:
        raw: Mapping with `name`, `version` and a non-empty `steps` list

    Returns:
        The parsed, immutable Workflow

    Raises:
        ValidationError: If required fields are missing, a step is not a
            mapping, a step has no skill, or on_failure is unknown
    """
    if not isinstance(raw, Mapping):
        raise ValidationError("Failed to parse workflow: definition must be a mapping")

    if not raw.get("name") or not raw.get("version") or raw.get("steps") is None:
        raise ValidationError(
            "Failed to parse workflow: workflow must have: name, version, and steps"
        )

    steps_raw = raw["steps"]
    if not isinstance(steps_raw, list):
        raise ValidationError("Failed to parse workflow: workflow steps must be a list")
    if not steps_raw:
        raise ValidationError("Failed to parse workflow: workflow must have at least one step")

    description = raw.get("description")
    steps = tuple(_parse_step(step_raw, index) for index, step_raw in enumerate(steps_raw))

    return Workflow(
        name=str(raw["name"]),
        version=str(raw["version"]),
        steps=steps,
        description=description if isinstance(description, str) else None,
    )


def load_workflow(text: str) -> Workflow:
    """Parse a workflow from YAML (or JSON) text.

    Raises:
        ValidationError: If the text is not valid YAML or not a valid workflow
    """
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValidationError(f"Failed to parse workflow: {e}") from e

    return parse_workflow(raw)


def load_workflow_file(path: str | Path) -> Workflow:
    """Read and parse a workflow definition file (.yaml, .yml or .json)."""
    path = Path(path)
    if path.suffix.lower() not in _WORKFLOW_EXTS:
        raise ValidationError(
            f"Unsupported workflow file extension '{path.suffix}'. "
            "Only .yaml, .yml and .json are supported."
        )

    logger.debug(f"Loading workflow from {path}")
    return load_workflow(path.read_text(encoding="utf-8"))


def _parse_step(raw: Any, index: int) -> WorkflowStep:
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Failed to parse workflow: step at index {index} must be a mapping")

    raw_id = raw.get("id")
    step_id = raw_id.strip() if isinstance(raw_id, str) and raw_id.strip() else f"step_{index}"

    skill = raw.get("skill")
    if not isinstance(skill, str) or not skill.strip():
        raise ValidationError(f"Failed to parse workflow: step {step_id} must have a skill")

    name = raw.get("name")

    return WorkflowStep(
        id=step_id,
        skill=skill.strip(),
        input=to_json_object(raw.get("input")),
        depends_on=_parse_depends_on(raw.get("depends_on")),
        timeout_ms=_parse_timeout(raw.get("timeout")),
        retry=_parse_retry(raw),
        on_failure=_parse_on_failure(raw.get("on_failure"), step_id),
        name=name if isinstance(name, str) else None,
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _parse_depends_on(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return ()
    return tuple(item.strip() for item in value if isinstance(item, str) and item.strip())


def _parse_timeout(value: Any) -> float | None:
    # Non-numeric timeouts fall back to the caller default at run time
    return value if _is_number(value) else None


def _parse_retry(raw: Mapping) -> StepRetry | None:
    retry = raw.get("retry")
    if isinstance(retry, Mapping):
        max_attempts = retry.get("max_attempts")
        attempts = int(max_attempts) if _is_number(max_attempts) else 1
        try:
            backoff = BackoffKind(retry.get("backoff", BackoffKind.EXPONENTIAL.value))
        except ValueError:
            backoff = BackoffKind.EXPONENTIAL
        return StepRetry(max_attempts=attempts, backoff=backoff)

    # Legacy scalar form: `retries: n` means n attempts after the first
    retries = raw.get("retries")
    if _is_number(retries):
        return StepRetry(max_attempts=int(retries) + 1)

    return None


def _parse_on_failure(value: Any, step_id: str) -> OnFailure:
    if value is None or value == "retry":
        # "retry" is accepted for older definitions; retries come from the retry block
        return OnFailure.STOP
    try:
        return OnFailure(value)
    except ValueError:
        raise ValidationError(
            f"Failed to parse workflow: step {step_id} has unknown on_failure '{value}'"
        ) from None


# =============================================================================
# Validation
# =============================================================================


def validate_workflow(workflow: Workflow) -> ValidationResult:
    """Statically verify a parsed workflow.

    Collects, without short-circuiting: missing name/version/steps,
    duplicate step ids, steps with no skill, dependencies on unknown
    steps, non-positive timeouts, retry blocks with fewer than one
    attempt, and circular dependencies.

    Returns:
        ValidationResult with valid == (no errors)
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not workflow.name:
        errors.append("Workflow must have a name")
    if not workflow.version:
        errors.append("Workflow must have a version")
    if not workflow.steps:
        errors.append("Workflow must have at least one step")

    known_ids = {step.id for step in workflow.steps}
    seen: set[str] = set()

    for index, step in enumerate(workflow.steps):
        if not step.id:
            errors.append(f"Step {index} must have an id")
        elif step.id in seen:
            errors.append(f"Duplicate step id: {step.id}")
        else:
            seen.add(step.id)

        label = step.id or index
        if not step.skill:
            errors.append(f"Step {label} must have a skill")

        for dep in step.depends_on:
            if dep not in known_ids:
                errors.append(f"Step {label} depends on non-existent step {dep}")

        if step.timeout_ms is not None and step.timeout_ms <= 0:
            errors.append(f"Step {label} has invalid timeout: {step.timeout_ms}")

        if step.retry is not None and step.retry.max_attempts < 1:
            errors.append(
                f"Step {label} has invalid retry max_attempts: {step.retry.max_attempts}"
            )

    cycle = find_cycle(workflow)
    if cycle is not None:
        errors.append(f"Circular dependency detected: {cycle[0]} -> {cycle[1]}")

    if len(workflow.steps) > MAX_RECOMMENDED_STEPS:
        warnings.append(
            f"Workflow has {len(workflow.steps)} steps. Consider breaking into smaller workflows."
        )

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def ensure_valid(workflow: Workflow) -> ValidationResult:
    """Validate and raise if the workflow is invalid.

    Raises:
        ValidationError: Carrying every error found
    """
    validation = validate_workflow(workflow)
    if not validation.valid:
        raise ValidationError(
            f"Workflow validation failed: {', '.join(validation.errors)}",
            errors=validation.errors,
        )
    for warning in validation.warnings:
        logger.warning(f"Workflow {workflow.name}: {warning}")
    return validation


def find_cycle(workflow: Workflow) -> tuple[str, str] | None:
    """Return the first dependency edge that closes a cycle, or None.

    Depth-first search with a recursion stack: an edge step -> dep closes
    a cycle when dep is revisited while still on the stack. Edges to
    unknown steps are ignored here (they are reported separately).
    """
    step_map: dict[str, WorkflowStep] = {}
    for step in workflow.steps:
        step_map.setdefault(step.id, step)

    visited: set[str] = set()
    rec_stack: set[str] = set()

    def visit(step_id: str) -> tuple[str, str] | None:
        visited.add(step_id)
        rec_stack.add(step_id)

        for dep in step_map[step_id].depends_on:
            if dep not in step_map:
                continue
            if dep not in visited:
                edge = visit(dep)
                if edge is not None:
                    return edge
            elif dep in rec_stack:
                return (step_id, dep)

        rec_stack.remove(step_id)
        return None

    for step_id in step_map:
        if step_id not in visited:
            edge = visit(step_id)
            if edge is not None:
                return edge

    return None
