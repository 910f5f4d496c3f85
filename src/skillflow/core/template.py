"""
Template substitution for step inputs.

String leaves of a step's input may contain `{{ dotted.path }}` tokens
that are resolved against the run's context when the step is
dispatched:

    {"query": "{{ variables.topic }}", "text": "{{ steps.research.summary }}"}

Objects are indexed by key, arrays by integer index. Scalars are
stringified the way JSON spells them (`true`, `false`, `null`), compound
values are rendered as canonical JSON. A token whose path does not
resolve is left exactly as written, so a broken reference stays visible
in the skill's input instead of silently becoming an empty string.
Substitution never raises.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from skillflow.models.context import WorkflowContext
from skillflow.models.json_value import JsonValue, canonical_json

_TOKEN_PATTERN = re.compile(r"\{\{(.*?)\}\}")

# Sentinel distinguishing "path not found" from a resolved None
_UNRESOLVED = object()


def substitute(value: JsonValue, context: WorkflowContext | Mapping[str, Any]) -> JsonValue:
    """
    Replace template tokens in every string leaf of `value`.

    Args:
        value: Any JSON value; lists and objects are rebuilt recursively,
            keys are left as they are
        context: A WorkflowContext (read through to_scope()) or a plain
            mapping used as the lookup root

    Returns:
        A new value with the same structure. The input is not modified.
    """
    scope = context.to_scope() if isinstance(context, WorkflowContext) else context
    return _substitute_value(value, scope)


def resolve_path(scope: Any, path: str) -> Any:
    """
    Walk a dotted path through nested mappings and sequences.

    Returns:
        The value found, or the module's unresolved sentinel when any
        segment is missing, out of range, or not an integer on a list
    """
    current = scope
    for key in path.split("."):
        if isinstance(current, (list, tuple)):
            try:
                index = int(key)
            except ValueError:
                return _UNRESOLVED
            if index < 0 or index >= len(current):
                return _UNRESOLVED
            current = current[index]
        elif isinstance(current, Mapping):
            if key not in current:
                return _UNRESOLVED
            current = current[key]
        else:
            return _UNRESOLVED
    return current


def is_resolved(value: Any) -> bool:
    """False for the sentinel resolve_path() returns on a miss."""
    return value is not _UNRESOLVED


def _substitute_value(value: Any, scope: Any) -> Any:
    if isinstance(value, str):
        return _substitute_string(value, scope) if "{{" in value else value
    if isinstance(value, (list, tuple)):
        return [_substitute_value(item, scope) for item in value]
    if isinstance(value, Mapping):
        return {key: _substitute_value(item, scope) for key, item in value.items()}
    return value


def _substitute_string(template: str, scope: Any) -> str:
    def replace(match: re.Match[str]) -> str:
        resolved = resolve_path(scope, match.group(1).strip())
        if resolved is _UNRESOLVED:
            return match.group(0)
        return _stringify(resolved)

    return _TOKEN_PATTERN.sub(replace, template)


def _stringify(value: Any) -> str:
    # bool before int: bool is an int subclass
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return canonical_json(value)


__all__ = ["substitute", "resolve_path", "is_resolved"]
