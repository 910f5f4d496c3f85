"""JSON-compatible value type shared by skill inputs and outputs.

Skills consume and produce JSON-like trees. Python already models the
tagged union (null, bool, number, string, array, object) with its
builtin types, so JsonValue is a type alias over them rather than a
wrapper class. Code that needs to branch on the variant uses
isinstance checks in the order bool → int/float → str → list → dict,
since bool is a subclass of int.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, TypeAlias, Union

JsonPrimitive: TypeAlias = Union[None, bool, int, float, str]
JsonValue: TypeAlias = Union[JsonPrimitive, list["JsonValue"], dict[str, "JsonValue"]]
JsonObject: TypeAlias = dict[str, JsonValue]


def to_json_value(value: Any) -> JsonValue:
    """Coerce an arbitrary parsed value into a JsonValue tree.

    Tuples become lists, mapping keys are stringified and anything that
    is not a JSON type is replaced by its string form.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): to_json_value(entry) for key, entry in value.items()}
    return str(value)


def to_json_object(value: Any) -> JsonObject:
    """Coerce a parsed value into a JSON object, or {} if it is not a mapping."""
    if not isinstance(value, Mapping):
        return {}
    return {str(key): to_json_value(entry) for key, entry in value.items()}


def canonical_json(value: Any) -> str:
    """Serialize a value to its canonical textual form.

    Keys are sorted and separators are compact so that two equal trees
    always produce the same string. Values json cannot encode fall back
    to str().
    """
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


__all__ = [
    "JsonPrimitive",
    "JsonValue",
    "JsonObject",
    "to_json_value",
    "to_json_object",
    "canonical_json",
]
