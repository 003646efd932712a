"""JSON value helpers used for tool arguments and tool results.

Tool payloads cross two untyped boundaries (model output and tool providers),
so values are described by the :data:`JSONValue` alias and read through
explicit accessors that raise :class:`JSONTypeError` instead of failing with
an arbitrary ``KeyError``/``AttributeError`` deep inside a tool.
"""

from __future__ import annotations

import json
import math
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, TypeAlias, TypeGuard

__all__ = [
    "JSONValue",
    "JSONObject",
    "JSONArray",
    "JSONTypeError",
    "is_json_object",
    "as_object",
    "as_array",
    "as_string",
    "get_string",
    "get_object",
    "require_string",
    "to_json_value",
    "dumps",
]

JSONValue: TypeAlias = "None | bool | int | float | str | list[JSONValue] | dict[str, JSONValue]"
JSONObject: TypeAlias = "dict[str, JSONValue]"
JSONArray: TypeAlias = "list[JSONValue]"

_MAX_DEPTH = 64


class JSONTypeError(TypeError):
    """Raised when a JSON value does not have the expected shape."""

    def __init__(self, message: str, *, path: str = "$") -> None:
        self.path = path
        super().__init__(f"{path}: {message}")


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def is_json_object(value: Any) -> TypeGuard[JSONObject]:
    """Return True when ``value`` is a dict keyed by strings."""
    return isinstance(value, dict) and all(isinstance(key, str) for key in value)


def as_object(value: Any, *, path: str = "$") -> JSONObject:
    if not is_json_object(value):
        raise JSONTypeError(f"expected object, got {_type_name(value)}", path=path)
    return value


def as_array(value: Any, *, path: str = "$") -> JSONArray:
    if not isinstance(value, list):
        raise JSONTypeError(f"expected array, got {_type_name(value)}", path=path)
    return value


def as_string(value: Any, *, path: str = "$") -> str:
    if not isinstance(value, str):
        raise JSONTypeError(f"expected string, got {_type_name(value)}", path=path)
    return value


def get_string(obj: Mapping[str, Any], key: str, default: str | None = None) -> str | None:
    """Return ``obj[key]`` when it is a string, otherwise ``default``."""
    value = obj.get(key)
    if isinstance(value, str):
        return value
    return default


def get_object(obj: Mapping[str, Any], key: str) -> JSONObject | None:
    """Return ``obj[key]`` when it is an object, otherwise None."""
    value = obj.get(key)
    if is_json_object(value):
        return value
    return None


def require_string(obj: Mapping[str, Any], key: str) -> str:
    """Return ``obj[key]`` as a string, raising when missing or mistyped."""
    if key not in obj:
        raise JSONTypeError("missing required field", path=f"$.{key}")
    return as_string(obj[key], path=f"$.{key}")


def to_json_value(value: Any, *, _depth: int = 0, _path: str = "$") -> JSONValue:
    """Normalize ``value`` into plain JSON types.

    Mappings, sequences, dataclasses, enums and dates are converted. Anything
    else raises :class:`JSONTypeError`.
    """
    if _depth > _MAX_DEPTH:
        raise JSONTypeError("value nested too deeply", path=_path)
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise JSONTypeError(f"{value!r} is not representable", path=_path)
        return value
    if isinstance(value, Enum):
        return to_json_value(value.value, _depth=_depth + 1, _path=_path)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return to_json_value(asdict(value), _depth=_depth + 1, _path=_path)
    if isinstance(value, Mapping):
        result: JSONObject = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise JSONTypeError(f"object keys must be strings, got {_type_name(key)}", path=_path)
            result[key] = to_json_value(item, _depth=_depth + 1, _path=f"{_path}.{key}")
        return result
    if isinstance(value, (list, tuple)):
        return [
            to_json_value(item, _depth=_depth + 1, _path=f"{_path}[{index}]")
            for index, item in enumerate(value)
        ]
    raise JSONTypeError(f"unsupported type {type(value).__name__}", path=_path)


def dumps(value: JSONValue, *, pretty: bool = False) -> str:
    """Serialize a JSON value for events and conversation text."""
    if pretty:
        return json.dumps(value, ensure_ascii=False, indent=2)
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
