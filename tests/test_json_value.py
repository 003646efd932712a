"""Tests for the JSON value helpers."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

import pytest

from mori.ai.json_value import (
    JSONTypeError,
    as_array,
    as_object,
    as_string,
    dumps,
    get_object,
    get_string,
    is_json_object,
    require_string,
    to_json_value,
)


class Color(Enum):
    RED = "red"


@dataclass
class Event:
    title: str
    start: datetime


class TestAccessors:
    def test_as_object_accepts_string_keyed_dict(self):
        value = {"a": 1}
        assert as_object(value) is value

    @pytest.mark.parametrize("value", [[1], "text", None, 3, {1: "x"}])
    def test_as_object_rejects_other_shapes(self, value):
        with pytest.raises(JSONTypeError):
            as_object(value)

    def test_as_array_and_as_string(self):
        assert as_array([1, 2]) == [1, 2]
        assert as_string("x") == "x"
        with pytest.raises(JSONTypeError):
            as_array({"a": 1})
        with pytest.raises(JSONTypeError):
            as_string(5)

    def test_error_carries_path(self):
        with pytest.raises(JSONTypeError) as excinfo:
            as_string(True, path="$.title")
        assert excinfo.value.path == "$.title"
        assert "boolean" in str(excinfo.value)

    def test_get_string_falls_back_to_default(self):
        obj = {"name": "standup", "count": 3}
        assert get_string(obj, "name") == "standup"
        assert get_string(obj, "count") is None
        assert get_string(obj, "missing", "n/a") == "n/a"

    def test_get_object(self):
        obj = {"inner": {"a": 1}, "flat": 2}
        assert get_object(obj, "inner") == {"a": 1}
        assert get_object(obj, "flat") is None

    def test_require_string(self):
        assert require_string({"tool": "read-calendar"}, "tool") == "read-calendar"
        with pytest.raises(JSONTypeError) as missing:
            require_string({}, "tool")
        assert missing.value.path == "$.tool"
        with pytest.raises(JSONTypeError):
            require_string({"tool": 1}, "tool")

    def test_is_json_object(self):
        assert is_json_object({})
        assert not is_json_object([])


class TestToJsonValue:
    def test_passes_plain_values_through(self):
        payload = {"a": [1, 2.5, None, True, "x"]}
        assert to_json_value(payload) == payload

    def test_converts_tuples_enums_dates_and_dataclasses(self):
        when = datetime(2025, 6, 7, 9, 0, tzinfo=timezone.utc)
        result = to_json_value({"items": (Color.RED, Event("Standup", when))})
        assert result == {
            "items": [
                "red",
                {"title": "Standup", "start": "2025-06-07T09:00:00+00:00"},
            ]
        }

    def test_rejects_unsupported_types(self):
        with pytest.raises(JSONTypeError) as excinfo:
            to_json_value({"handle": object()})
        assert excinfo.value.path == "$.handle"

    def test_rejects_non_string_keys(self):
        with pytest.raises(JSONTypeError):
            to_json_value({1: "x"})

    @pytest.mark.parametrize("number", [float("nan"), float("inf"), float("-inf")])
    def test_rejects_non_finite_floats(self, number):
        with pytest.raises(JSONTypeError):
            to_json_value({"total": number})


def test_dumps_compact_and_pretty():
    value = {"title": "Café", "n": 1}
    assert dumps(value) == '{"title":"Café","n":1}'
    pretty = dumps(value, pretty=True)
    assert "\n" in pretty
    assert json.loads(pretty) == value
