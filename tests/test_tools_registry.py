"""Tests for ToolRegistry and tool specs."""

from __future__ import annotations

import pytest

from mori.ai.orchestration.tools import (
    DuplicateToolError,
    SimpleTool,
    ToolCategory,
    ToolNotFoundError,
    ToolRegistry,
    ToolSpec,
)


CALENDAR_SPEC = ToolSpec(
    name="read-calendar",
    description="Read events for a date range",
    parameters={"startDate": "YYYY/MM/DD (required)", "endDate": "YYYY/MM/DD"},
    category=ToolCategory.READ,
)


def _noop(arguments):
    return {"ok": True}


class TestToolSpec:
    def test_describe_lists_arguments(self):
        assert CALENDAR_SPEC.describe() == (
            "Tool: read-calendar\n"
            "Description: Read events for a date range\n"
            "Arguments:\n"
            "- startDate: YYYY/MM/DD (required)\n"
            "- endDate: YYYY/MM/DD"
        )

    def test_describe_without_arguments(self):
        spec = ToolSpec(name="ping", description="Check liveness")
        assert spec.describe() == "Tool: ping\nDescription: Check liveness"

    def test_to_dict(self):
        data = CALENDAR_SPEC.to_dict()
        assert data["name"] == "read-calendar"
        assert data["category"] == "read"
        assert data["parameters"]["startDate"].endswith("(required)")


class TestRegistration:
    def test_register_function_and_lookup(self):
        registry = ToolRegistry()
        registration = registry.register_function(CALENDAR_SPEC, _noop)

        assert registration.name == "read-calendar"
        assert registry.has("read-calendar")
        assert "read-calendar" in registry
        assert isinstance(registry.get("read-calendar"), SimpleTool)
        assert len(registry) == 1

    def test_duplicate_name_rejected(self):
        registry = ToolRegistry()
        registry.register_function(CALENDAR_SPEC, _noop)

        with pytest.raises(DuplicateToolError) as excinfo:
            registry.register_function(CALENDAR_SPEC, _noop)
        assert excinfo.value.name == "read-calendar"

    def test_override_replaces_tool(self):
        registry = ToolRegistry()
        registry.register_function(CALENDAR_SPEC, _noop)
        replacement = lambda arguments: {"ok": False}  # noqa: E731

        registry.register_function(CALENDAR_SPEC, replacement, allow_override=True)

        assert registry.get("read-calendar").handler is replacement
        assert len(registry) == 1

    def test_empty_name_rejected(self):
        registry = ToolRegistry()
        with pytest.raises(ValueError):
            registry.register_function(ToolSpec(name="", description="nameless"), _noop)

    def test_unregister(self):
        registry = ToolRegistry()
        registry.register_function(CALENDAR_SPEC, _noop)

        assert registry.unregister("read-calendar") is True
        assert registry.unregister("read-calendar") is False
        assert registry.get("read-calendar") is None


class TestEnableDisable:
    def test_disabled_tool_is_hidden(self):
        registry = ToolRegistry()
        registry.register_function(CALENDAR_SPEC, _noop, enabled=False)

        assert registry.get("read-calendar") is None
        assert not registry.has("read-calendar")
        assert registry.list_names() == []
        assert registry.list_names(include_disabled=True) == ["read-calendar"]
        with pytest.raises(ToolNotFoundError):
            registry.get_required("read-calendar")

    def test_enable_and_disable_toggle(self):
        registry = ToolRegistry()
        registry.register_function(CALENDAR_SPEC, _noop)

        assert registry.disable("read-calendar")
        assert not registry.has("read-calendar")
        assert registry.enable("read-calendar")
        assert registry.has("read-calendar")
        assert not registry.enable("missing")


class TestListing:
    def test_preserves_registration_order(self):
        registry = ToolRegistry()
        for name in ("update-memory", "read-calendar", "add-event"):
            registry.register_function(ToolSpec(name=name, description=name), _noop)

        assert registry.list_names() == ["update-memory", "read-calendar", "add-event"]
        assert [spec.name for spec in registry.list_tools()] == registry.list_names()

    def test_describe_tools_separates_with_blank_lines(self):
        registry = ToolRegistry()
        registry.register_function(ToolSpec(name="a", description="first"), _noop)
        registry.register_function(ToolSpec(name="b", description="second"), _noop)

        assert registry.describe_tools() == (
            "Tool: a\nDescription: first\n\nTool: b\nDescription: second"
        )

    def test_clear(self):
        registry = ToolRegistry()
        registry.register_function(CALENDAR_SPEC, _noop)
        registry.clear()
        assert len(registry) == 0


@pytest.mark.asyncio
async def test_simple_tool_runs_sync_and_async_handlers():
    async def async_handler(arguments):
        return {"echo": arguments["value"]}

    sync_tool = SimpleTool(spec=ToolSpec(name="s", description="sync"), handler=lambda a: a["value"])
    async_tool = SimpleTool(spec=ToolSpec(name="a", description="async"), handler=async_handler)

    assert await sync_tool.execute({"value": 1}) == 1
    assert await async_tool.execute({"value": 2}) == {"echo": 2}
