"""Tests for orchestrator events and the event channel."""

from __future__ import annotations

import asyncio

import pytest

from mori.ai.orchestration.events import (
    TERMINAL_EVENT_KINDS,
    ErrorEvent,
    EventChannel,
    ResponseChunkEvent,
    ResponseReplaceEvent,
    StatusEvent,
    ToolArgumentsEvent,
    ToolResultEvent,
)


class TestEvents:
    def test_kinds(self):
        assert StatusEvent("x").kind == "status"
        assert ResponseChunkEvent("x").kind == "response_chunk"
        assert ResponseReplaceEvent("x").kind == "response_replace"
        assert ErrorEvent("x", "transport").kind == "error"
        assert TERMINAL_EVENT_KINDS == {"response_replace", "error"}

    def test_to_dict_includes_kind_and_fields(self):
        event = ErrorEvent("HTTP 500: down", "server_error", status_code=500)
        assert event.to_dict() == {
            "kind": "error",
            "description": "HTTP 500: down",
            "error_kind": "server_error",
            "status_code": 500,
            "tool": None,
        }

    def test_tool_errors_are_not_terminal(self):
        assert not ErrorEvent("boom", "tool", tool="read-calendar").is_terminal
        assert ErrorEvent("boom", "transport").is_terminal

    def test_argument_and_result_text_is_pretty_json(self):
        args = ToolArgumentsEvent("read-calendar", {"startDate": "2025/06/07"})
        result = ToolResultEvent("read-calendar", {"events": []})
        assert args.text == '{\n  "startDate": "2025/06/07"\n}'
        assert '"events": []' in result.text

    def test_events_are_frozen(self):
        event = StatusEvent("x")
        with pytest.raises(AttributeError):
            event.text = "y"  # type: ignore[misc]


class TestEventChannel:
    @pytest.mark.asyncio
    async def test_iterates_in_order_until_closed(self):
        channel = EventChannel()
        channel.emit(StatusEvent("one"))
        channel(StatusEvent("two"))
        channel.close()

        received = [event.text async for event in channel]

        assert received == ["one", "two"]

    @pytest.mark.asyncio
    async def test_consumer_waits_for_producer(self):
        channel = EventChannel()

        async def produce():
            await asyncio.sleep(0)
            channel.emit(ResponseChunkEvent("Hel"))
            await asyncio.sleep(0)
            channel.emit(ResponseChunkEvent("lo"))
            channel.close()

        producer = asyncio.create_task(produce())
        received = [event.text async for event in channel]
        await producer

        assert received == ["Hel", "lo"]

    def test_full_buffer_drops_oldest(self):
        channel = EventChannel(maxsize=2)
        for text in ("a", "b", "c"):
            channel.emit(StatusEvent(text))

        assert channel.dropped == 1
        assert [event.text for event in channel.drain()] == ["b", "c"]
        assert len(channel) == 0

    def test_emit_after_close_is_ignored(self):
        channel = EventChannel()
        channel.close()
        channel.emit(StatusEvent("late"))

        assert channel.closed
        assert len(channel) == 0

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            EventChannel(maxsize=0)
