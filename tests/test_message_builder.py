"""Tests for outbound message construction."""

from __future__ import annotations

from mori.ai.orchestration.message_builder import build_messages, format_tool_result
from mori.ai.orchestration.types import Message, StepStatus, ToolCall, ToolFailure, ToolStep


def test_system_prompt_comes_first():
    messages = build_messages([Message.user("hi")], "SYSTEM")

    assert messages == [
        {"role": "system", "content": "SYSTEM"},
        {"role": "user", "content": "hi"},
    ]


def test_tool_steps_and_open_placeholders_are_skipped():
    history = [
        Message.user("What's on today?"),
        ToolStep(StepStatus.RESULT, "read-calendar", {"result": "{}"}),
        Message.assistant("", is_open=True),
    ]

    messages = build_messages(history, "SYSTEM")

    assert [m["role"] for m in messages] == ["system", "user"]


def test_window_keeps_most_recent_messages():
    history = [Message.user(str(n)) for n in range(15)]

    messages = build_messages(history, "SYSTEM", window=10)

    assert len(messages) == 11
    assert messages[1]["content"] == "5"
    assert messages[-1]["content"] == "14"


def test_window_counts_messages_not_steps():
    history = []
    for n in range(4):
        history.append(Message.user(str(n)))
        history.append(ToolStep(StepStatus.RESULT, "t"))

    messages = build_messages(history, "SYSTEM", window=3)

    assert [m["content"] for m in messages[1:]] == ["1", "2", "3"]


def test_disabled_window_sends_everything():
    history = [Message.user(str(n)) for n in range(12)]
    assert len(build_messages(history, "S", window=None)) == 13
    assert len(build_messages(history, "S", window=0)) == 13


class TestFormatToolResult:
    def test_success_uses_compact_json(self):
        call = ToolCall("read-calendar", {"startDate": "2025/06/07"})

        text = format_tool_result(call, {"events": [{"title": "Standup"}]})

        assert text == 'Tool read-calendar executed successfully: {"events":[{"title":"Standup"}]}'

    def test_failure(self):
        call = ToolCall("send-email")

        text = format_tool_result(call, ToolFailure("send-email", "Unknown tool: send-email", "unknown_tool"))

        assert text == "Tool send-email failed: Unknown tool: send-email"
