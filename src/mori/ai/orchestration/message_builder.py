"""Outbound message construction for completion requests."""

from __future__ import annotations

import logging
from typing import Iterable

from openai.types.chat import ChatCompletionMessageParam

from ..json_value import dumps
from .types import ConversationItem, Message, ToolCall, ToolExecutionResult, ToolFailure

__all__ = ["DEFAULT_HISTORY_WINDOW", "build_messages", "format_tool_result"]

LOGGER = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 10


def build_messages(
    history: Iterable[ConversationItem],
    system_prompt: str,
    *,
    window: int | None = DEFAULT_HISTORY_WINDOW,
) -> list[ChatCompletionMessageParam]:
    """Return the system prompt followed by the most recent chat messages.

    Tool steps are trace records and are never sent. Open assistant
    placeholders have no content yet and are skipped as well. ``window``
    counts messages; ``None`` or a non-positive value sends all of them.
    """
    messages = [
        item
        for item in history
        if isinstance(item, Message) and not (item.role == "assistant" and item.is_open)
    ]
    if window is not None and window > 0 and len(messages) > window:
        LOGGER.debug("Trimming history from %s to %s messages", len(messages), window)
        messages = messages[-window:]

    payload: list[ChatCompletionMessageParam] = [{"role": "system", "content": system_prompt}]
    payload.extend(message.to_chat_param() for message in messages)
    return payload


def format_tool_result(call: ToolCall, result: ToolExecutionResult) -> str:
    """Render a tool outcome as the text fed back to the model."""
    if isinstance(result, ToolFailure):
        return f"Tool {call.tool} failed: {result.message}"
    return f"Tool {call.tool} executed successfully: {dumps(result)}"
