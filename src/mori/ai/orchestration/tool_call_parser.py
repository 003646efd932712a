"""Tool call parsing for fenced JSON blocks in model responses.

The model requests tools by embedding blocks like::

    ```json
    {"tool": "read-calendar", "arguments": {"startDate": "2025/06/07"}}
    ```

in its free text. A block may also hold an array of such objects. Blocks
that do not parse, or that do not have the expected shape, are left in the
visible text untouched.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from ..json_value import JSONValue, is_json_object
from .types import ToolCall

__all__ = [
    "FENCED_JSON_BLOCK_RE",
    "ExtractionError",
    "ExtractionResult",
    "extract_tool_calls",
    "parse_tool_call_block",
    "try_parse_json_block",
]

LOGGER = logging.getLogger(__name__)

FENCED_JSON_BLOCK_RE = re.compile(
    r"```json\s*(?P<body>.*?)```",
    re.IGNORECASE | re.DOTALL,
)

_MISSING = object()


class ExtractionError(ValueError):
    """Raised for a fenced block that does not describe tool calls."""


@dataclass(slots=True, frozen=True)
class ExtractionResult:
    """Tool calls found in a response plus the text left for the user."""

    calls: tuple[ToolCall, ...]
    visible_text: str

    @property
    def has_calls(self) -> bool:
        return bool(self.calls)


def extract_tool_calls(text: str) -> ExtractionResult:
    """Extract tool calls from every fenced ``json`` block in ``text``.

    Calls are returned in block order, with arrays flattened in element
    order. Successfully extracted blocks are removed from the visible text;
    rejected blocks stay where they were.
    """
    if not text or not isinstance(text, str):
        return ExtractionResult(calls=(), visible_text=text or "")

    matches = list(FENCED_JSON_BLOCK_RE.finditer(text))
    if not matches:
        return ExtractionResult(calls=(), visible_text=text)

    calls: list[ToolCall] = []
    fragments: list[str] = []
    cursor = 0
    for match in matches:
        try:
            block_calls = parse_tool_call_block(match.group("body"))
        except ExtractionError as exc:
            LOGGER.debug("Ignoring fenced block at offset %s: %s", match.start(), exc)
            continue
        fragments.append(text[cursor : match.start()])
        cursor = match.end()
        calls.extend(block_calls)

    fragments.append(text[cursor:])
    visible = "".join(fragments).strip()
    if calls:
        LOGGER.debug("Extracted %s tool call(s) from %s block(s)", len(calls), len(matches))
    return ExtractionResult(calls=tuple(calls), visible_text=visible)


def parse_tool_call_block(body: str) -> list[ToolCall]:
    """Parse one fenced block body into tool calls.

    Raises:
        ExtractionError: If the body is not JSON, or is not a tool call object
            or a non-empty array made only of tool call objects.
    """
    parsed = try_parse_json_block(body.strip())
    if parsed is _MISSING:
        raise ExtractionError("block is not valid JSON")
    if isinstance(parsed, list):
        if not parsed:
            raise ExtractionError("empty tool call array")
        return [_coerce_tool_call(entry, index) for index, entry in enumerate(parsed)]
    return [_coerce_tool_call(parsed, None)]


def try_parse_json_block(text: str) -> Any:
    """Attempt to parse text as JSON, returning a sentinel on failure."""
    if not text:
        return _MISSING
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return _MISSING


def _coerce_tool_call(value: JSONValue, index: int | None) -> ToolCall:
    where = "block" if index is None else f"element {index}"
    if not is_json_object(value):
        raise ExtractionError(f"{where} is not an object")
    tool = value.get("tool")
    arguments = value.get("arguments")
    if not isinstance(tool, str):
        raise ExtractionError(f"{where} has no string 'tool' field")
    if not is_json_object(arguments):
        raise ExtractionError(f"{where} has no object 'arguments' field")
    return ToolCall(tool=tool, arguments=arguments)
