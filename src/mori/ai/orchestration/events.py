"""Typed events emitted by the orchestrator loop.

A run reports progress only through these events, in order. Callers either
pass an :data:`EventSink` callable to the runner or iterate an
:class:`EventChannel`.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field, fields
from typing import Any, AsyncIterator, Callable, ClassVar, TypeAlias

from ..json_value import JSONObject, dumps

__all__ = [
    "StatusEvent",
    "ToolCallEvent",
    "ToolArgumentsEvent",
    "ToolExecutingEvent",
    "ToolResultEvent",
    "ResponseChunkEvent",
    "ResponseReplaceEvent",
    "ErrorEvent",
    "OrchestratorEvent",
    "EventSink",
    "EventChannel",
    "TERMINAL_EVENT_KINDS",
]

LOGGER = logging.getLogger(__name__)


class _EventBase:
    """Shared serialization for event dataclasses."""

    __slots__ = ()

    kind: ClassVar[str] = ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind}
        for item in fields(self):  # type: ignore[arg-type]
            payload[item.name] = getattr(self, item.name)
        return payload


@dataclass(slots=True, frozen=True)
class StatusEvent(_EventBase):
    kind: ClassVar[str] = "status"

    text: str


@dataclass(slots=True, frozen=True)
class ToolCallEvent(_EventBase):
    kind: ClassVar[str] = "tool_call"

    name: str


@dataclass(slots=True, frozen=True)
class ToolArgumentsEvent(_EventBase):
    kind: ClassVar[str] = "tool_arguments"

    name: str
    arguments: JSONObject = field(default_factory=dict)

    @property
    def text(self) -> str:
        return dumps(self.arguments, pretty=True)


@dataclass(slots=True, frozen=True)
class ToolExecutingEvent(_EventBase):
    kind: ClassVar[str] = "tool_executing"

    name: str


@dataclass(slots=True, frozen=True)
class ToolResultEvent(_EventBase):
    kind: ClassVar[str] = "tool_result"

    name: str
    result: JSONObject = field(default_factory=dict)

    @property
    def text(self) -> str:
        return dumps(self.result, pretty=True)


@dataclass(slots=True, frozen=True)
class ResponseChunkEvent(_EventBase):
    kind: ClassVar[str] = "response_chunk"

    text: str


@dataclass(slots=True, frozen=True)
class ResponseReplaceEvent(_EventBase):
    """Final cleaned assistant text; replaces everything streamed so far."""

    kind: ClassVar[str] = "response_replace"

    text: str


@dataclass(slots=True, frozen=True)
class ErrorEvent(_EventBase):
    """Failure report.

    ``error_kind`` is one of ``server_error``, ``client_error``,
    ``transport``, ``invalid_response``, ``internal`` (terminal) or ``tool``
    (a single tool call failed and the run continues).
    """

    kind: ClassVar[str] = "error"

    description: str
    error_kind: str
    status_code: int | None = None
    tool: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.error_kind != "tool"


OrchestratorEvent: TypeAlias = (
    "StatusEvent | ToolCallEvent | ToolArgumentsEvent | ToolExecutingEvent"
    " | ToolResultEvent | ResponseChunkEvent | ResponseReplaceEvent | ErrorEvent"
)

EventSink = Callable[["OrchestratorEvent"], None]

TERMINAL_EVENT_KINDS: frozenset[str] = frozenset({"response_replace", "error"})


class EventChannel:
    """Ordered single-producer event buffer with async iteration.

    ``emit`` never blocks. When ``maxsize`` events are already queued the
    oldest one is discarded and counted in :attr:`dropped`; the order of the
    remaining events is unchanged.

    Example:
        channel = orchestrator.submit("What's on my calendar today?")
        async for event in channel:
            render(event)
    """

    def __init__(self, maxsize: int = 256) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self._maxsize = maxsize
        self._buffer: deque[OrchestratorEvent] = deque()
        self._wakeup = asyncio.Event()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def maxsize(self) -> int:
        return self._maxsize

    def emit(self, event: OrchestratorEvent) -> None:
        if self._closed:
            LOGGER.debug("Dropping %s event emitted after close", event.kind)
            return
        if len(self._buffer) >= self._maxsize:
            discarded = self._buffer.popleft()
            self.dropped += 1
            LOGGER.debug("Event channel full; dropped oldest %s event", discarded.kind)
        self._buffer.append(event)
        self._wakeup.set()

    __call__ = emit

    def close(self) -> None:
        """End iteration once the queued events have been consumed."""
        self._closed = True
        self._wakeup.set()

    def drain(self) -> list[OrchestratorEvent]:
        """Remove and return every queued event without waiting."""
        events = list(self._buffer)
        self._buffer.clear()
        return events

    def __len__(self) -> int:
        return len(self._buffer)

    def __aiter__(self) -> AsyncIterator[OrchestratorEvent]:
        return self

    async def __anext__(self) -> OrchestratorEvent:
        while True:
            if self._buffer:
                return self._buffer.popleft()
            if self._closed:
                raise StopAsyncIteration
            self._wakeup.clear()
            await self._wakeup.wait()
