"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Iterable, Mapping, Sequence

from mori.ai.orchestration.events import OrchestratorEvent
from mori.ai.orchestration.tools import ToolRegistry, ToolSpec


def fenced(payload: str) -> str:
    """Wrap ``payload`` in a fenced json block."""
    return f"```json\n{payload}\n```"


class ScriptedModelClient:
    """Model client stub replaying one scripted response per request.

    Each response is a sequence of chunks; an exception instance in place of
    a response (or of a chunk) is raised at that point of the stream.

    Example:
        client = ScriptedModelClient([["Hello", " there"], ServerUnavailableError(500)])
    """

    def __init__(self, responses: Iterable[Any]) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def stream_chat(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        temperature: float | None = None,
    ) -> AsyncIterator[str]:
        self.calls.append({"messages": [dict(m) for m in messages], "temperature": temperature})
        if not self.responses:
            raise AssertionError("Unexpected completion request")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        for chunk in response:
            if isinstance(chunk, BaseException):
                raise chunk
            await asyncio.sleep(0)
            yield chunk


class BlockingModelClient:
    """Model client that yields ``first_chunk`` then waits until released."""

    def __init__(self, first_chunk: str = "Thinking") -> None:
        self.first_chunk = first_chunk
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def stream_chat(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        temperature: float | None = None,
    ) -> AsyncIterator[str]:
        self.calls += 1
        yield self.first_chunk
        self.started.set()
        await self.release.wait()
        yield " done"


class StaticPromptBuilder:
    """Prompt builder returning a fixed system prompt."""

    def __init__(self, text: str = "SYSTEM") -> None:
        self.text = text
        self.calls: list[tuple[list[str], str]] = []

    def build(self, tools: Sequence[ToolSpec], locale: str) -> str:
        self.calls.append(([spec.name for spec in tools], locale))
        return self.text


class EventRecorder:
    """Callable event sink that keeps every event."""

    def __init__(self) -> None:
        self.events: list[OrchestratorEvent] = []

    def __call__(self, event: OrchestratorEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> list[str]:
        return [event.kind for event in self.events]

    def of_kind(self, kind: str) -> list[OrchestratorEvent]:
        return [event for event in self.events if event.kind == kind]


def make_registry(**handlers: Any) -> ToolRegistry:
    """Register each keyword as a tool; underscores become dashes in the name."""
    registry = ToolRegistry()
    for attr_name, handler in handlers.items():
        name = attr_name.replace("_", "-")
        registry.register_function(
            spec=ToolSpec(name=name, description=f"{name} tool"),
            handler=handler,
        )
    return registry
