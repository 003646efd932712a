"""Tool system types for the orchestrator.

Tools receive their arguments as a JSON object and return a JSON object.
The orchestrator never looks inside either; it only needs a name, a
description for the system prompt and an async ``execute``.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Mapping, Protocol, runtime_checkable

from ...json_value import JSONObject

__all__ = [
    "ToolSpec",
    "ToolHandler",
    "AsyncToolHandler",
    "Tool",
    "SimpleTool",
    "ToolCategory",
]


# -----------------------------------------------------------------------------
# Tool Categories
# -----------------------------------------------------------------------------


class ToolCategory:
    """Standard tool categories for organization."""

    READ = "read"
    WRITE = "write"
    MEMORY = "memory"
    UTILITY = "utility"


# -----------------------------------------------------------------------------
# Tool Specification
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a tool's interface.

    Attributes:
        name: Unique identifier the model uses in ``{"tool": ...}``.
        description: Human-readable description of when to use the tool.
        parameters: Argument name to short description; a trailing
            ``(required)`` marker is rendered as-is.
        category: Tool category for organization.
    """

    name: str
    description: str
    parameters: Mapping[str, str] = field(default_factory=dict)
    category: str = ToolCategory.UTILITY

    def describe(self) -> str:
        """Render the plain-text descriptor embedded in the system prompt."""
        lines = [f"Tool: {self.name}", f"Description: {self.description}"]
        if self.parameters:
            lines.append("Arguments:")
            for name, summary in self.parameters.items():
                lines.append(f"- {name}: {summary}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": dict(self.parameters),
            "category": self.category,
        }


# -----------------------------------------------------------------------------
# Tool Handler Types
# -----------------------------------------------------------------------------

ToolHandler = Callable[[JSONObject], Any]

AsyncToolHandler = Callable[[JSONObject], Coroutine[Any, Any, Any]]


# -----------------------------------------------------------------------------
# Tool Protocol
# -----------------------------------------------------------------------------


@runtime_checkable
class Tool(Protocol):
    """Protocol for tool implementations."""

    @property
    def name(self) -> str:
        ...

    @property
    def spec(self) -> ToolSpec:
        ...

    async def execute(self, arguments: JSONObject) -> Any:
        """Run the tool. Any exception is reported back to the model."""
        ...


# -----------------------------------------------------------------------------
# Simple Tool Implementation
# -----------------------------------------------------------------------------


@dataclass
class SimpleTool:
    """Tool wrapping a plain sync or async callable.

    Example:
        tool = SimpleTool(
            spec=ToolSpec(name="read-calendar", description="Read events"),
            handler=calendar.read,
        )
    """

    spec: ToolSpec
    handler: ToolHandler | AsyncToolHandler
    _is_async: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self._is_async = inspect.iscoroutinefunction(self.handler)

    @property
    def name(self) -> str:
        return self.spec.name

    async def execute(self, arguments: JSONObject) -> Any:
        result = self.handler(arguments)
        if self._is_async or inspect.isawaitable(result):
            return await result
        return result
