"""Tool system for the orchestrator loop.

Example:
    from mori.ai.orchestration.tools import ToolExecutor, ToolRegistry, ToolSpec

    registry = ToolRegistry()
    registry.register_function(
        spec=ToolSpec(name="read-calendar", description="Read calendar events"),
        handler=calendar.read_events,
    )
    executor = ToolExecutor(registry)
    result = await executor.execute("read-calendar", {"startDate": "2025/06/07"})
"""

from .types import (
    Tool,
    ToolSpec,
    ToolHandler,
    AsyncToolHandler,
    SimpleTool,
    ToolCategory,
)

from .registry import (
    ToolRegistry,
    ToolRegistration,
    DuplicateToolError,
    ToolNotFoundError,
)

from .executor import (
    ToolExecutor,
    ExecutorConfig,
    ToolExecutionError,
    UnknownToolError,
    FailureKind,
)

__all__ = [
    # types.py
    "Tool",
    "ToolSpec",
    "ToolHandler",
    "AsyncToolHandler",
    "SimpleTool",
    "ToolCategory",
    # registry.py
    "ToolRegistry",
    "ToolRegistration",
    "DuplicateToolError",
    "ToolNotFoundError",
    # executor.py
    "ToolExecutor",
    "ExecutorConfig",
    "ToolExecutionError",
    "UnknownToolError",
    "FailureKind",
]
