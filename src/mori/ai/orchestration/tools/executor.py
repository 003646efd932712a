"""Tool executor used by the orchestrator loop.

The executor resolves a tool by name, runs it with a timeout and normalizes
its output to a JSON object. Every failure surfaces as a
:class:`ToolExecutionError` carrying a ``kind`` so the runner can turn it into
conversation text instead of aborting the run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

from ...json_value import JSONObject, JSONTypeError, is_json_object, to_json_value
from .registry import ToolRegistry

__all__ = [
    "ToolExecutor",
    "ExecutorConfig",
    "ToolExecutionError",
    "UnknownToolError",
    "FailureKind",
]

LOGGER = logging.getLogger(__name__)


class FailureKind:
    """Failure categories reported for a tool call."""

    UNKNOWN_TOOL = "unknown_tool"
    EXECUTION_FAILED = "execution_failed"
    TIMEOUT = "timeout"
    INVALID_RESULT = "invalid_result"


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class ToolExecutionError(Exception):
    """Raised when a tool call cannot produce a result."""

    def __init__(
        self,
        message: str,
        tool_name: str = "",
        *,
        kind: str = FailureKind.EXECUTION_FAILED,
        cause: BaseException | None = None,
    ) -> None:
        self.tool_name = tool_name
        self.kind = kind
        self.cause = cause
        super().__init__(message)


class UnknownToolError(ToolExecutionError):
    """Raised for names that are not registered (or are disabled)."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(
            f"Unknown tool: {tool_name}",
            tool_name,
            kind=FailureKind.UNKNOWN_TOOL,
        )


# -----------------------------------------------------------------------------
# Executor Configuration
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ExecutorConfig:
    """Configuration for the tool executor.

    Attributes:
        default_timeout: Seconds before a tool call is abandoned; None disables it.
        log_arguments: Whether to log tool arguments (may contain personal data).
        log_results: Whether to log tool results.
    """

    default_timeout: float | None = 30.0
    log_arguments: bool = False
    log_results: bool = False


# -----------------------------------------------------------------------------
# Tool Executor
# -----------------------------------------------------------------------------


class ToolExecutor:
    """Executes registry tools one call at a time.

    Example:
        executor = ToolExecutor(registry)
        result = await executor.execute("read-calendar", {"startDate": "2025/06/07"})
    """

    def __init__(
        self,
        registry: ToolRegistry,
        config: ExecutorConfig | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or ExecutorConfig()

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def config(self) -> ExecutorConfig:
        return self._config

    async def execute(
        self,
        name: str,
        arguments: JSONObject,
        *,
        timeout: float | None = None,
    ) -> JSONObject:
        """Execute a tool by name.

        Raises:
            UnknownToolError: If no enabled tool has this name.
            ToolExecutionError: If the tool raised, timed out or returned
                something that is not JSON.
        """
        if self._config.log_arguments:
            LOGGER.debug("Executing tool %s with arguments: %s", name, arguments)
        else:
            LOGGER.debug("Executing tool %s", name)

        tool = self._registry.get(name)
        if tool is None:
            LOGGER.warning("Tool '%s' not found or disabled", name)
            raise UnknownToolError(name)

        effective_timeout = timeout if timeout is not None else self._config.default_timeout
        start_time = time.perf_counter()
        try:
            if effective_timeout is not None and effective_timeout > 0:
                raw = await asyncio.wait_for(tool.execute(arguments), timeout=effective_timeout)
            else:
                raw = await tool.execute(arguments)
        except asyncio.TimeoutError as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            LOGGER.warning(
                "Tool %s timed out after %.1fms (timeout=%.1fs)",
                name,
                duration_ms,
                effective_timeout,
            )
            raise ToolExecutionError(
                f"Timed out after {effective_timeout:g}s",
                name,
                kind=FailureKind.TIMEOUT,
                cause=exc,
            ) from exc
        except ToolExecutionError:
            raise
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            LOGGER.warning("Tool %s failed after %.1fms: %s", name, duration_ms, exc)
            raise ToolExecutionError(
                str(exc) or type(exc).__name__,
                name,
                kind=FailureKind.EXECUTION_FAILED,
                cause=exc,
            ) from exc

        duration_ms = (time.perf_counter() - start_time) * 1000
        result = self._normalize_result(name, raw)
        if self._config.log_results:
            LOGGER.debug("Tool %s completed in %.1fms with result: %s", name, duration_ms, result)
        else:
            LOGGER.debug("Tool %s completed in %.1fms", name, duration_ms)
        return result

    def has_tool(self, name: str) -> bool:
        return self._registry.has(name)

    def list_tools(self) -> list[str]:
        return self._registry.list_names()

    @staticmethod
    def _normalize_result(name: str, raw: Any) -> JSONObject:
        try:
            value = to_json_value(raw)
        except JSONTypeError as exc:
            raise ToolExecutionError(
                f"Result is not JSON serializable ({exc})",
                name,
                kind=FailureKind.INVALID_RESULT,
                cause=exc,
            ) from exc
        if is_json_object(value):
            return value
        return {"result": value}
