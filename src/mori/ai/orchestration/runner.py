"""Turn Runner: the request, stream, extract, execute loop.

One call to :meth:`TurnRunner.run` drives a single orchestration run:

1. Build the outbound messages from the session history and system prompt.
2. Stream the completion, forwarding every chunk as an event.
3. Extract fenced JSON tool calls from the accumulated text.
4. Execute the calls one at a time and turn each outcome into text.
5. Commit the round to history and re-request, up to ``max_iterations``.

History is only written when a round completes, so a cancelled or failed
round leaves it exactly as it was when the round started. Waiting for the
next chunk and for a tool are both raced against the session token, so a
cancel takes effect without waiting for the network or the tool.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Sequence, TYPE_CHECKING

from openai.types.chat import ChatCompletionMessageParam

from .. import prompts
from ..client import ModelClient
from ..errors import CompletionError, HTTPStatusError
from ..json_value import dumps
from .events import (
    ErrorEvent,
    EventSink,
    OrchestratorEvent,
    ResponseChunkEvent,
    ResponseReplaceEvent,
    StatusEvent,
    ToolArgumentsEvent,
    ToolCallEvent,
    ToolExecutingEvent,
    ToolResultEvent,
)
from .message_builder import DEFAULT_HISTORY_WINDOW, build_messages, format_tool_result
from .session import OrchestratorSession, RunCancelled, RunOutcome, RunState
from .tool_call_parser import extract_tool_calls
from .tools.executor import ToolExecutionError, ToolExecutor
from .types import (
    ConversationItem,
    Message,
    Role,
    StepStatus,
    ToolCall,
    ToolExecutionResult,
    ToolFailure,
    ToolStep,
)

if TYPE_CHECKING:
    from ..prompts import PromptBuilder

__all__ = [
    "TurnRunner",
    "RunnerConfig",
    "create_runner",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Runner Configuration
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class RunnerConfig:
    """Configuration for the turn runner.

    Attributes:
        max_iterations: Maximum rounds that execute tool calls.
        history_window: Most recent messages sent per request; None sends all.
        temperature: Sampling temperature override for the client.
        tool_result_role: Role of the synthetic messages carrying tool results.
            ``"user"`` keeps models from immediately re-emitting the same call.
        locale: Language code handed to the prompt builder.
        record_tool_steps: Whether to record a ToolStep per executed call.
        status_processing: Status text emitted when a run starts.
        status_streaming: Status text emitted before each request.
        status_limit_reached: Status text emitted when the round limit is hit.
    """

    max_iterations: int = 3
    history_window: int | None = DEFAULT_HISTORY_WINDOW
    temperature: float | None = None
    tool_result_role: Role = "user"
    locale: str = "en"
    record_tool_steps: bool = True
    status_processing: str = "Processing request..."
    status_streaming: str = "Streaming response..."
    status_limit_reached: str = "Reached the tool iteration limit."

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if self.tool_result_role not in ("user", "assistant", "system"):
            raise ValueError(f"Unsupported tool_result_role: {self.tool_result_role!r}")


# -----------------------------------------------------------------------------
# Turn Runner
# -----------------------------------------------------------------------------


class TurnRunner:
    """Drives one orchestration run over an :class:`OrchestratorSession`.

    Example:
        >>> runner = TurnRunner(client, ToolExecutor(registry))
        >>> session = OrchestratorSession(history=history)
        >>> outcome = await runner.run(session, channel.emit)
        >>> outcome.response
    """

    def __init__(
        self,
        client: ModelClient,
        executor: ToolExecutor,
        *,
        prompt_builder: PromptBuilder | None = None,
        config: RunnerConfig | None = None,
    ) -> None:
        self._client = client
        self._executor = executor
        self._prompt_builder = prompt_builder or prompts.SystemPromptBuilder()
        self._config = config or RunnerConfig()

    @property
    def client(self) -> ModelClient:
        return self._client

    @property
    def executor(self) -> ToolExecutor:
        return self._executor

    @property
    def config(self) -> RunnerConfig:
        return self._config

    def new_session(self, history, **kwargs) -> OrchestratorSession:
        """Create a session bounded by this runner's ``max_iterations``."""
        kwargs.setdefault("max_iterations", self._config.max_iterations)
        return OrchestratorSession(history=history, **kwargs)

    async def run(
        self,
        session: OrchestratorSession,
        emit: EventSink | None = None,
    ) -> RunOutcome:
        """Run the loop until a final answer, the round limit, cancellation or failure.

        Exactly one terminal event is emitted: ``response_replace`` on
        completion, ``error`` on failure, and nothing on cancellation.
        ``asyncio.CancelledError`` rolls back the current round and is
        re-raised.
        """
        history = session.history
        round_snapshot = history.snapshot()
        LOGGER.debug(
            "Run %s starting with %d history items (max_iterations=%d)",
            session.run_id,
            len(history),
            session.max_iterations,
        )

        try:
            session.token.raise_if_cancelled()
            self._emit(emit, StatusEvent(self._config.status_processing))
            last_assistant_text = ""

            while True:
                round_snapshot = history.snapshot()
                session.token.raise_if_cancelled()

                session.state = RunState.REQUESTING
                messages = self._build_request_messages(session)
                self._emit(emit, StatusEvent(self._config.status_streaming))
                raw_text = await self._stream_response(session, messages, emit)

                session.state = RunState.EXTRACTING
                extraction = extract_tool_calls(raw_text)
                assistant_text = extraction.visible_text or raw_text

                if not extraction.has_calls:
                    session.state = RunState.APPENDING
                    history.close_open_assistant(assistant_text)
                    return self._complete(session, emit, assistant_text)

                LOGGER.debug(
                    "Run %s round %d requested %d tool call(s)",
                    session.run_id,
                    session.iteration + 1,
                    len(extraction.calls),
                )
                session.state = RunState.EXECUTING
                round_items = await self._execute_calls(session, extraction.calls, emit)

                session.state = RunState.APPENDING
                history.close_open_assistant(assistant_text)
                history.extend(round_items)
                session.iteration += 1
                last_assistant_text = assistant_text

                if session.iteration >= session.max_iterations:
                    LOGGER.info(
                        "Run %s reached max iterations (%d)",
                        session.run_id,
                        session.max_iterations,
                    )
                    self._emit(emit, StatusEvent(self._config.status_limit_reached))
                    if self._config.record_tool_steps:
                        history.append(
                            ToolStep(
                                status=StepStatus.FINAL,
                                details={
                                    "reason": "max_iterations",
                                    "iterations": str(session.iteration),
                                },
                            )
                        )
                    return self._complete(session, emit, last_assistant_text)

        except RunCancelled:
            history.restore(round_snapshot)
            return self._cancelled(session)
        except asyncio.CancelledError:
            history.restore(round_snapshot)
            session.token.cancel("task cancelled")
            session.state = RunState.CANCELLED
            LOGGER.info("Run %s cancelled by task cancellation", session.run_id)
            raise
        except CompletionError as exc:
            history.restore(round_snapshot)
            if session.cancelled:
                return self._cancelled(session)
            LOGGER.warning("Run %s failed: %s", session.run_id, exc)
            status_code = exc.status_code if isinstance(exc, HTTPStatusError) else None
            return self._fail(
                session,
                emit,
                exc,
                ErrorEvent(description=str(exc), error_kind=exc.kind, status_code=status_code),
            )
        except Exception as exc:
            LOGGER.exception("Run %s failed with unexpected exception", session.run_id)
            history.restore(round_snapshot)
            return self._fail(
                session,
                emit,
                exc,
                ErrorEvent(description=str(exc) or type(exc).__name__, error_kind="internal"),
            )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _build_request_messages(self, session: OrchestratorSession) -> list[ChatCompletionMessageParam]:
        system_prompt = self._prompt_builder.build(
            self._executor.registry.list_tools(),
            self._config.locale,
        )
        return build_messages(
            session.history,
            system_prompt,
            window=self._config.history_window,
        )

    async def _stream_response(
        self,
        session: OrchestratorSession,
        messages: list[ChatCompletionMessageParam],
        emit: EventSink | None,
    ) -> str:
        chunks: list[str] = []
        stream = self._client.stream_chat(messages, temperature=self._config.temperature)
        try:
            while True:
                chunk = await session.token.guard(_next_chunk(stream))
                if chunk is None:
                    break
                session.state = RunState.STREAMING
                chunks.append(chunk)
                self._emit(emit, ResponseChunkEvent(chunk))
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        session.token.raise_if_cancelled()
        return "".join(chunks)

    async def _execute_calls(
        self,
        session: OrchestratorSession,
        calls: Sequence[ToolCall],
        emit: EventSink | None,
    ) -> list[ConversationItem]:
        """Execute calls in textual order and build the round's history items."""
        items: list[ConversationItem] = []
        for call in calls:
            session.token.raise_if_cancelled()
            self._emit(emit, ToolCallEvent(call.tool))
            self._emit(emit, ToolArgumentsEvent(call.tool, call.arguments))
            self._emit(emit, ToolExecutingEvent(call.tool))

            result = await self._execute_one(session, call)
            session.token.raise_if_cancelled()

            if isinstance(result, ToolFailure):
                self._emit(
                    emit,
                    ErrorEvent(
                        description=f"Tool {call.tool} failed: {result.message}",
                        error_kind="tool",
                        tool=call.tool,
                    ),
                )
            else:
                self._emit(emit, ToolResultEvent(call.tool, result))

            if self._config.record_tool_steps:
                items.append(self._tool_step(call, result))
            items.append(
                Message(
                    content=format_tool_result(call, result),
                    role=self._config.tool_result_role,
                )
            )
        return items

    async def _execute_one(self, session: OrchestratorSession, call: ToolCall) -> ToolExecutionResult:
        try:
            return await session.token.guard(self._executor.execute(call.tool, call.arguments))
        except ToolExecutionError as exc:
            return ToolFailure(tool=call.tool, message=str(exc), kind=exc.kind)

    @staticmethod
    def _tool_step(call: ToolCall, result: ToolExecutionResult) -> ToolStep:
        details = {"arguments": dumps(call.arguments)}
        if isinstance(result, ToolFailure):
            details["error"] = result.message
            details["kind"] = result.kind
            return ToolStep(status=StepStatus.ERROR, tool_name=call.tool, details=details)
        details["result"] = dumps(result)
        return ToolStep(status=StepStatus.RESULT, tool_name=call.tool, details=details)

    # ------------------------------------------------------------------
    # Terminal states
    # ------------------------------------------------------------------

    def _complete(
        self,
        session: OrchestratorSession,
        emit: EventSink | None,
        response: str,
    ) -> RunOutcome:
        session.state = RunState.COMPLETED
        self._emit(emit, ResponseReplaceEvent(response))
        LOGGER.debug("Run %s completed after %d round(s)", session.run_id, session.iteration)
        return RunOutcome(
            state=RunState.COMPLETED,
            response=response,
            iterations=session.iteration,
        )

    @staticmethod
    def _cancelled(session: OrchestratorSession) -> RunOutcome:
        session.state = RunState.CANCELLED
        LOGGER.info("Run %s cancelled", session.run_id)
        return RunOutcome(state=RunState.CANCELLED, iterations=session.iteration)

    def _fail(
        self,
        session: OrchestratorSession,
        emit: EventSink | None,
        exc: Exception,
        event: ErrorEvent,
    ) -> RunOutcome:
        session.state = RunState.FAILED
        self._emit(emit, event)
        return RunOutcome(
            state=RunState.FAILED,
            iterations=session.iteration,
            error=exc,
        )

    @staticmethod
    def _emit(emit: EventSink | None, event: OrchestratorEvent) -> None:
        if emit is None:
            return
        try:
            emit(event)
        except Exception:
            LOGGER.warning("Event sink failed for %s event; continuing", event.kind, exc_info=True)


async def _next_chunk(stream: AsyncIterator[str]) -> str | None:
    """Return the next streamed chunk, or None once the stream is exhausted."""
    try:
        return await anext(stream)
    except StopAsyncIteration:
        return None


# -----------------------------------------------------------------------------
# Factory Functions
# -----------------------------------------------------------------------------


def create_runner(
    client: ModelClient,
    executor: ToolExecutor,
    *,
    prompt_builder: PromptBuilder | None = None,
    max_iterations: int = 3,
    history_window: int | None = DEFAULT_HISTORY_WINDOW,
    tool_result_role: Role = "user",
    locale: str = "en",
) -> TurnRunner:
    """Create a TurnRunner with the most commonly tuned options."""
    config = RunnerConfig(
        max_iterations=max_iterations,
        history_window=history_window,
        tool_result_role=tool_result_role,
        locale=locale,
    )
    return TurnRunner(client, executor, prompt_builder=prompt_builder, config=config)
