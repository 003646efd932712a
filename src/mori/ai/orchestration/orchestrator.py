"""Chat orchestrator facade.

:class:`ChatOrchestrator` owns one conversation history and runs at most one
orchestration run against it at a time. Submitting a new message cancels the
run in flight and waits for it to unwind before the history is touched.

Example:
    orchestrator = ChatOrchestrator(client, ToolExecutor(registry))
    channel = await orchestrator.submit("What's on my calendar today?")
    async for event in channel:
        render(event)
    outcome = await orchestrator.wait()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, TYPE_CHECKING

from ..client import ModelClient
from .event_log import ChatEventLogger
from .events import EventChannel, OrchestratorEvent
from .runner import RunnerConfig, TurnRunner
from .session import OrchestratorSession, RunOutcome, RunState
from .tools.executor import ToolExecutor
from .types import ConversationHistory, Message

if TYPE_CHECKING:
    from ..prompts import PromptBuilder

__all__ = ["ChatOrchestrator", "EventCallback"]

LOGGER = logging.getLogger(__name__)

EventCallback = Callable[[OrchestratorEvent], None]


class ChatOrchestrator:
    """Serializes runs over a single conversation history."""

    def __init__(
        self,
        client: ModelClient,
        executor: ToolExecutor,
        *,
        prompt_builder: PromptBuilder | None = None,
        config: RunnerConfig | None = None,
        history: ConversationHistory | None = None,
        event_logger: ChatEventLogger | None = None,
        channel_size: int = 256,
        cancel_grace: float = 2.0,
    ) -> None:
        self._runner = TurnRunner(
            client,
            executor,
            prompt_builder=prompt_builder,
            config=config,
        )
        self._history = history if history is not None else ConversationHistory()
        self._event_logger = event_logger
        self._channel_size = channel_size
        self._cancel_grace = cancel_grace
        self._history_lock = asyncio.Lock()
        self._submit_lock = asyncio.Lock()
        self._task: asyncio.Task[RunOutcome] | None = None
        self._session: OrchestratorSession | None = None
        self._last_outcome: RunOutcome | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def runner(self) -> TurnRunner:
        return self._runner

    @property
    def session(self) -> OrchestratorSession | None:
        """Session of the current (or most recent) run."""
        return self._session

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_outcome(self) -> RunOutcome | None:
        return self._last_outcome

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def submit(self, text: str) -> EventChannel:
        """Start a run for a new user message and return its event channel.

        Any run in flight is cancelled first. The channel is closed once the
        run reaches a terminal state.
        """
        if not text or not text.strip():
            raise ValueError("Message text must not be empty")

        async with self._submit_lock:
            await self._cancel_active("superseded by a new message")
            channel = EventChannel(self._channel_size)
            session = self._runner.new_session(self._history)
            self._session = session
            self._task = asyncio.create_task(
                self._run(session, text, channel),
                name=f"mori-run-{session.run_id}",
            )
            LOGGER.debug("Submitted run %s", session.run_id)
            return channel

    async def chat(self, text: str, *, on_event: EventCallback | None = None) -> RunOutcome:
        """Submit ``text``, forward every event to ``on_event`` and return the outcome."""
        channel = await self.submit(text)
        async for event in channel:
            if on_event is not None:
                on_event(event)
        return await self.wait()

    def cancel(self, reason: str | None = None) -> bool:
        """Request cooperative cancellation of the current run.

        Returns True when a running session was signalled.
        """
        if not self.is_running or self._session is None:
            return False
        self._session.cancel(reason or "cancelled by caller")
        return True

    async def wait(self) -> RunOutcome | None:
        """Wait for the current run to finish and return its outcome."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task})
        return self._last_outcome

    async def aclose(self) -> None:
        """Cancel any run in flight and wait for it to unwind."""
        async with self._submit_lock:
            await self._cancel_active("orchestrator closed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _cancel_active(self, reason: str) -> None:
        task = self._task
        if task is None or task.done():
            return
        if self._session is not None:
            self._session.cancel(reason)
        done, _ = await asyncio.wait({task}, timeout=self._cancel_grace)
        if not done:
            LOGGER.debug("Run did not stop within %.1fs; cancelling its task", self._cancel_grace)
            task.cancel()
            await asyncio.wait({task})

    async def _run(self, session: OrchestratorSession, text: str, channel: EventChannel) -> RunOutcome:
        try:
            async with self._history_lock:
                self._history.append(Message.user(text))
                outcome = await self._run_with_log(session, text, channel)
        except asyncio.CancelledError:
            self._last_outcome = RunOutcome(state=RunState.CANCELLED, iterations=session.iteration)
            raise
        finally:
            channel.close()
        self._last_outcome = outcome
        return outcome

    async def _run_with_log(
        self,
        session: OrchestratorSession,
        text: str,
        channel: EventChannel,
    ) -> RunOutcome:
        if self._event_logger is None:
            return await self._runner.run(session, channel.emit)

        log_run = self._event_logger.start_run(
            run_id=session.run_id,
            prompt=text,
            history=self._history.to_dicts(),
            metadata={"max_iterations": session.max_iterations},
        )

        def _sink(event: OrchestratorEvent) -> None:
            channel.emit(event)
            log_run.log_event(event)

        with log_run:
            outcome = await self._runner.run(session, _sink)
            log_run.log_outcome(outcome)
        return outcome
