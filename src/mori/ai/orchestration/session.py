"""Per-run session state and cooperative cancellation."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, TypeVar

from .types import ConversationHistory

__all__ = [
    "CancellationToken",
    "RunCancelled",
    "RunState",
    "OrchestratorSession",
    "RunOutcome",
]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class RunCancelled(Exception):
    """Raised inside a run when its cancellation token has been tripped.

    This is a control-flow signal, not an error: the runner catches it and
    ends the run quietly.
    """


class CancellationToken:
    """One-shot cancellation flag threaded through every suspension point."""

    __slots__ = ("_event", "_reason")

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled(self._reason or "cancelled")

    async def wait(self) -> None:
        """Block until :meth:`cancel` is called."""
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token is cancelled first.

        The awaitable runs as its own task and is cancelled, then awaited to
        completion, when the token wins; :class:`RunCancelled` is raised
        afterwards. If the caller itself is cancelled, the inner task is
        unwound the same way before ``asyncio.CancelledError`` propagates.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RunCancelled(self._reason or "cancelled")
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            waiter.cancel()
            await _stop_task(task)
            raise
        waiter.cancel()
        if task in done:
            return task.result()
        await _stop_task(task)
        raise RunCancelled(self._reason or "cancelled")


async def _stop_task(task: asyncio.Future[Any]) -> None:
    task.cancel()
    await asyncio.wait({task})
    if not task.cancelled() and task.exception() is not None:
        LOGGER.debug("Task finished with %r while being cancelled", task.exception())


class RunState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    EXTRACTING = "extracting"
    EXECUTING = "executing"
    APPENDING = "appending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.CANCELLED, RunState.FAILED)


@dataclass(slots=True)
class OrchestratorSession:
    """Mutable state owned by one orchestration run.

    Attributes:
        history: Conversation the run reads from and commits rounds to.
        max_iterations: Upper bound on request/execute rounds.
        token: Cancellation token polled at each suspension point.
        iteration: Completed rounds that executed tool calls.
        state: Current loop state.
        run_id: Identifier used in logs and the debug event log.
    """

    history: ConversationHistory
    max_iterations: int = 3
    token: CancellationToken = field(default_factory=CancellationToken)
    iteration: int = 0
    state: RunState = RunState.IDLE
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self, reason: str | None = None) -> None:
        self.token.cancel(reason)


@dataclass(slots=True, frozen=True)
class RunOutcome:
    """Result of one run once it reached a terminal state."""

    state: RunState
    response: str | None = None
    iterations: int = 0
    error: Exception | None = None

    @property
    def completed(self) -> bool:
        return self.state is RunState.COMPLETED
