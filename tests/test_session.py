"""Tests for run sessions and cancellation tokens."""

from __future__ import annotations

import asyncio

import pytest

from mori.ai.orchestration.session import (
    CancellationToken,
    OrchestratorSession,
    RunCancelled,
    RunOutcome,
    RunState,
)
from mori.ai.orchestration.types import ConversationHistory


class TestCancellationToken:
    def test_starts_clear(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel_keeps_first_reason(self):
        token = CancellationToken()
        token.cancel("user pressed stop")
        token.cancel("superseded")

        assert token.cancelled
        assert token.reason == "user pressed stop"
        with pytest.raises(RunCancelled, match="user pressed stop"):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_wait_returns_after_cancel(self):
        token = CancellationToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        token.cancel()
        await asyncio.wait_for(waiter, timeout=1)

    @pytest.mark.asyncio
    async def test_guard_returns_result(self):
        async def answer():
            await asyncio.sleep(0)
            return 42

        assert await CancellationToken().guard(answer()) == 42

    @pytest.mark.asyncio
    async def test_guard_refuses_when_already_cancelled(self):
        started = []

        async def work():
            started.append(True)

        token = CancellationToken()
        token.cancel("superseded")

        with pytest.raises(RunCancelled, match="superseded"):
            await token.guard(work())
        assert started == []

    @pytest.mark.asyncio
    async def test_guard_interrupts_pending_work(self):
        token = CancellationToken()
        entered = asyncio.Event()
        interrupted = []

        async def stalled():
            entered.set()
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                interrupted.append(True)
                raise

        guarded = asyncio.create_task(token.guard(stalled()))
        await asyncio.wait_for(entered.wait(), timeout=1)
        token.cancel("stop")

        with pytest.raises(RunCancelled, match="stop"):
            await asyncio.wait_for(guarded, timeout=1)
        assert interrupted == [True]


class TestSession:
    def test_defaults(self):
        session = OrchestratorSession(ConversationHistory())

        assert session.max_iterations == 3
        assert session.iteration == 0
        assert session.state is RunState.IDLE
        assert len(session.run_id) == 12

    def test_rejects_zero_iterations(self):
        with pytest.raises(ValueError):
            OrchestratorSession(ConversationHistory(), max_iterations=0)

    def test_cancel_trips_token(self):
        session = OrchestratorSession(ConversationHistory())
        session.cancel("stop")
        assert session.cancelled
        assert session.token.reason == "stop"


def test_terminal_states():
    assert RunState.COMPLETED.is_terminal
    assert RunState.CANCELLED.is_terminal
    assert RunState.FAILED.is_terminal
    assert not RunState.STREAMING.is_terminal
    assert RunOutcome(RunState.COMPLETED, "done").completed
    assert not RunOutcome(RunState.FAILED).completed
