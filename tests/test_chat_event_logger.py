"""Tests for the debug chat event logger."""

from __future__ import annotations

import json
from pathlib import Path

from mori.ai.errors import ServerUnavailableError
from mori.ai.orchestration.event_log import ChatEventLogger, ChatEventLogRun
from mori.ai.orchestration.events import ErrorEvent, ResponseChunkEvent, StatusEvent
from mori.ai.orchestration.session import RunOutcome, RunState


def _entries(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_disabled_logger_returns_null_run(tmp_path):
    logger = ChatEventLogger(enabled=False, base_dir=tmp_path)

    run = logger.start_run(run_id="abc", prompt="hi")
    with run:
        run.log_event(StatusEvent("x"))
        run.log_outcome(RunOutcome(RunState.COMPLETED, "done"))

    assert run.path is None
    assert list(tmp_path.iterdir()) == []


def test_completion_log(tmp_path):
    logger = ChatEventLogger(enabled=True, base_dir=tmp_path)

    run = logger.start_run(
        run_id="run-42!",
        prompt="What's on today?",
        history=[{"type": "message", "role": "user", "content": "hi"}],
        metadata={"max_iterations": 3},
    )
    with run:
        run.log_event(StatusEvent("Processing request..."))
        run.log_event(ResponseChunkEvent("Hello"))
        run.log_outcome(RunOutcome(RunState.COMPLETED, "Hello", iterations=0))

    assert isinstance(run, ChatEventLogRun)
    assert run.finalized
    assert run.path.name.startswith("chat-")
    assert run.path.name.endswith("-run42.jsonl")
    entries = _entries(run.path)
    assert [entry["event"] for entry in entries] == ["start", "event", "event", "completion"]
    assert entries[0]["metadata"] == {"max_iterations": 3}
    assert entries[0]["history"][0]["content"] == "hi"
    assert entries[2] == {**entries[2], "index": 2, "kind": "response_chunk", "text": "Hello"}
    assert entries[3]["status"] == "success"
    assert entries[3]["event_count"] == 2


def test_failure_outcome_records_error(tmp_path):
    run = ChatEventLogger(enabled=True, base_dir=tmp_path).start_run(run_id="r", prompt="p")
    error = ServerUnavailableError(500, "down")

    with run:
        run.log_event(ErrorEvent(str(error), error.kind, status_code=500))
        run.log_outcome(RunOutcome(RunState.FAILED, error=error))
        run.log_event(StatusEvent("ignored after finalize"))

    entries = _entries(run.path)
    assert entries[-1]["event"] == "failure"
    assert entries[-1]["message"] == "HTTP 500: down"
    assert entries[-1]["details"] == {"iterations": 0, "state": "failed"}
    assert len(entries) == 3


def test_cancelled_outcome(tmp_path):
    run = ChatEventLogger(enabled=True, base_dir=tmp_path).start_run(run_id="r", prompt="p")
    with run:
        run.log_outcome(RunOutcome(RunState.CANCELLED, iterations=1))

    assert _entries(run.path)[-1]["status"] == "cancelled"


def test_exiting_without_outcome_records_failure(tmp_path):
    run = ChatEventLogger(enabled=True, base_dir=tmp_path).start_run(run_id="r", prompt="p")
    with run:
        pass

    assert _entries(run.path)[-1]["message"] == "run ended without an outcome"


def test_unwritable_directory_returns_null_run(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    logger = ChatEventLogger(enabled=True, base_dir=blocker / "events")

    run = logger.start_run(run_id="r", prompt="p")

    assert run.path is None


def test_default_directory_under_log_dir(isolated_mori_home):
    logger = ChatEventLogger(enabled=True)
    assert logger.base_dir.name == "events"
