"""Debug event logging for orchestrator runs.

When enabled, every run writes a JSONL file holding the prompt, the history
it started from, each emitted event and the terminal outcome.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Mapping, Sequence

from ...utils import logging as logging_utils
from .events import OrchestratorEvent
from .session import RunOutcome

LOGGER = logging.getLogger(__name__)


def _default_event_dir() -> Path:
    return logging_utils.event_log_dir()


@dataclass(slots=True)
class _NullChatEventLogRun:
    """No-op implementation used when event logging is disabled."""

    path: Path | None = None

    def __enter__(self) -> "_NullChatEventLogRun":  # noqa: D401
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:  # noqa: D401
        return False

    def log_event(self, *_: Any, **__: Any) -> None:
        return

    def log_outcome(self, *_: Any, **__: Any) -> None:
        return

    def log_completion(self, *_: Any, **__: Any) -> None:
        return

    def log_failure(self, *_: Any, **__: Any) -> None:
        return

    def log_cancelled(self, *_: Any, **__: Any) -> None:
        return


class ChatEventLogRun:
    """Context manager that writes structured JSONL entries for one run."""

    def __init__(self, path: Path, *, context: Mapping[str, Any]) -> None:
        self.path = path
        self._file = path.open("w", encoding="utf-8")
        self._finalized = False
        self._event_count = 0
        self._write_entry("start", context)

    def __enter__(self) -> "ChatEventLogRun":  # noqa: D401
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:  # noqa: D401
        if exc is not None and not self._finalized:
            self.log_failure(message=str(exc) or exc_type.__name__)
        elif not self._finalized:
            self.log_failure(message="run ended without an outcome")
        return False

    @property
    def finalized(self) -> bool:
        return self._finalized

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def log_event(self, event: OrchestratorEvent) -> None:
        if self._finalized:
            return
        self._event_count += 1
        self._write_entry("event", {"index": self._event_count, **event.to_dict()})

    def log_outcome(self, outcome: RunOutcome) -> None:
        """Finalize the log from a runner outcome."""
        match outcome.state.value:
            case "completed":
                self.log_completion(response_text=outcome.response or "", iterations=outcome.iterations)
            case "cancelled":
                self.log_cancelled(iterations=outcome.iterations)
            case _:
                message = str(outcome.error) if outcome.error is not None else outcome.state.value
                self.log_failure(
                    message=message,
                    details={"iterations": outcome.iterations, "state": outcome.state.value},
                )

    def log_completion(self, *, response_text: str, iterations: int) -> None:
        if self._finalized:
            return
        payload = {
            "response_text": response_text,
            "iterations": iterations,
            "event_count": self._event_count,
            "status": "success",
        }
        self._finish("completion", payload)

    def log_cancelled(self, *, iterations: int) -> None:
        if self._finalized:
            return
        self._finish(
            "cancelled",
            {"iterations": iterations, "event_count": self._event_count, "status": "cancelled"},
        )

    def log_failure(self, *, message: str, details: Mapping[str, Any] | None = None) -> None:
        if self._finalized:
            return
        payload: dict[str, Any] = {
            "status": "failure",
            "message": message,
        }
        if details:
            payload["details"] = self._safe_json(dict(details))
        self._finish("failure", payload)

    def _finish(self, event: str, payload: Mapping[str, Any]) -> None:
        self._write_entry(event, payload)
        self._finalized = True
        self.close()

    def _write_entry(self, event: str, payload: Mapping[str, Any] | None = None) -> None:
        entry: dict[str, Any] = {
            "event": event,
            "timestamp": time.time(),
        }
        if payload:
            for key, value in payload.items():
                entry[key] = self._safe_json(value)
        json.dump(entry, self._file, ensure_ascii=False)
        self._file.write("\n")
        self._file.flush()

    def _safe_json(self, value: Any, *, depth: int = 0) -> Any:
        if depth > 6:
            return repr(value)
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        if isinstance(value, Mapping):
            return {str(key): self._safe_json(val, depth=depth + 1) for key, val in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [self._safe_json(item, depth=depth + 1) for item in value]
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        return repr(value)


class ChatEventLogger:
    """Factory for per-run event logs when debug event logging is enabled."""

    def __init__(self, *, enabled: bool, base_dir: Path | str | None = None) -> None:
        self.enabled = bool(enabled)
        self._base_dir = Path(base_dir) if base_dir else _default_event_dir()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def start_run(
        self,
        *,
        run_id: str,
        prompt: str,
        history: Sequence[Mapping[str, Any]] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ChatEventLogRun | _NullChatEventLogRun:
        if not self.enabled:
            return _NullChatEventLogRun()
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
            path = self._allocate_path(run_id)
            context = {
                "run_id": run_id,
                "prompt": prompt,
                "metadata": dict(metadata or {}),
                "history": list(history or ()),
            }
            log_run = ChatEventLogRun(path, context=context)
            LOGGER.debug("Chat event log started: %s", path)
            return log_run
        except OSError:
            LOGGER.debug("Failed to start chat event log", exc_info=True)
            return _NullChatEventLogRun()

    def _allocate_path(self, run_id: str) -> Path:
        timestamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
        safe_run_id = "".join(ch for ch in run_id if ch.isalnum())[:12] or "run"
        return self._base_dir / f"chat-{timestamp}-{safe_run_id}.jsonl"


__all__ = [
    "ChatEventLogger",
    "ChatEventLogRun",
]
