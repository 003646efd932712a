"""Logging setup for the Mori agent.

Log files live under ``$MORI_LOG_DIR`` when set, otherwise ``logs/`` inside the
Mori home directory (``$MORI_HOME`` or ``~/.mori``).  Debug event logs written
by :class:`~mori.ai.orchestration.event_log.ChatEventLogger` sit in an
``events/`` folder next to the main log file.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..services.settings import Settings

__all__ = [
    "LoggingState",
    "setup_logging",
    "configure_from_settings",
    "active_logging",
    "resolve_log_dir",
    "event_log_dir",
    "LOG_DIR_ENV",
]

LOG_DIR_ENV = "MORI_LOG_DIR"
HOME_ENV = "MORI_HOME"
LOG_FILENAME = "mori.log"
EVENT_LOG_DIRNAME = "events"

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 1_000_000
_BACKUP_COUNT = 3
# Chatty transport libraries stay at WARNING even in debug mode.
_LIBRARY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")


@dataclass(slots=True, frozen=True)
class LoggingState:
    """What :func:`setup_logging` last installed."""

    log_dir: Path
    debug: bool

    @property
    def log_file(self) -> Path:
        return self.log_dir / LOG_FILENAME

    @property
    def level(self) -> int:
        return logging.DEBUG if self.debug else logging.INFO

    @property
    def event_dir(self) -> Path:
        return self.log_dir / EVENT_LOG_DIRNAME


_STATE: LoggingState | None = None


def setup_logging(
    *,
    debug: bool = False,
    log_dir: Path | str | None = None,
    force: bool = False,
) -> LoggingState:
    """Install the rotating file handler and, when debugging, a stderr handler.

    Repeated calls return the existing state unless ``force`` is set or the
    call asks for debug output that the current setup does not provide.
    """

    global _STATE
    if _STATE is not None and not force and (_STATE.debug or not debug):
        return _STATE

    state = LoggingState(log_dir=resolve_log_dir(log_dir), debug=debug)
    state.log_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)
    file_handler = logging.handlers.RotatingFileHandler(
        state.log_file, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [file_handler]
    if debug:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    logging.basicConfig(level=state.level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _STATE = state
    logging.getLogger(__name__).debug("Logging to %s (debug=%s)", state.log_file, debug)
    return state


def configure_from_settings(settings: Settings, *, debug: bool = False) -> LoggingState:
    """Apply ``settings.debug_logging`` on top of a command-line ``debug`` flag."""

    return setup_logging(debug=debug or settings.debug_logging)


def active_logging() -> LoggingState | None:
    return _STATE


def resolve_log_dir(log_dir: Path | str | None = None) -> Path:
    if log_dir:
        return Path(log_dir).expanduser()
    override = os.environ.get(LOG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    home = os.environ.get(HOME_ENV)
    base = Path(home).expanduser() if home else Path.home() / ".mori"
    return base / "logs"


def event_log_dir() -> Path:
    """Directory for per-run JSONL event logs."""

    if _STATE is not None:
        return _STATE.event_dir
    return resolve_log_dir() / EVENT_LOG_DIRNAME
