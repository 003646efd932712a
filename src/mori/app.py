"""Command line entry point for the Mori agent."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import importlib
import json
import logging
import os
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO

from .ai.client import CompletionClient, ModelClient
from .ai.json_value import dumps
from .ai.orchestration import (
    ChatEventLogger,
    ChatOrchestrator,
    ErrorEvent,
    OrchestratorEvent,
    ResponseChunkEvent,
    ResponseReplaceEvent,
    RunOutcome,
    RunState,
    StatusEvent,
    ToolArgumentsEvent,
    ToolCallEvent,
    ToolExecutingEvent,
    ToolExecutor,
    ToolRegistry,
    ToolResultEvent,
)
from .ai.prompts import SystemPromptBuilder
from .services.settings import Settings, SettingsStore, redact_secret
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_LOGGER = logging.getLogger(__name__)
_EXIT_CODES = {
    RunState.COMPLETED: 0,
    RunState.FAILED: 1,
    RunState.CANCELLED: 130,
}
_QUIT_COMMANDS = {"/quit", "/exit"}


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except OSError as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def load_tools_module(module_name: str, registry: ToolRegistry) -> None:
    """Import ``module_name`` and let its ``register_tools(registry)`` add tools."""

    module = importlib.import_module(module_name)
    register = getattr(module, "register_tools", None)
    if not callable(register):
        raise AttributeError(f"Module '{module_name}' does not define register_tools(registry)")
    register(registry)
    _LOGGER.info("Loaded %d tool(s) from %s", len(registry), module_name)


def build_orchestrator(
    settings: Settings,
    client: ModelClient,
    registry: ToolRegistry,
) -> ChatOrchestrator:
    """Wire the runner stack from settings."""

    if settings.prompt_template_path:
        prompt_builder = SystemPromptBuilder.from_file(settings.prompt_template_path)
    else:
        prompt_builder = SystemPromptBuilder()
    return ChatOrchestrator(
        client,
        ToolExecutor(registry, settings.to_executor_config()),
        prompt_builder=prompt_builder,
        config=settings.to_runner_config(),
        event_logger=ChatEventLogger(enabled=settings.debug_event_logging),
    )


class EventPrinter:
    """Renders orchestrator events as plain terminal text."""

    def __init__(self, out: TextIO | None = None, *, show_status: bool = True) -> None:
        self._out = out or sys.stdout
        self._show_status = show_status
        self._streamed = False

    def __call__(self, event: OrchestratorEvent) -> None:
        match event:
            case ResponseChunkEvent(text=text):
                self._streamed = True
                self._write(text)
            case StatusEvent(text=text):
                if self._show_status:
                    self._line(f"· {text}")
            case ToolCallEvent(name=name):
                self._line(f"→ {name}")
            case ToolArgumentsEvent(arguments=arguments):
                self._line(f"  arguments: {dumps(arguments)}")
            case ToolExecutingEvent():
                pass
            case ToolResultEvent(result=result):
                self._line(f"  result: {dumps(result)}")
            case ErrorEvent(description=description):
                self._line(f"! {description}")
            case ResponseReplaceEvent(text=text):
                self._line("")
                self._line(text)
                self._streamed = False

    def _line(self, text: str) -> None:
        if self._streamed:
            self._write("\n")
            self._streamed = False
        self._write(f"{text}\n")

    def _write(self, text: str) -> None:
        self._out.write(text)
        self._out.flush()


async def run_prompt(
    orchestrator: ChatOrchestrator,
    prompt: str,
    *,
    out: TextIO | None = None,
) -> RunOutcome:
    """Run one prompt, printing events; Ctrl-C cancels the run."""

    out = out or sys.stdout
    printer = EventPrinter(out)
    with _cancel_on_sigint(orchestrator):
        outcome = await orchestrator.chat(prompt, on_event=printer)
    if outcome is None:  # pragma: no cover - chat always records an outcome
        return RunOutcome(state=RunState.FAILED)
    if outcome.state is RunState.CANCELLED:
        out.write("\n[cancelled]\n")
    return outcome


async def run_repl(
    orchestrator: ChatOrchestrator,
    *,
    out: TextIO | None = None,
    read_line=None,
) -> int:
    """Interactive loop; returns the exit code of the last run."""

    out = out or sys.stdout
    reader = read_line or (lambda: input("you> "))
    exit_code = 0
    while True:
        try:
            line = await asyncio.to_thread(reader)
        except EOFError:
            out.write("\n")
            break
        text = line.strip()
        if not text:
            continue
        if text in _QUIT_COMMANDS:
            break
        outcome = await run_prompt(orchestrator, text, out=out)
        exit_code = _EXIT_CODES.get(outcome.state, 1)
    return exit_code


async def _run_cli(settings: Settings, registry: ToolRegistry, prompt: str | None) -> int:
    async with CompletionClient(settings.to_client_settings()) as client:
        orchestrator = build_orchestrator(settings, client, registry)
        try:
            if prompt:
                outcome = await run_prompt(orchestrator, prompt)
                return _EXIT_CODES.get(outcome.state, 1)
            return await run_repl(orchestrator)
        finally:
            await orchestrator.aclose()


@contextlib.contextmanager
def _cancel_on_sigint(orchestrator: ChatOrchestrator):
    loop = asyncio.get_running_loop()
    installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, orchestrator.cancel)
        installed = True
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `mori` console script."""

    args = _parse_cli_args(argv)
    debug = args.debug or _env_flag("MORI_DEBUG", default=False)
    logging_utils.setup_logging(debug=debug)

    settings_path = args.settings or os.environ.get("MORI_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    store = SettingsStore(resolved_path)
    settings = load_settings(resolved_path, store=store, overrides=_cli_overrides(args))

    if args.dump_settings:
        _dump_settings(settings, store)
        return 0

    logging_utils.configure_from_settings(settings, debug=debug)

    if not settings.api_key:
        print("No API key configured. Use --api-key or MORI_API_KEY.", file=sys.stderr)
        return 2

    registry = ToolRegistry()
    if args.tools_module:
        try:
            load_tools_module(args.tools_module, registry)
        except (ImportError, AttributeError) as exc:
            print(f"Unable to load tools: {exc}", file=sys.stderr)
            return 2

    try:
        return asyncio.run(_run_cli(settings, registry, args.prompt))
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
        return 130


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {
        "model": args.model,
        "base_url": args.base_url,
        "api_key": args.api_key,
        "max_tool_iterations": args.max_iterations,
        "locale": args.locale,
    }
    if args.debug:
        overrides["debug_logging"] = True
    return {key: value for key, value in overrides.items() if value is not None}


def _dump_settings(settings: Settings, store: SettingsStore, *, out: TextIO | None = None) -> None:
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    payload["settings_path"] = str(store.path)
    (out or sys.stdout).write(json.dumps(payload, indent=2, sort_keys=True) + "\n")


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mori",
        description="Chat with a tool-calling assistant over an OpenAI-compatible endpoint.",
    )
    parser.add_argument("--prompt", "-p", help="Send one message and exit instead of starting a REPL.")
    parser.add_argument("--model", help="Model identifier sent to the endpoint.")
    parser.add_argument("--base-url", dest="base_url", help="Endpoint base URL (with or without /v1).")
    parser.add_argument("--api-key", dest="api_key", help="API key; prefer MORI_API_KEY.")
    parser.add_argument(
        "--max-iterations",
        dest="max_iterations",
        type=int,
        help="Maximum tool rounds per message.",
    )
    parser.add_argument("--locale", help="Language code passed to the system prompt.")
    parser.add_argument(
        "--settings",
        metavar="PATH",
        help="Override the default ~/.mori/settings.json path.",
    )
    parser.add_argument(
        "--tools-module",
        dest="tools_module",
        metavar="MODULE",
        help="Importable module exposing register_tools(registry).",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings (with secrets redacted) and exit.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
