"""System prompt construction for the tool-calling assistant.

The orchestrator only needs an opaque system prompt string. This module
provides the default provider, which fills a template with the current date,
the user's language and the registered tool descriptors.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Protocol, Sequence, runtime_checkable

from .orchestration.tools import ToolSpec

__all__ = [
    "PLACEHOLDERS",
    "DEFAULT_SYSTEM_TEMPLATE",
    "PromptBuilder",
    "SystemPromptBuilder",
    "locale_display_name",
    "format_tools_description",
]

LOGGER = logging.getLogger(__name__)

PLACEHOLDERS: tuple[str, ...] = (
    "{{CURRENT_DATE}}",
    "{{USER_LANGUAGE}}",
    "{{LANGUAGE_DISPLAY_NAME}}",
    "{{TOOLS_DESCRIPTION}}",
)

DEFAULT_SYSTEM_TEMPLATE = """You are Mori, a helpful AI assistant with access to calendar and memory tools.

Current date and time: {{CURRENT_DATE}}
User's preferred language: {{USER_LANGUAGE}} ({{LANGUAGE_DISPLAY_NAME}})
Always answer in {{LANGUAGE_DISPLAY_NAME}} unless the user asks otherwise.

Available Tools:
{{TOOLS_DESCRIPTION}}

## Tool Usage Instructions
1. Decide whether the request needs a tool.
2. To call a tool, reply with a fenced JSON block (no comments inside):

```json
{"tool": "tool-name", "arguments": {"param": "value"}}
```

   To call several tools, put an array of such objects in one block.
3. Tool results come back as messages that start with "Tool <name>".

## Response Guidelines
- After tool execution, answer naturally and concisely.
- Focus on the information relevant to the user's question.
- Do not repeat raw data; summarize it.
- Act when asked instead of asking for confirmation, unless the change is destructive.
"""

_LANGUAGE_NAMES: dict[str, str] = {
    "de": "German",
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "nl": "Dutch",
    "pt": "Portuguese",
    "ru": "Russian",
    "zh": "Chinese",
    "zh-hans": "Chinese (Simplified)",
    "zh-hant": "Chinese (Traditional)",
}


@runtime_checkable
class PromptBuilder(Protocol):
    """Supplies the system prompt for a completion request."""

    def build(self, tools: Sequence[ToolSpec], locale: str) -> str:
        ...


def locale_display_name(code: str) -> str:
    """Return an English name for ``code`` (``en``, ``zh-Hans``, ``fr_CA``...).

    Unknown codes are returned unchanged.
    """
    normalized = code.strip().replace("_", "-").lower()
    if not normalized:
        return code
    if normalized in _LANGUAGE_NAMES:
        return _LANGUAGE_NAMES[normalized]
    parts = normalized.split("-")
    for size in range(len(parts) - 1, 0, -1):
        candidate = "-".join(parts[:size])
        if candidate in _LANGUAGE_NAMES:
            return _LANGUAGE_NAMES[candidate]
    return code


def format_tools_description(tools: Sequence[ToolSpec]) -> str:
    if not tools:
        return "(no tools available)"
    return "\n\n".join(spec.describe() for spec in tools)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class SystemPromptBuilder:
    """Default :class:`PromptBuilder` rendering ``{{PLACEHOLDER}}`` templates.

    A custom template that lacks one of :data:`PLACEHOLDERS`, or that still
    contains ``{{`` after rendering, is replaced by the built-in template so
    the model always sees the date, language and tool list.
    """

    def __init__(
        self,
        template: str | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._template = template
        self._clock = clock or _local_now

    @classmethod
    def from_file(cls, path: Path | str, **kwargs) -> SystemPromptBuilder:
        """Load a template from disk, using the built-in one if it is unreadable."""
        try:
            template = Path(path).expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            LOGGER.warning("Unable to read prompt template %s: %s", path, exc)
            template = None
        return cls(template, **kwargs)

    @property
    def template(self) -> str:
        return self._template if self._template is not None else DEFAULT_SYSTEM_TEMPLATE

    def build(self, tools: Sequence[ToolSpec], locale: str) -> str:
        values = {
            "{{CURRENT_DATE}}": self._clock().isoformat(timespec="seconds"),
            "{{USER_LANGUAGE}}": locale,
            "{{LANGUAGE_DISPLAY_NAME}}": locale_display_name(locale),
            "{{TOOLS_DESCRIPTION}}": format_tools_description(tools),
        }
        template = self._template
        if template is not None:
            missing = [name for name in PLACEHOLDERS if name not in template]
            if missing:
                LOGGER.warning("Prompt template missing %s; using built-in template", ", ".join(missing))
            elif "{{" in _render(template, dict.fromkeys(PLACEHOLDERS, "")):
                LOGGER.warning("Prompt template has unknown placeholders; using built-in template")
            else:
                return _render(template, values)
        return _render(DEFAULT_SYSTEM_TEMPLATE, values)


def _render(template: str, values: dict[str, str]) -> str:
    rendered = template
    for placeholder, value in values.items():
        rendered = rendered.replace(placeholder, value)
    return rendered
