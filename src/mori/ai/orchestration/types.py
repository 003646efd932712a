"""Conversation types shared by the orchestrator loop and its callers.

A conversation is an ordered, append-only sequence of
:data:`ConversationItem` values. Items are either chat :class:`Message`
rows or :class:`ToolStep` trace records, and code that handles both uses
``match`` on the concrete type.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, Literal, Mapping, Sequence, TypeAlias

from openai.types.chat import ChatCompletionMessageParam

from ..json_value import JSONObject

__all__ = [
    "Role",
    "Message",
    "StepStatus",
    "ToolStep",
    "ConversationItem",
    "ConversationHistory",
    "ToolCall",
    "ToolFailure",
    "ToolExecutionResult",
]


def _utcnow() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


# -----------------------------------------------------------------------------
# Items
# -----------------------------------------------------------------------------

Role = Literal["user", "assistant", "system"]
_ROLES: frozenset[str] = frozenset({"user", "assistant", "system"})


@dataclass(slots=True, frozen=True)
class Message:
    """Immutable chat message.

    Attributes:
        content: The text content of the message.
        role: Who produced the message.
        id: Stable identifier.
        timestamp: Creation time (UTC).
        is_open: True for an assistant placeholder still being streamed by a
            UI; the orchestrator finalizes it instead of appending a new row.
    """

    content: str
    role: Role
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_utcnow)
    is_open: bool = False

    def __post_init__(self) -> None:
        if self.role not in _ROLES:
            raise ValueError(f"Unsupported message role: {self.role!r}")

    def to_chat_param(self) -> ChatCompletionMessageParam:
        """Convert to the ``{"role", "content"}`` wire shape."""
        return {"role": self.role, "content": self.content}  # type: ignore[return-value]

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(content=content, role="user")

    @classmethod
    def assistant(cls, content: str, *, is_open: bool = False) -> Message:
        return cls(content=content, role="assistant", is_open=is_open)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(content=content, role="system")


class StepStatus(str, Enum):
    """Lifecycle of a tool step as shown to the user."""

    SCHEDULED = "scheduled"
    EXECUTING = "executing"
    RESULT = "result"
    ERROR = "error"
    FINAL = "final"


@dataclass(slots=True, frozen=True)
class ToolStep:
    """Trace record of one tool execution step.

    ``details`` is kept as a string mapping so it can be persisted and shown
    without further conversion (arguments and results are pre-serialized).
    """

    status: StepStatus
    tool_name: str = ""
    details: Mapping[str, str] = field(default_factory=dict)
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_utcnow)


ConversationItem: TypeAlias = "Message | ToolStep"


# -----------------------------------------------------------------------------
# History
# -----------------------------------------------------------------------------


class ConversationHistory:
    """Append-only ordered sequence of conversation items.

    Past items are never edited. The single exception is an open assistant
    placeholder at the tail, which :meth:`close_open_assistant` replaces with
    the finalized text.
    """

    def __init__(self, items: Sequence[ConversationItem] = ()) -> None:
        self._items: list[ConversationItem] = list(items)

    def append(self, item: ConversationItem) -> None:
        self._items.append(item)

    def extend(self, items: Sequence[ConversationItem]) -> None:
        self._items.extend(items)

    def close_open_assistant(self, content: str) -> Message:
        """Finalize the open assistant placeholder, or append a new message."""
        if self._items:
            last = self._items[-1]
            if isinstance(last, Message) and last.role == "assistant" and last.is_open:
                closed = replace(last, content=content, is_open=False)
                self._items[-1] = closed
                return closed
        message = Message.assistant(content)
        self._items.append(message)
        return message

    def snapshot(self) -> tuple[ConversationItem, ...]:
        return tuple(self._items)

    def restore(self, snapshot: Sequence[ConversationItem]) -> None:
        """Reset to a snapshot taken earlier in the same run."""
        self._items = list(snapshot)

    def messages(self) -> list[Message]:
        return [item for item in self._items if isinstance(item, Message)]

    def last(self) -> ConversationItem | None:
        return self._items[-1] if self._items else None

    def to_dicts(self) -> list[dict[str, Any]]:
        """Serialize items for callers that persist conversations."""
        payload: list[dict[str, Any]] = []
        for item in self._items:
            match item:
                case Message():
                    payload.append(
                        {
                            "type": "message",
                            "id": item.id,
                            "role": item.role,
                            "content": item.content,
                            "timestamp": item.timestamp.isoformat(),
                        }
                    )
                case ToolStep():
                    payload.append(
                        {
                            "type": "tool_step",
                            "id": item.id,
                            "status": item.status.value,
                            "tool_name": item.tool_name,
                            "details": dict(item.details),
                            "timestamp": item.timestamp.isoformat(),
                        }
                    )
        return payload

    @classmethod
    def from_dicts(cls, payload: Sequence[Mapping[str, Any]]) -> ConversationHistory:
        items: list[ConversationItem] = []
        for entry in payload:
            kind = entry.get("type")
            timestamp = _parse_timestamp(entry.get("timestamp"))
            if kind == "message":
                items.append(
                    Message(
                        content=str(entry.get("content", "")),
                        role=entry.get("role", "user"),
                        id=str(entry.get("id") or _new_id()),
                        timestamp=timestamp,
                    )
                )
            elif kind == "tool_step":
                details = entry.get("details") or {}
                items.append(
                    ToolStep(
                        status=StepStatus(entry.get("status", StepStatus.RESULT.value)),
                        tool_name=str(entry.get("tool_name", "")),
                        details={str(k): str(v) for k, v in dict(details).items()},
                        id=str(entry.get("id") or _new_id()),
                        timestamp=timestamp,
                    )
                )
            else:
                raise ValueError(f"Unknown conversation item type: {kind!r}")
        return cls(items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ConversationItem]:
        return iter(tuple(self._items))

    def __getitem__(self, index: int) -> ConversationItem:
        return self._items[index]


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return _utcnow()


# -----------------------------------------------------------------------------
# Tool calls
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A ``{"tool", "arguments"}`` request found in model output."""

    tool: str
    arguments: JSONObject = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ToolFailure:
    """Failure descriptor for a tool call that produced no result."""

    tool: str
    message: str
    kind: str = "execution_failed"


ToolExecutionResult: TypeAlias = "JSONObject | ToolFailure"
