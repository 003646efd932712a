"""Error types raised by the completion stream client.

Only :class:`TransportError`, :class:`HTTPStatusError` (and its subclasses)
and :class:`InvalidResponseError` ever leave the client; they are fatal to an
orchestrator run. :class:`ProtocolDecodeError` is raised per malformed stream
line and handled inside the client.
"""

from __future__ import annotations

__all__ = [
    "CompletionError",
    "TransportError",
    "HTTPStatusError",
    "ServerUnavailableError",
    "ClientRequestError",
    "InvalidResponseError",
    "ProtocolDecodeError",
    "classify_status",
]

_BODY_PREVIEW_CHARS = 500


class CompletionError(Exception):
    """Base class for failures talking to the completion endpoint."""

    kind = "completion"


class TransportError(CompletionError):
    """No connectivity, DNS failure, timeout or a broken connection."""

    kind = "transport"


class HTTPStatusError(CompletionError):
    """The endpoint answered with a non-success status code."""

    kind = "http"

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        preview = body.strip()
        if len(preview) > _BODY_PREVIEW_CHARS:
            preview = preview[:_BODY_PREVIEW_CHARS] + "..."
        message = f"HTTP {status_code}"
        if preview:
            message = f"{message}: {preview}"
        super().__init__(message)


class ServerUnavailableError(HTTPStatusError):
    """5xx answer from the endpoint."""

    kind = "server_error"


class ClientRequestError(HTTPStatusError):
    """4xx (or otherwise unexpected) answer from the endpoint."""

    kind = "client_error"


class InvalidResponseError(CompletionError):
    """The stream ended without yielding content or an end-of-stream sentinel."""

    kind = "invalid_response"


class ProtocolDecodeError(ValueError):
    """A single event-stream line could not be decoded."""

    def __init__(self, line: str, reason: str) -> None:
        self.line = line
        self.reason = reason
        super().__init__(f"{reason}: {line[:120]!r}")


def classify_status(status_code: int, body: str = "") -> HTTPStatusError:
    """Return the error matching ``status_code``."""
    if status_code >= 500:
        return ServerUnavailableError(status_code, body)
    return ClientRequestError(status_code, body)
