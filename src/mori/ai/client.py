"""Async streaming client for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Protocol, cast, runtime_checkable

import httpx
from openai.types.chat import ChatCompletionMessageParam
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import (
    InvalidResponseError,
    ProtocolDecodeError,
    ServerUnavailableError,
    TransportError,
    classify_status,
)

__all__ = [
    "ClientSettings",
    "CompletionClient",
    "ModelClient",
    "decode_data_payload",
]

LOGGER = logging.getLogger(__name__)
_DATA_PREFIX = "data:"
_DONE_SENTINEL = "[DONE]"
_COMPLETIONS_PATH = "/chat/completions"


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the completion client."""

    base_url: str
    api_key: str
    model: str
    temperature: float = 0.0
    request_timeout: float | None = 60.0
    connect_timeout: float | None = 10.0
    max_retries: int = 1
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False

    @property
    def completions_url(self) -> str:
        base = self.base_url.rstrip("/")
        if not base.endswith("/v1"):
            base = f"{base}/v1"
        return f"{base}{_COMPLETIONS_PATH}"


@runtime_checkable
class ModelClient(Protocol):
    """Anything able to stream completion text for a list of chat messages."""

    def stream_chat(
        self,
        messages: Iterable[Mapping[str, Any]],
        *,
        temperature: float | None = None,
    ) -> AsyncIterator[str]:
        ...


def decode_data_payload(payload: str) -> str | None:
    """Return the delta content carried by one ``data:`` payload.

    Raises :class:`ProtocolDecodeError` when the payload is not a JSON object
    shaped like a streamed chat completion chunk.
    """

    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ProtocolDecodeError(payload, f"invalid JSON ({exc.msg})") from exc
    if not isinstance(parsed, dict):
        raise ProtocolDecodeError(payload, "chunk is not an object")
    choices = parsed.get("choices")
    if not isinstance(choices, list):
        raise ProtocolDecodeError(payload, "chunk has no choices array")
    if not choices:
        return None
    first = choices[0]
    delta = first.get("delta") if isinstance(first, dict) else None
    if not isinstance(delta, dict):
        raise ProtocolDecodeError(payload, "choice has no delta object")
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


class CompletionClient:
    """Streams completion text chunks from the chat completion endpoint."""

    def __init__(
        self,
        settings: ClientSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._owns_http_client = http_client is None
        self._http = http_client or self._build_http_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def __aenter__(self) -> "CompletionClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def build_request_body(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        *,
        temperature: float | None = None,
    ) -> Dict[str, Any]:
        normalized = self._coerce_messages(messages)
        return {
            "model": self._settings.model,
            "messages": normalized,
            "stream": True,
            "temperature": self._settings.temperature if temperature is None else temperature,
        }

    async def stream_chat(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        *,
        temperature: float | None = None,
    ) -> AsyncIterator[str]:
        """Stream completion text for ``messages``.

        Yields non-empty content deltas in arrival order. Raises
        :class:`TransportError`, :class:`HTTPStatusError` or
        :class:`InvalidResponseError`; malformed lines are skipped.
        """

        payload = self.build_request_body(messages, temperature=temperature)
        LOGGER.debug(
            "Starting streamed chat completion via %s with %s message(s)",
            self._settings.model,
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        response = await self._open_stream(payload)
        chunk_count = 0
        saw_done = False
        try:
            async for line in self._iter_lines(response):
                data = self._unwrap_data_line(line)
                if data is None:
                    continue
                if data == _DONE_SENTINEL:
                    saw_done = True
                    break
                try:
                    content = decode_data_payload(data)
                except ProtocolDecodeError as exc:
                    LOGGER.debug("Skipping undecodable stream line: %s", exc)
                    continue
                if content is None:
                    continue
                chunk_count += 1
                yield content
        finally:
            await response.aclose()

        if saw_done:
            LOGGER.debug("Streaming response completed with %d chunk(s)", chunk_count)
            return
        if chunk_count == 0:
            raise InvalidResponseError("Stream ended without content or end-of-stream marker")
        LOGGER.debug("Stream closed without end marker after %d chunk(s)", chunk_count)

    async def aclose(self) -> None:
        """Close the underlying HTTP client when this instance created it."""

        if self._owns_http_client:
            await self._http.aclose()

    def _build_http_client(self, settings: ClientSettings) -> httpx.AsyncClient:
        timeout = httpx.Timeout(settings.request_timeout, connect=settings.connect_timeout)
        headers = dict(settings.default_headers) if settings.default_headers else None
        return httpx.AsyncClient(timeout=timeout, headers=headers)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type((TransportError, ServerUnavailableError)),
        )

    async def _open_stream(self, payload: Mapping[str, Any]) -> httpx.Response:
        response: httpx.Response | None = None
        async for attempt in self._retrying():
            with attempt:
                response = await self._send(payload)
        if response is None:  # pragma: no cover - tenacity always runs one attempt
            raise InvalidResponseError("No response received")
        return response

    async def _send(self, payload: Mapping[str, Any]) -> httpx.Response:
        request = self._http.build_request(
            "POST",
            self._settings.completions_url,
            json=payload,
            headers={
                "Authorization": f"Bearer {self._settings.api_key}",
                "Content-Type": "application/json",
                "Accept": "text/event-stream",
            },
        )
        try:
            response = await self._http.send(request, stream=True)
        except httpx.TransportError as exc:
            LOGGER.warning("Completion request to %s failed: %s", request.url, exc)
            raise TransportError(str(exc) or type(exc).__name__) from exc

        if response.status_code == 200:
            return response

        try:
            raw = await response.aread()
        except httpx.TransportError as exc:
            raise TransportError(str(exc) or type(exc).__name__) from exc
        finally:
            await response.aclose()
        body = raw.decode("utf-8", errors="replace")
        LOGGER.warning("Completion endpoint returned %s: %s", response.status_code, body[:200])
        raise classify_status(response.status_code, body)

    async def _iter_lines(self, response: httpx.Response) -> AsyncIterator[str]:
        try:
            async for line in response.aiter_lines():
                yield line
        except httpx.TransportError as exc:
            LOGGER.warning("Completion stream interrupted: %s", exc)
            raise TransportError(str(exc) or type(exc).__name__) from exc

    @staticmethod
    def _unwrap_data_line(line: str) -> str | None:
        if not line.startswith(_DATA_PREFIX):
            return None
        return line[len(_DATA_PREFIX):].strip()

    def _coerce_messages(
        self, messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam]
    ) -> List[ChatCompletionMessageParam]:
        normalized: List[ChatCompletionMessageParam] = []
        for message in messages:
            try:
                normalized.append(cast(ChatCompletionMessageParam, dict(message)))
            except TypeError as exc:
                raise TypeError("Messages must be mapping-like objects") from exc
        if not normalized:
            raise ValueError("At least one message is required to start a chat")
        return normalized

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Completion payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Completion payload:\n%s", serialized)
