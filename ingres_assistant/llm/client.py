"""
Streaming chat client - one request/response cycle per session.

The response body is driven through the frame parser and delta extractor
and surfaced as a lazy sequence of `StreamDelta` events followed by exactly
one terminal event (`StreamDone` or `StreamFailed`).
"""

from __future__ import annotations

import inspect
import json
from collections.abc import AsyncGenerator, Awaitable, Callable, Sequence
from typing import Any

import httpx
import structlog

from .exceptions import (
    ChatStreamError,
    EmptyResponseError,
    RateLimitError,
    ServiceUnavailableError,
    TransportError,
    UpstreamStatusError,
)
from .models import ChatTurn, ClientSettings
from .streaming.models import (
    StreamDelta,
    StreamDone,
    StreamEvent,
    StreamFailed,
)
from .streaming.parser import DeltaExtractor, StreamFrameParser, iter_frames

logger = structlog.get_logger(__name__)

HTTP_NO_CONTENT = 204
HTTP_PAYMENT_REQUIRED = 402
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVICE_UNAVAILABLE = 503

Callback = Callable[..., Awaitable[None] | None]


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class StreamingChatClient:
    """
    HTTP client for the `/chat` streaming endpoint.

    The base URL and timeouts come from `ClientSettings`; an existing
    `httpx.AsyncClient` can be injected (it is then not closed by `close()`).
    """

    def __init__(
        self,
        settings: ClientSettings,
        http_client: httpx.AsyncClient | None = None,
        extractor: DeltaExtractor | None = None,
    ) -> None:
        self.settings = settings
        self.extractor = extractor or DeltaExtractor()
        self._owns_client = http_client is None
        self.client: httpx.AsyncClient = http_client or httpx.AsyncClient(
            base_url=settings.base_url,
            headers=settings.headers,
            timeout=httpx.Timeout(
                connect=settings.connect_timeout,
                read=settings.read_timeout,
                write=settings.write_timeout,
                pool=settings.pool_timeout,
            ),
        )

    def _build_payload(
        self,
        messages: Sequence[ChatTurn | dict[str, Any]],
        conversation_id: str | None,
    ) -> dict[str, Any]:
        return {
            "messages": [
                m.to_payload() if isinstance(m, ChatTurn) else
                {"role": m["role"], "content": m["content"]}
                for m in messages
            ],
            "conversation_id": conversation_id,
        }

    async def stream_chat(
        self,
        messages: Sequence[ChatTurn | dict[str, Any]],
        conversation_id: str | None = None,
    ) -> AsyncGenerator[StreamEvent]:
        """
        Send the history and yield deltas, then exactly one terminal event.

        Closing the generator (or cancelling the awaiting task) aborts the
        request; no further events are produced in that case.
        """
        payload = self._build_payload(messages, conversation_id)
        session_logger = logger.bind(
            conversation_id=conversation_id,
            message_count=len(payload["messages"]),
        )
        parser = StreamFrameParser()
        delta_count = 0

        try:
            async with self.client.stream(
                "POST", self.settings.chat_path, json=payload
            ) as response:
                await self._raise_for_status(response)
                self._ensure_body(response)

                async for frame in iter_frames(response.aiter_text(), parser):
                    text = self.extractor.extract_frame(frame)
                    if text:
                        delta_count += 1
                        yield StreamDelta(text=text)

            terminal: StreamEvent = StreamDone()

        except ChatStreamError as e:
            terminal = e.to_event()

        except httpx.HTTPError as e:
            terminal = TransportError(
                str(e) or "Connection failed"
            ).to_event()

        if isinstance(terminal, StreamFailed):
            session_logger.warning(
                "Chat stream failed",
                failure_kind=terminal.kind.value,
                status_code=terminal.status_code,
                error_message=terminal.message,
                delta_count=delta_count,
            )
        else:
            session_logger.info(
                "Chat stream completed",
                delta_count=delta_count,
                **parser.get_stats(),
            )

        yield terminal

    async def run_session(
        self,
        messages: Sequence[ChatTurn | dict[str, Any]],
        conversation_id: str | None = None,
        *,
        on_delta: Callback,
        on_done: Callback,
        on_error: Callback,
    ) -> StreamEvent:
        """
        Callback form of `stream_chat`.

        `on_delta(text)` fires once per delta in arrival order, then exactly
        one of `on_done()` / `on_error(message)`. Callbacks may be plain
        functions or coroutines. Returns the terminal event.
        """
        terminal: StreamEvent = StreamDone()
        async for event in self.stream_chat(messages, conversation_id):
            if isinstance(event, StreamDelta):
                await _maybe_await(on_delta(event.text))
                continue

            terminal = event
            if isinstance(event, StreamFailed):
                await _maybe_await(on_error(event.message))
            else:
                await _maybe_await(on_done())

        return terminal

    async def _raise_for_status(self, response: httpx.Response) -> None:
        """Raise a typed error for a non-2xx response, reading its body."""
        if response.is_success:
            return

        body = await response.aread()
        data: Any = None
        try:
            data = json.loads(body) if body else None
        except ValueError:
            data = None

        message = None
        if isinstance(data, dict):
            for key in ("error", "detail"):
                if isinstance(data.get(key), str) and data[key]:
                    message = data[key]
                    break
        message = message or f"Request failed with status {response.status_code}"

        status = response.status_code
        error_cls: type[UpstreamStatusError] = UpstreamStatusError
        if status == HTTP_TOO_MANY_REQUESTS:
            error_cls = RateLimitError
        elif status in (HTTP_PAYMENT_REQUIRED, HTTP_SERVICE_UNAVAILABLE):
            error_cls = ServiceUnavailableError

        raise error_cls(
            message,
            status_code=status,
            response_data=data if isinstance(data, dict) else None,
        )

    def _ensure_body(self, response: httpx.Response) -> None:
        if (
            response.status_code == HTTP_NO_CONTENT
            or response.headers.get("content-length") == "0"
        ):
            raise EmptyResponseError(
                "No response body", status_code=response.status_code
            )

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> StreamingChatClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
