"""
Error types for the chat streaming client.

Each error carries the failure kind it maps to, so the session
controller can turn any of them into a single terminal event:
- Transport failures (network unreachable, broken stream)
- Upstream status errors with rate limit / quota detection
- Responses without a readable body
"""

from __future__ import annotations

from .streaming.models import FailureKind, StreamFailed


class ChatStreamError(Exception):
    """Base streaming error with rich context."""

    kind = FailureKind.UPSTREAM

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}

    def to_event(self) -> StreamFailed:
        """Convert into the terminal failure event."""
        return StreamFailed(
            message=self.message, kind=self.kind, status_code=self.status_code
        )


class TransportError(ChatStreamError):
    """Network-level failure while sending or reading."""

    kind = FailureKind.TRANSPORT


class UpstreamStatusError(ChatStreamError):
    """Non-2xx response from the chat endpoint."""
    pass


class RateLimitError(UpstreamStatusError):
    """Upstream rate limit hit (HTTP 429)."""

    kind = FailureKind.RATE_LIMITED


class ServiceUnavailableError(UpstreamStatusError):
    """Quota exhausted or service down (HTTP 402 / 503)."""

    kind = FailureKind.UNAVAILABLE


class EmptyResponseError(ChatStreamError):
    """Successful status but nothing to read."""

    kind = FailureKind.EMPTY_BODY
