"""
Chat completion streaming client.

This package provides:
- Incremental SSE parsing with end-of-stream recovery
- Delta extraction for OpenAI-style and flat `{content|text}` payloads
- A session controller guaranteeing exactly one terminal event
- Typed errors for transport, rate limit and upstream failures
"""

from __future__ import annotations

from .client import StreamingChatClient
from .exceptions import (
    ChatStreamError,
    EmptyResponseError,
    RateLimitError,
    ServiceUnavailableError,
    TransportError,
    UpstreamStatusError,
)
from .models import ChatTurn, ClientSettings, MessageRole

__all__ = [
    # Exceptions
    "ChatStreamError",
    # Core models
    "ChatTurn",
    "ClientSettings",
    "EmptyResponseError",
    "MessageRole",
    "RateLimitError",
    "ServiceUnavailableError",
    # Client
    "StreamingChatClient",
    "TransportError",
    "UpstreamStatusError",
]
