"""
Streaming-specific dataclasses: parsed SSE frames and session events.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class FrameEvent(Enum):
    """Classification of one SSE line."""
    DELTA = "delta"
    TERMINAL = "terminal"
    COMMENT = "comment"
    MALFORMED = "malformed"


class FailureKind(Enum):
    """Why a streaming session ended in failure."""
    TRANSPORT = "transport"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UPSTREAM = "upstream"
    EMPTY_BODY = "empty_body"


@dataclass(frozen=True)
class StreamFrame:
    """One classified `data:` or comment line from the response body."""
    event: FrameEvent
    payload: str
    data: Any = None


@dataclass(frozen=True)
class StreamDelta:
    """Incremental assistant text carried by one frame."""
    text: str


@dataclass(frozen=True)
class StreamDone:
    """The stream completed normally."""


@dataclass(frozen=True)
class StreamFailed:
    """The stream ended with an error; no further events follow."""
    message: str
    kind: FailureKind = FailureKind.UPSTREAM
    status_code: int | None = None


StreamEvent = StreamDelta | StreamDone | StreamFailed
