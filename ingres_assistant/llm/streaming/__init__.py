"""
Streaming support for the chat client.

This package contains:
- SSE frame parsing tolerant of arbitrary chunk boundaries
- Delta extraction across response dialects
- Typed frames and session events
"""

from __future__ import annotations

from .models import (
    FailureKind,
    FrameEvent,
    StreamDelta,
    StreamDone,
    StreamEvent,
    StreamFailed,
    StreamFrame,
)
from .parser import DeltaExtractor, StreamFrameParser, iter_frames

__all__ = [
    "DeltaExtractor",
    "FailureKind",
    "FrameEvent",
    "StreamDelta",
    "StreamDone",
    "StreamEvent",
    "StreamFailed",
    "StreamFrame",
    "StreamFrameParser",
    "iter_frames",
]
