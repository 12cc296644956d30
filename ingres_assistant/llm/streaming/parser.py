"""
SSE frame parser and delta extraction for chat completion streams.

The parser is incremental: text chunks may split a line (or a JSON
payload) at any offset, so incomplete input stays buffered until the next
chunk or the end-of-stream flush.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, AsyncIterable, Callable, Sequence
from typing import Any

import structlog

from .models import FrameEvent, StreamFrame

logger = structlog.get_logger(__name__)

# Constants
DATA_PREFIX = "data:"
TERMINAL_SENTINEL = "[DONE]"
MAX_LOGGED_PAYLOAD = 200


class StreamFrameParser:
    """
    Incremental line parser for `text/event-stream` bodies.

    Lines are delimited by `\\n` (a trailing `\\r` is dropped) and classified
    as comment, data (delta / terminal) or ignored. A data line whose JSON
    does not parse is pushed back into the buffer and line extraction is
    deferred; the buffer is retried exactly once, by `flush()` at end of
    input, where lines that still fail are reported as malformed.
    """

    def __init__(
        self,
        data_prefix: str = DATA_PREFIX,
        terminal_sentinel: str = TERMINAL_SENTINEL,
    ):
        self.data_prefix = data_prefix
        self.terminal_sentinel = terminal_sentinel
        self._buffer = ""
        self._deferred = False
        self._finished = False
        self.stats = {
            "total_frames": 0,
            "comment_frames": 0,
            "malformed_frames": 0,
            "deferred_lines": 0,
        }

    @property
    def finished(self) -> bool:
        """True once a terminal frame was emitted or the parser was flushed."""
        return self._finished

    @property
    def deferred(self) -> bool:
        """True while line extraction waits for the end-of-stream flush."""
        return self._deferred

    def feed(self, text: str) -> list[StreamFrame]:
        """Append a chunk and return every frame completed by it."""
        if self._finished:
            return []

        self._buffer += text
        if self._deferred:
            return []

        frames: list[StreamFrame] = []
        while "\n" in self._buffer:
            line, _, rest = self._buffer.partition("\n")
            try:
                frame = self._classify(line)
            except json.JSONDecodeError:
                # Leave the line unconsumed; it is retried at flush time
                self._deferred = True
                self.stats["deferred_lines"] += 1
                logger.debug(
                    "Deferring unparsable stream line",
                    payload=line[:MAX_LOGGED_PAYLOAD],
                )
                break

            self._buffer = rest
            if frame is None:
                continue

            frames.append(self._record(frame))
            if frame.event is FrameEvent.TERMINAL:
                self._finish()
                break

        return frames

    def flush(self) -> list[StreamFrame]:
        """Classify whatever remains in the buffer at end of input."""
        if self._finished:
            return []

        remaining = self._buffer
        self._finish()

        frames: list[StreamFrame] = []
        for line in remaining.split("\n"):
            try:
                frame = self._classify(line)
            except json.JSONDecodeError:
                frame = StreamFrame(event=FrameEvent.MALFORMED, payload=line)
                logger.warning(
                    "Dropping malformed stream frame",
                    payload=line[:MAX_LOGGED_PAYLOAD],
                )

            if frame is None:
                continue

            frames.append(self._record(frame))
            if frame.event is FrameEvent.TERMINAL:
                break

        return frames

    def _classify(self, raw_line: str) -> StreamFrame | None:
        """
        Classify one line. Returns None for lines that carry nothing.

        Raises:
            json.JSONDecodeError: If a data payload is not valid JSON.
        """
        line = raw_line[:-1] if raw_line.endswith("\r") else raw_line

        if not line.strip():
            return None

        if line.startswith(":"):
            return StreamFrame(event=FrameEvent.COMMENT, payload=line[1:].strip())

        if not line.startswith(self.data_prefix):
            return None

        payload = line[len(self.data_prefix):].strip()

        if payload == self.terminal_sentinel:
            return StreamFrame(event=FrameEvent.TERMINAL, payload=payload)

        # Empty data lines are keep-alives
        if not payload:
            return StreamFrame(event=FrameEvent.COMMENT, payload=payload)

        data = json.loads(payload)
        return StreamFrame(event=FrameEvent.DELTA, payload=payload, data=data)

    def _record(self, frame: StreamFrame) -> StreamFrame:
        self.stats["total_frames"] += 1
        if frame.event is FrameEvent.COMMENT:
            self.stats["comment_frames"] += 1
        elif frame.event is FrameEvent.MALFORMED:
            self.stats["malformed_frames"] += 1
        return frame

    def _finish(self) -> None:
        self._buffer = ""
        self._finished = True

    def get_stats(self) -> dict[str, int]:
        """Get parsing statistics for monitoring."""
        return self.stats.copy()


async def iter_frames(
    chunks: AsyncIterable[str],
    parser: StreamFrameParser | None = None,
) -> AsyncGenerator[StreamFrame]:
    """
    Lazily turn decoded body chunks into frames.

    Stops after the terminal frame; otherwise flushes the parser once the
    input is exhausted.
    """
    parser = parser or StreamFrameParser()

    async for chunk in chunks:
        for frame in parser.feed(chunk):
            yield frame
        if parser.finished:
            return

    for frame in parser.flush():
        yield frame


# --------------------------------------------------------------------------- #
# Delta extraction                                                            #
# --------------------------------------------------------------------------- #

Extractor = Callable[[dict[str, Any]], Any]


def openai_delta_content(data: dict[str, Any]) -> Any:
    """`choices[0].delta.content` (OpenAI-compatible chunks)."""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return None
    return delta.get("content")


def flat_content(data: dict[str, Any]) -> Any:
    """Top-level `content`."""
    return data.get("content")


def flat_text(data: dict[str, Any]) -> Any:
    """Top-level `text`."""
    return data.get("text")


DEFAULT_EXTRACTORS: tuple[Extractor, ...] = (
    openai_delta_content,
    flat_content,
    flat_text,
)


class DeltaExtractor:
    """Pulls incremental text out of a frame payload, trying dialects in order."""

    def __init__(self, extractors: Sequence[Extractor] = DEFAULT_EXTRACTORS):
        self.extractors = tuple(extractors)

    def extract(self, payload: Any) -> str | None:
        """
        Return the delta text of a payload, or None when it carries none.

        `payload` may be the raw JSON text or the already decoded value. The
        first extractor returning a string wins; an empty string means the
        frame has no content (role-only or empty delta).
        """
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                return None

        if not isinstance(payload, dict):
            return None

        for extractor in self.extractors:
            value = extractor(payload)
            if isinstance(value, str):
                return value or None

        return None

    def extract_frame(self, frame: StreamFrame) -> str | None:
        """Delta text of a frame; only delta frames can carry any."""
        if frame.event is not FrameEvent.DELTA:
            return None
        return self.extract(frame.data if frame.data is not None else frame.payload)
