#!/usr/bin/env python3
"""
Tests for delta extraction across payload dialects.
"""

from ingres_assistant.llm.streaming import (
    DeltaExtractor,
    FrameEvent,
    StreamFrame,
)
from ingres_assistant.llm.streaming.parser import flat_text


class TestDeltaExtractor:
    """Ordered extractors; first string value wins."""

    def setup_method(self):
        self.extractor = DeltaExtractor()

    def test_openai_chunk(self):
        """choices[0].delta.content is extracted."""
        payload = {"choices": [{"index": 0, "delta": {"content": "Ground"}}]}
        assert self.extractor.extract(payload) == "Ground"

    def test_flat_content(self):
        """Top-level content is extracted."""
        assert self.extractor.extract({"content": "water"}) == "water"

    def test_flat_text(self):
        """Top-level text is extracted."""
        assert self.extractor.extract({"text": "level"}) == "level"

    def test_raw_json_string(self):
        """Raw JSON text is decoded before extraction."""
        assert self.extractor.extract('{"content":"Hello"}') == "Hello"

    def test_openai_shape_takes_priority(self):
        """The OpenAI dialect is tried before the flat keys."""
        payload = {
            "choices": [{"delta": {"content": "first"}}],
            "content": "second",
            "text": "third",
        }
        assert self.extractor.extract(payload) == "first"

    def test_content_before_text(self):
        """content wins over text."""
        assert self.extractor.extract({"content": "a", "text": "b"}) == "a"

    def test_role_only_delta_has_no_content(self):
        """An OpenAI chunk carrying only the role yields nothing."""
        payload = {"choices": [{"delta": {"role": "assistant"}}]}
        assert self.extractor.extract(payload) is None

    def test_empty_string_means_no_delta(self):
        """An empty string is the first string found, so nothing is emitted."""
        payload = {"choices": [{"delta": {"content": ""}}], "content": "ignored"}
        assert self.extractor.extract(payload) is None

    def test_non_string_values_are_skipped(self):
        """Non-string values fall through to the next extractor."""
        assert self.extractor.extract({"content": 5, "text": "five"}) == "five"
        assert self.extractor.extract({"content": None}) is None

    def test_invalid_shapes(self):
        """Payloads that are not JSON objects carry no delta."""
        assert self.extractor.extract("not json") is None
        assert self.extractor.extract("[1, 2]") is None
        assert self.extractor.extract({"choices": "nope"}) is None
        assert self.extractor.extract({"choices": []}) is None

    def test_custom_extractor_order(self):
        """Extractors can be reordered or restricted."""
        extractor = DeltaExtractor([flat_text])
        assert extractor.extract({"content": "a", "text": "b"}) == "b"


class TestExtractFrame:
    """Frame-level extraction."""

    def test_only_delta_frames_carry_text(self):
        """Comment and terminal frames never produce deltas."""
        extractor = DeltaExtractor()

        delta = StreamFrame(
            event=FrameEvent.DELTA, payload='{"text":"x"}', data={"text": "x"}
        )
        comment = StreamFrame(event=FrameEvent.COMMENT, payload='{"text":"x"}')
        terminal = StreamFrame(event=FrameEvent.TERMINAL, payload="[DONE]")

        assert extractor.extract_frame(delta) == "x"
        assert extractor.extract_frame(comment) is None
        assert extractor.extract_frame(terminal) is None

    def test_falls_back_to_raw_payload(self):
        """Frames without decoded data are decoded from the payload."""
        frame = StreamFrame(event=FrameEvent.DELTA, payload='{"content":"y"}')
        assert DeltaExtractor().extract_frame(frame) == "y"
