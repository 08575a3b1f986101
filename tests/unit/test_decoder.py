"""Unit tests for the chunk decoder: side-channel reasoning, Ollama JSON envelope, plain text."""
import json

import pytest
from langchain_core.messages import AIMessageChunk

from graph.decoder import (
    Fragment,
    PartsContent,
    TextContent,
    content_text,
    decode_chunk,
    decode_fragment,
    fragment_from_chunk,
)
from graph.events import Content, Thinking


class TestDecodeFragment:
    @pytest.mark.parametrize("text", ["你好", "Hello, world", "  spaced  ", "{not json", "[1, 2"])
    def test_plain_text_is_content(self, text):
        assert decode_fragment(Fragment(TextContent(text))) == [Content(text)]

    def test_empty_fragment_yields_nothing(self):
        assert decode_fragment(Fragment(TextContent(""))) == []
        assert decode_fragment(Fragment(PartsContent(()))) == []

    def test_reasoning_then_envelope(self):
        payload = json.dumps({"message": {"thinking": "T", "content": "C"}})
        events = decode_fragment(Fragment(TextContent(payload), reasoning="R"))
        assert events == [Thinking("R"), Thinking("T"), Content("C")]

    def test_reasoning_and_plain_content_in_one_fragment(self):
        events = decode_fragment(Fragment(TextContent("answer"), reasoning="hmm"))
        assert events == [Thinking("hmm"), Content("answer")]

    def test_reasoning_only(self):
        assert decode_fragment(Fragment(TextContent(""), reasoning="R")) == [Thinking("R")]

    def test_envelope_with_only_content(self):
        payload = json.dumps({"message": {"role": "assistant", "content": "北京"}})
        assert decode_fragment(Fragment(TextContent(payload))) == [Content("北京")]

    def test_envelope_with_empty_fields_yields_nothing(self):
        payload = json.dumps({"message": {"thinking": "", "content": ""}, "done": True})
        assert decode_fragment(Fragment(TextContent(payload))) == []

    def test_json_scalar_token_is_literal_content(self):
        """A streamed token that happens to be valid JSON is still text."""
        assert decode_fragment(Fragment(TextContent("42"))) == [Content("42")]
        assert decode_fragment(Fragment(TextContent(" true"))) == [Content(" true")]

    def test_json_object_without_message_is_literal_content(self):
        payload = '{"name": "张三"}'
        assert decode_fragment(Fragment(TextContent(payload))) == [Content(payload)]

    def test_parts_content_is_joined(self):
        parts = ("Hel", {"type": "text", "text": "lo"}, {"type": "image_url", "image_url": "x"})
        assert decode_fragment(Fragment(PartsContent(parts))) == [Content("Hello")]


class TestFragmentFromChunk:
    def test_string_content(self):
        frag = fragment_from_chunk(AIMessageChunk(content="hi"))
        assert frag == Fragment(TextContent("hi"), reasoning="")

    def test_list_content(self):
        frag = fragment_from_chunk(AIMessageChunk(content=[{"type": "text", "text": "a"}]))
        assert isinstance(frag.content, PartsContent)
        assert content_text(frag.content) == "a"

    def test_reasoning_side_channel(self):
        chunk = AIMessageChunk(content="", additional_kwargs={"reasoning_content": "thinking..."})
        assert fragment_from_chunk(chunk).reasoning == "thinking..."

    def test_non_string_reasoning_ignored(self):
        chunk = AIMessageChunk(content="x", additional_kwargs={"reasoning_content": {"a": 1}})
        assert fragment_from_chunk(chunk).reasoning == ""

    def test_object_without_fields(self):
        assert decode_chunk(object()) == []


def test_decode_chunk_end_to_end(make_chunk):
    assert decode_chunk(make_chunk("C", reasoning="R")) == [Thinking("R"), Content("C")]
