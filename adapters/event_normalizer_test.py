"""Tests for current-dialect normalization and dialect routing."""

import os
import sys

# Ensure adapters/ is on path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from chat_events import Chunk, Done, Error, Start, ToolCall, ToolResult, Usage
from event_normalizer import normalize_current, normalize_message
from payload_classifier import CURRENT_ONLY
from stream_dispatcher import StreamState

TOOL_CALL = {"id": "call-1", "name": "search", "arguments": {"q": "sse"}, "mcpServerName": "web"}
TOOL_RESULT = {"id": "call-1", "name": "search", "result": ["a", "b"]}


class TestStart:
    def test_start(self):
        state = StreamState()
        assert normalize_current({"type": "START", "chatId": "c1"}, state) == [Start("c1")]
        assert state.stream_id == "c1"

    def test_start_without_id_dropped(self):
        assert normalize_current({"type": "START"}, StreamState()) == []

    def test_lowercase_type(self):
        assert normalize_current({"type": "start", "chatId": "c1"}, StreamState()) == [Start("c1")]

    def test_non_string_type_dropped(self):
        assert normalize_current({"type": 3, "chatId": "c1"}, StreamState()) == []


class TestAssistant:
    def test_chunk(self):
        events = normalize_current({"type": "ASSISTANT", "content": "Hel", "chatId": "c1"}, StreamState())
        assert events == [Chunk("Hel", "c1")]

    def test_non_string_content_dropped(self):
        state = StreamState()
        assert normalize_current({"type": "ASSISTANT", "content": {"x": 1}, "chatId": "c1"}, state) == []
        assert normalize_current({"type": "ASSISTANT", "content": None, "chatId": "c1"}, state) == []

    def test_without_any_stream_id_dropped(self):
        assert normalize_current({"type": "ASSISTANT", "content": "hi"}, StreamState()) == []

    def test_uses_pinned_id_when_frame_has_none(self):
        state = StreamState(stream_id="c1")
        assert normalize_current({"type": "ASSISTANT", "content": "hi"}, state) == [Chunk("hi", "c1")]

    def test_first_stream_id_wins(self):
        state = StreamState()
        normalize_current({"type": "START", "chatId": "first"}, state)
        events = normalize_current({"type": "ASSISTANT", "content": "x", "chatId": "second"}, state)
        assert events == [Chunk("x", "first")]
        assert state.stream_id == "first"


class TestThinking:
    def test_suppressed(self):
        state = StreamState()
        assert normalize_current({"type": "THINKING", "content": "hmm", "chatId": "c1"}, state) == []
        assert state.full_text == ""


class TestTools:
    def test_tool_call(self):
        events = normalize_current({"type": "TOOL_CALL", "content": TOOL_CALL, "chatId": "c1"}, StreamState())
        assert events == [ToolCall(TOOL_CALL, "c1", None)]

    def test_tool_call_with_usage(self):
        message = {"type": "TOOL_CALL", "content": TOOL_CALL, "chatId": "c1", "usage": {"promptTokens": 4}}
        (event,) = normalize_current(message, StreamState())
        assert event.usage == Usage(prompt_tokens=4)

    def test_tool_call_string_content_dropped(self):
        message = {"type": "TOOL_CALL", "content": '{"id": "call-1"}', "chatId": "c1"}
        assert normalize_current(message, StreamState()) == []

    def test_tool_result(self):
        events = normalize_current({"type": "TOOL_RESULT", "content": TOOL_RESULT, "chatId": "c1"}, StreamState())
        assert events == [ToolResult(TOOL_RESULT, "c1", None)]

    def test_tool_result_without_content_dropped(self):
        assert normalize_current({"type": "TOOL_RESULT", "chatId": "c1"}, StreamState()) == []


class TestDone:
    def test_carries_accumulated_text_and_usage(self):
        state = StreamState(stream_id="x", full_text="Hello")
        message = {
            "type": "DONE",
            "chatId": "x",
            "usage": {"promptTokens": 3, "completionTokens": 2, "totalTokens": 5},
        }
        assert normalize_current(message, state) == [
            Done("Hello", "x", Usage(prompt_tokens=3, completion_tokens=2, total_tokens=5)),
        ]

    def test_without_usage(self):
        state = StreamState(full_text="hi")
        assert normalize_current({"type": "DONE", "chatId": "x"}, state) == [Done("hi", "x", None)]

    def test_without_stream_id_dropped(self):
        assert normalize_current({"type": "DONE"}, StreamState()) == []


class TestError:
    def test_message_and_code(self):
        message = {"type": "ERROR", "chatId": "c1", "error": "RATE_LIMITED", "message": "Slow down"}
        assert normalize_current(message, StreamState()) == [Error("Slow down", "RATE_LIMITED")]

    def test_default_message(self):
        assert normalize_current({"type": "ERROR"}, StreamState()) == [
            Error("Network error, please retry", None),
        ]


class TestUnknownType:
    def test_ignored(self):
        assert normalize_current({"type": "PING", "chatId": "c1"}, StreamState()) == []


class TestNormalizeMessage:
    def test_routes_current(self):
        events = normalize_message({"type": "START", "chatId": "c1"}, StreamState())
        assert events == [Start("c1")]

    def test_routes_legacy_status(self):
        events = normalize_message({"status": "start", "chatId": "c1"}, StreamState())
        assert events == [Start("c1")]

    def test_legacy_disabled(self):
        events = normalize_message({"status": "start", "chatId": "c1"}, StreamState(), CURRENT_ONLY)
        assert events == []

    def test_unrecognized_shape(self):
        assert normalize_message({"foo": "bar"}, StreamState()) == []
