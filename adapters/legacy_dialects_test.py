"""Tests for the legacy payload compatibility normalizers."""

import os
import sys

# Ensure adapters/ is on path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from chat_events import Chunk, Done, Error, Start, ToolCall, ToolResult, Usage
from legacy_dialects import (
    normalize_legacy_status,
    normalize_legacy_typed,
    normalize_provider_native,
)
from stream_dispatcher import StreamState


class TestLegacyTyped:
    def test_user_starts_stream(self):
        state = StreamState()
        assert normalize_legacy_typed({"msgType": "USER", "chatId": "c1"}, state) == [Start("c1")]
        assert state.stream_id == "c1"

    def test_answer(self):
        message = {"msgType": "ANSWER", "chatId": "c1", "content": "hi"}
        assert normalize_legacy_typed(message, StreamState()) == [Chunk("hi", "c1")]

    def test_tool_call_and_response(self):
        call = {"id": "t1", "name": "lookup"}
        usage = {"prompt_tokens": 2}
        message = {"msgType": "TOOL_CALL", "chatId": "c1", "content": call, "chatUsage": usage}
        assert normalize_legacy_typed(message, StreamState()) == [ToolCall(call, "c1", Usage(prompt_tokens=2))]

        result = {"id": "t1", "name": "lookup", "result": "ok"}
        message = {"msgType": "TOOL_RESPONSE", "chatId": "c1", "content": result, "chatUsage": None}
        assert normalize_legacy_typed(message, StreamState()) == [ToolResult(result, "c1", None)]

    def test_stop(self):
        state = StreamState(full_text="Hello")
        message = {
            "msgType": "STOP",
            "chatId": "c1",
            "chatUsage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
        }
        assert normalize_legacy_typed(message, state) == [
            Done("Hello", "c1", Usage(prompt_tokens=3, completion_tokens=2, total_tokens=5)),
        ]

    def test_error(self):
        message = {"msgType": "ERROR", "chatId": "c1", "error": "E1"}
        assert normalize_legacy_typed(message, StreamState()) == [Error("Network error, please retry", "E1")]

    def test_unknown_msg_type(self):
        assert normalize_legacy_typed({"msgType": "PING", "chatId": "c1"}, StreamState()) == []


class TestLegacyStatus:
    def test_start(self):
        assert normalize_legacy_status({"status": "start", "chatId": "c1"}, StreamState()) == [Start("c1")]

    def test_chunk(self):
        message = {"status": "chunk", "content": "hi", "chatId": "c1"}
        assert normalize_legacy_status(message, StreamState()) == [Chunk("hi", "c1")]

    def test_empty_chunk_dropped(self):
        message = {"status": "chunk", "content": "", "chatId": "c1"}
        assert normalize_legacy_status(message, StreamState()) == []

    def test_complete_uses_full_content(self):
        state = StreamState(full_text="ignored")
        message = {"status": "complete", "fullContent": "hi", "chatId": "c1"}
        assert normalize_legacy_status(message, state) == [Done("hi", "c1", None)]

    def test_complete_without_full_content_dropped(self):
        message = {"status": "complete", "chatId": "c1"}
        assert normalize_legacy_status(message, StreamState()) == []

    def test_error(self):
        message = {"status": "error", "message": "bad", "code": "E2"}
        assert normalize_legacy_status(message, StreamState()) == [Error("bad", "E2")]

    def test_error_default_message(self):
        assert normalize_legacy_status({"status": "error"}, StreamState()) == [Error("Unknown error", None)]


def _openai_chunk(content=None, usage=None, chunk_id="chatcmpl-1"):
    delta = {} if content is None else {"content": content}
    message = {"id": chunk_id, "object": "chat.completion.chunk", "choices": [{"index": 0, "delta": delta}]}
    if usage is not None:
        message["usage"] = usage
    return message


class TestProviderNative:
    def test_first_chunk_starts_stream(self):
        state = StreamState()
        events = normalize_provider_native(_openai_chunk("Hel"), state)
        assert events == [Start("chatcmpl-1"), Chunk("Hel", "chatcmpl-1")]
        assert state.stream_id == "chatcmpl-1"

    def test_later_chunks_do_not_restart(self):
        state = StreamState()
        normalize_provider_native(_openai_chunk("Hel"), state)
        assert normalize_provider_native(_openai_chunk("lo"), state) == [Chunk("lo", "chatcmpl-1")]

    def test_usage_recorded_on_state(self):
        state = StreamState(stream_id="chatcmpl-1")
        usage = {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}
        assert normalize_provider_native(_openai_chunk(usage=usage), state) == []
        assert state.usage == Usage(prompt_tokens=3, completion_tokens=2, total_tokens=5)

    def test_missing_choices(self):
        state = StreamState(stream_id="chatcmpl-1")
        message = {"id": "chatcmpl-1", "object": "chat.completion.chunk"}
        assert normalize_provider_native(message, state) == []
