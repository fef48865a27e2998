"""Compatibility normalizers for payload shapes the backend no longer emits.

Three shapes are still accepted:

- legacy typed:    {"chatId", "msgType": USER|TOOL_CALL|TOOL_RESPONSE|ANSWER|STOP|ERROR,
                    "content", "chatUsage", "error", "message"}
- legacy status:   {"status": start|chunk|complete|error, "chatId", "content",
                    "fullContent", "message", "code"}
- provider native: OpenAI "chat.completion.chunk" objects with
                   choices[].delta.content and an optional usage block

Once every backend sends the current dialect this module and its entries in
event_normalizer._NORMALIZERS can be deleted.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from chat_events import (
    GENERIC_ERROR_MESSAGE,
    ChatEvent,
    Chunk,
    Done,
    Error,
    Start,
    ToolCall,
    ToolResult,
    normalize_usage,
)
from stream_dispatcher import StreamState

logger = logging.getLogger("chatstream.legacy_dialects")

LEGACY_STATUS_ERROR_MESSAGE = "Unknown error"


def normalize_legacy_typed(message: Dict[str, Any], state: StreamState) -> List[ChatEvent]:
    msg_type = message.get("msgType")
    stream_id = state.pin_stream_id(message.get("chatId"))
    content = message.get("content")

    if msg_type == "USER":
        return [Start(stream_id=stream_id)] if stream_id else []

    if msg_type == "TOOL_CALL":
        if isinstance(content, dict):
            return [ToolCall(content, stream_id, normalize_usage(message.get("chatUsage")))]
        return []

    if msg_type == "TOOL_RESPONSE":
        if isinstance(content, dict):
            return [ToolResult(content, stream_id, normalize_usage(message.get("chatUsage")))]
        return []

    if msg_type == "ANSWER":
        if isinstance(content, str) and stream_id:
            return [Chunk(text=content, stream_id=stream_id)]
        return []

    if msg_type == "STOP":
        if stream_id:
            return [Done(state.full_text, stream_id, normalize_usage(message.get("chatUsage")))]
        return []

    if msg_type == "ERROR":
        return [Error(message.get("message") or GENERIC_ERROR_MESSAGE, message.get("error"))]

    logger.debug("Ignoring unknown msgType %r", msg_type)
    return []


def normalize_legacy_status(message: Dict[str, Any], state: StreamState) -> List[ChatEvent]:
    status = message.get("status")
    stream_id = state.pin_stream_id(message.get("chatId"))
    content = message.get("content")

    if status == "start":
        return [Start(stream_id=stream_id)] if stream_id else []

    if status == "chunk":
        if isinstance(content, str) and content and stream_id:
            return [Chunk(text=content, stream_id=stream_id)]
        return []

    if status == "complete":
        # This shape ships its own full text instead of relying on accumulation
        full_content = message.get("fullContent")
        if isinstance(full_content, str) and full_content and stream_id:
            return [Done(full_content, stream_id, state.usage)]
        return []

    if status == "error":
        return [Error(message.get("message") or LEGACY_STATUS_ERROR_MESSAGE, message.get("code"))]

    logger.debug("Ignoring unknown status %r", status)
    return []


def normalize_provider_native(message: Dict[str, Any], state: StreamState) -> List[ChatEvent]:
    events: List[ChatEvent] = []

    chunk_id = message.get("id")
    if state.stream_id is None and isinstance(chunk_id, str) and chunk_id:
        state.pin_stream_id(chunk_id)
        events.append(Start(stream_id=chunk_id))

    choices = message.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        delta = choices[0].get("delta") or {}
        text = delta.get("content") if isinstance(delta, dict) else None
        stream_id = state.stream_id or chunk_id
        if isinstance(text, str) and text and stream_id:
            events.append(Chunk(text=text, stream_id=stream_id))

    # Usually only on the last chunk; picked up by the [DONE] completion
    if message.get("usage") is not None:
        state.usage = normalize_usage(message["usage"])

    return events
