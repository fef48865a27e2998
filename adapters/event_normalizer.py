"""Map classified wire payloads onto canonical chat events.

The current dialect is handled here. Older shapes live in legacy_dialects.py
so they can be dropped by deleting that module and its table entries.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List

from chat_events import (
    ChatEvent,
    Chunk,
    Done,
    Error,
    GENERIC_ERROR_MESSAGE,
    Start,
    ToolCall,
    ToolResult,
    normalize_usage,
)
from legacy_dialects import (
    normalize_legacy_status,
    normalize_legacy_typed,
    normalize_provider_native,
)
from payload_classifier import DIALECT_PRECEDENCE, Dialect, classify
from stream_dispatcher import StreamState

logger = logging.getLogger("chatstream.event_normalizer")


def normalize_current(message: Dict[str, Any], state: StreamState) -> List[ChatEvent]:
    """Normalize a ``{"type": ..., "chatId": ...}`` payload."""
    event_type = message.get("type")
    if not isinstance(event_type, str):
        logger.debug("Ignoring frame with non-string type: %r", event_type)
        return []
    event_type = event_type.upper()

    stream_id = state.pin_stream_id(message.get("chatId"))
    content = message.get("content")

    if event_type == "START":
        if stream_id:
            return [Start(stream_id=stream_id)]
        return []

    if event_type == "ASSISTANT":
        if isinstance(content, str) and stream_id:
            return [Chunk(text=content, stream_id=stream_id)]
        return []

    if event_type == "THINKING":
        logger.debug("Suppressing THINKING frame for stream %s", stream_id)
        return []

    if event_type == "TOOL_CALL":
        if isinstance(content, dict):
            return [ToolCall(
                payload=content,
                stream_id=stream_id,
                usage=normalize_usage(message.get("usage")),
            )]
        return []

    if event_type == "TOOL_RESULT":
        if isinstance(content, dict):
            return [ToolResult(
                payload=content,
                stream_id=stream_id,
                usage=normalize_usage(message.get("usage")),
            )]
        return []

    if event_type == "DONE":
        if stream_id:
            return [Done(
                full_text=state.full_text,
                stream_id=stream_id,
                usage=normalize_usage(message.get("usage")),
            )]
        return []

    if event_type == "ERROR":
        return [Error(
            message=message.get("message") or GENERIC_ERROR_MESSAGE,
            code=message.get("error"),
        )]

    logger.debug("Ignoring unknown event type %r", event_type)
    return []


_NORMALIZERS: Dict[Dialect, Callable[[Dict[str, Any], StreamState], List[ChatEvent]]] = {
    Dialect.CURRENT: normalize_current,
    Dialect.LEGACY_TYPED: normalize_legacy_typed,
    Dialect.LEGACY_STATUS: normalize_legacy_status,
    Dialect.PROVIDER_NATIVE: normalize_provider_native,
}


def normalize_message(
    message: Dict[str, Any],
    state: StreamState,
    dialects: Iterable[Dialect] = DIALECT_PRECEDENCE,
) -> List[ChatEvent]:
    """Classify ``message`` and return its canonical events (possibly none)."""
    dialect = classify(message, dialects)
    if dialect is None:
        logger.debug("Ignoring unrecognized payload shape: keys=%s", sorted(message))
        return []
    return _NORMALIZERS[dialect](message, state)
