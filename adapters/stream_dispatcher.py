"""Per-stream accumulation and callback dispatch.

One StreamState per decode call: accumulated answer text, the pinned stream
id, the last usage record and the terminal flag. StreamDispatcher applies
canonical events to that state and invokes the caller's callbacks in the
order the events arrive.

Invariants: at most one on_start and at most one terminal callback
(on_complete or on_error) per stream. Anything dispatched after the terminal
callback is dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from chat_events import (
    ChatEvent,
    Chunk,
    Done,
    Error,
    Start,
    ToolCall,
    ToolResult,
    Usage,
)

logger = logging.getLogger("chatstream.stream_dispatcher")


class Terminal(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"
    ERRORED = "errored"


@dataclass
class StreamState:
    stream_id: Optional[str] = None
    full_text: str = ""
    usage: Optional[Usage] = None
    terminal: Terminal = Terminal.OPEN
    started: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.terminal is not Terminal.OPEN

    def pin_stream_id(self, candidate: Any) -> Optional[str]:
        """Record the first stream id seen and return the pinned id.

        Later ids are ignored, even when they differ.
        """
        if isinstance(candidate, str) and candidate:
            if self.stream_id is None:
                self.stream_id = candidate
            elif candidate != self.stream_id:
                logger.debug(
                    "Ignoring stream id %r, stream already pinned to %r",
                    candidate, self.stream_id,
                )
        return self.stream_id


@dataclass
class StreamCallbacks:
    """Caller hooks. Any of them may be None, in which case the event is dropped."""
    on_start: Optional[Callable[[str], None]] = None
    on_chunk: Optional[Callable[[str, str], None]] = None
    on_tool_call: Optional[Callable[[Dict[str, Any], str, Optional[Usage]], None]] = None
    on_tool_response: Optional[Callable[[Dict[str, Any], str, Optional[Usage]], None]] = None
    on_complete: Optional[Callable[[str, str, Optional[Usage]], None]] = None
    on_error: Optional[Callable[[str, Optional[str], Optional[int]], None]] = None


class StreamDispatcher:
    def __init__(
        self,
        callbacks: Optional[StreamCallbacks] = None,
        state: Optional[StreamState] = None,
    ) -> None:
        self.callbacks = callbacks or StreamCallbacks()
        self.state = state or StreamState()

    def dispatch(self, event: ChatEvent) -> None:
        if self.state.is_terminal:
            logger.debug("Stream already %s, dropping %s", self.state.terminal.value, event)
            return

        cb = self.callbacks
        if isinstance(event, Start):
            if self.state.started:
                logger.debug("Stream %s already started, dropping %s", self.state.stream_id, event)
                return
            self.state.started = True
            if cb.on_start:
                cb.on_start(event.stream_id)

        elif isinstance(event, Chunk):
            # The callback gets the fragment, not the accumulated text
            self.state.full_text += event.text
            if cb.on_chunk:
                cb.on_chunk(event.text, event.stream_id)

        elif isinstance(event, ToolCall):
            if cb.on_tool_call:
                cb.on_tool_call(event.payload, event.stream_id, event.usage)

        elif isinstance(event, ToolResult):
            if cb.on_tool_response:
                cb.on_tool_response(event.payload, event.stream_id, event.usage)

        elif isinstance(event, Done):
            self.state.terminal = Terminal.COMPLETED
            if event.usage is not None:
                self.state.usage = event.usage
            if cb.on_complete:
                cb.on_complete(event.full_text, event.stream_id, event.usage)

        elif isinstance(event, Error):
            self.state.terminal = Terminal.ERRORED
            if cb.on_error:
                cb.on_error(event.message, event.code, event.http_status)

        else:
            raise TypeError(f"Unknown chat event: {event!r}")

    def complete_on_sentinel(self) -> None:
        """Handle the [DONE] sentinel.

        Completes the stream with the accumulated text unless a terminal
        event already fired or no stream id was ever seen.
        """
        if self.state.is_terminal:
            return
        if self.state.stream_id is None:
            logger.debug("[DONE] received before any stream id, nothing to complete")
            return
        self.dispatch(Done(
            full_text=self.state.full_text,
            stream_id=self.state.stream_id,
            usage=self.state.usage,
        ))
