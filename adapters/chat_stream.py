"""
chat_stream.py — Streaming chat response decoder

decode(url, request_options, callbacks) opens the request with httpx, gates the
response through the transport guard and feeds the body through:

  iter_frames → parse_payload → normalize_message → StreamDispatcher

Failure handling:
  non-2xx status       → one on_error(message, None, status), no exception
  auth expiry status   → credentials cleared, login navigation, nothing else
  bad frame            → logged and skipped
  in-band ERROR frame  → on_error(message, code, None), reading continues
  network failure      → StreamError raised to the caller
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterable, AsyncIterator, Dict, Iterable, Mapping, Optional

import httpx

from config_loader import StreamConfig, load_config, redact_headers
from event_normalizer import normalize_message
from payload_classifier import CURRENT_ONLY, DIALECT_PRECEDENCE, Dialect, parse_payload
from sse_decoder import iter_frames
from stream_dispatcher import StreamCallbacks, StreamDispatcher, StreamState
from transport_guard import (
    CredentialStore,
    GuardOutcome,
    LoginNavigator,
    guard_response,
)

logger = logging.getLogger("chatstream.chat_stream")

EVENT_STREAM = "text/event-stream"


class StreamError(Exception):
    """Transport failure while opening or reading a stream."""

    def __init__(self, code: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {
            "error": "StreamError",
            "code": self.code,
            "message": str(self),
            "status_code": self.status_code,
        }


def dialects_for(config: StreamConfig) -> Iterable[Dialect]:
    return DIALECT_PRECEDENCE if config.legacy_dialects else CURRENT_ONLY


def build_timeout(config: StreamConfig) -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.connect_timeout_ms / 1000.0,
        read=config.read_timeout_ms / 1000.0,
        write=30.0,
        pool=config.connect_timeout_ms / 1000.0,
    )


def build_headers(
    headers: Optional[Mapping[str, str]],
    credentials: Optional[CredentialStore] = None,
) -> Dict[str, str]:
    """Copy caller headers, force the event-stream Accept, add a stored bearer token.

    A caller-supplied Authorization header always wins over the store.
    """
    result = {k: v for k, v in (headers or {}).items() if k.lower() != "accept"}

    if credentials is not None and not any(k.lower() == "authorization" for k in result):
        token = credentials.get_token()
        if token:
            result["Authorization"] = f"Bearer {token}"

    result["Accept"] = EVENT_STREAM
    return result


async def decode_body(
    chunks: AsyncIterable[bytes],
    callbacks: Optional[StreamCallbacks] = None,
    *,
    dialects: Iterable[Dialect] = DIALECT_PRECEDENCE,
    dispatcher: Optional[StreamDispatcher] = None,
) -> StreamState:
    """Decode an already-accepted response body and dispatch its events.

    Stops at the [DONE] sentinel or when ``chunks`` is exhausted. Exceptions
    raised by ``chunks`` propagate unchanged.
    """
    dispatcher = dispatcher or StreamDispatcher(callbacks)
    dialects = tuple(dialects)

    frames = iter_frames(chunks)
    try:
        async for frame in frames:
            if frame.is_sentinel:
                dispatcher.complete_on_sentinel()
                break

            message = parse_payload(frame.data)
            if message is None:
                continue

            for event in normalize_message(message, dispatcher.state, dialects):
                dispatcher.dispatch(event)
    finally:
        await frames.aclose()

    return dispatcher.state


@asynccontextmanager
async def _http_client(
    client: Optional[httpx.AsyncClient], config: StreamConfig
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=build_timeout(config)) as owned:
        yield owned


def _request_kwargs(body: Any) -> Dict[str, Any]:
    if body is None:
        return {}
    if isinstance(body, (dict, list)):
        return {"json": body}
    return {"content": body}


async def decode(
    url: str,
    request_options: Optional[Mapping[str, Any]] = None,
    callbacks: Optional[StreamCallbacks] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    config: Optional[StreamConfig] = None,
    credentials: Optional[CredentialStore] = None,
    navigator: Optional[LoginNavigator] = None,
) -> StreamState:
    """Open a chat stream and deliver its events to ``callbacks``.

    ``request_options`` accepts ``method``, ``headers`` and ``body``. The body
    is sent as JSON when it is a dict or list, verbatim otherwise. Returns
    the final per-stream state.

    Raises:
        StreamError: connection, timeout or read failure (code "network_error").
    """
    config = config or load_config()
    options = dict(request_options or {})
    body = options.pop("body", None)
    method = (options.pop("method", None) or ("POST" if body is not None else "GET")).upper()
    headers = build_headers(options.pop("headers", None), credentials)
    if options:
        logger.debug("Ignoring unsupported request options: %s", sorted(options))

    dispatcher = StreamDispatcher(callbacks)
    outcome = GuardOutcome.PENDING
    logger.debug("Opening stream %s %s headers=%s", method, url, redact_headers(headers))

    async with _http_client(client, config) as http:
        try:
            async with http.stream(method, url, headers=headers, **_request_kwargs(body)) as response:
                outcome = guard_response(
                    response.status_code, dispatcher, config, credentials, navigator,
                )
                if outcome is GuardOutcome.OK:
                    await decode_body(
                        response.aiter_bytes(),
                        dispatcher=dispatcher,
                        dialects=dialects_for(config),
                    )
        except httpx.TimeoutException as e:
            raise StreamError(
                code="network_error",
                message=f"Stream timed out ({outcome.value}): {e}",
            ) from e
        except httpx.TransportError as e:
            raise StreamError(
                code="network_error",
                message=f"Stream transport failed ({outcome.value}): {e}",
            ) from e

    logger.debug(
        "Stream %s finished: %s, %d chars",
        dispatcher.state.stream_id, dispatcher.state.terminal.value, len(dispatcher.state.full_text),
    )
    return dispatcher.state
