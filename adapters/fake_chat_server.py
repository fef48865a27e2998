#!/usr/bin/env python3
"""
fake_chat_server.py — Scripted chat backend for local runs and decoder tests

FastAPI application replaying canned event streams in every payload dialect
the decoder accepts. Binds to 127.0.0.1:{CHATSTREAM_FAKE_PORT} (default: 3002)
when run directly.

Endpoints:
  POST /chats/{scenario}/stream — text/event-stream replay of a scenario
  GET  /healthz                 — Liveness probe

Status codes:
  403 when the bearer token is "expired" (the decoder's auth-expiry status)
  404 for unknown scenarios
  500 for the "server-error" scenario
"""

import json
import os
import time
from typing import Any, AsyncIterator, Dict, List

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

# --- Configuration ---

FAKE_PORT = int(os.environ.get("CHATSTREAM_FAKE_PORT", "3002"))
EXPIRED_TOKEN = "expired"

START_TIME = time.monotonic()


# --- Scenarios ---

SCENARIOS: Dict[str, List[Any]] = {
    "current": [
        {"type": "START", "chatId": "chat-1"},
        {"type": "THINKING", "chatId": "chat-1", "content": "greeting the user"},
        {"type": "ASSISTANT", "chatId": "chat-1", "content": "Hel"},
        {"type": "ASSISTANT", "chatId": "chat-1", "content": "lo"},
        {
            "type": "DONE",
            "chatId": "chat-1",
            "usage": {"promptTokens": 3, "completionTokens": 2, "totalTokens": 5, "elapsedTime": 120},
        },
        "[DONE]",
    ],
    "tool-call": [
        {"type": "START", "chatId": "chat-2"},
        {
            "type": "TOOL_CALL",
            "chatId": "chat-2",
            "content": {
                "id": "call-1",
                "name": "get_weather",
                "arguments": {"city": "Hangzhou"},
                "mcpServerName": "weather",
            },
        },
        {
            "type": "TOOL_RESULT",
            "chatId": "chat-2",
            "content": {"id": "call-1", "name": "get_weather", "result": {"temp_c": 21}},
        },
        {"type": "ASSISTANT", "chatId": "chat-2", "content": "It is 21°C."},
        {"type": "DONE", "chatId": "chat-2"},
    ],
    "in-band-error": [
        {"type": "START", "chatId": "chat-3"},
        {"type": "ASSISTANT", "chatId": "chat-3", "content": "partial"},
        {"type": "ERROR", "chatId": "chat-3", "error": "RATE_LIMITED", "message": "Too many requests"},
    ],
    "legacy-typed": [
        {"chatId": "chat-4", "msgType": "USER", "content": None, "chatUsage": None},
        {"chatId": "chat-4", "msgType": "ANSWER", "content": "Hel", "chatUsage": None},
        {"chatId": "chat-4", "msgType": "ANSWER", "content": "lo", "chatUsage": None},
        {
            "chatId": "chat-4",
            "msgType": "STOP",
            "content": None,
            "chatUsage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
        },
    ],
    "legacy-status": [
        {"status": "start", "chatId": "chat-5"},
        {"status": "chunk", "content": "Hel", "chatId": "chat-5"},
        {"status": "chunk", "content": "lo", "chatId": "chat-5"},
        {"status": "complete", "fullContent": "Hello", "chatId": "chat-5"},
        "[DONE]",
    ],
    "provider-native": [
        {"id": "chatcmpl-6", "object": "chat.completion.chunk", "created": 1700000000,
         "model": "qwen-max", "choices": [{"index": 0, "delta": {"content": "Hel"}}]},
        {"id": "chatcmpl-6", "object": "chat.completion.chunk", "created": 1700000000,
         "model": "qwen-max", "choices": [{"index": 0, "delta": {"content": "lo"}}]},
        {"id": "chatcmpl-6", "object": "chat.completion.chunk", "created": 1700000000,
         "model": "qwen-max", "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}],
         "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}},
        "[DONE]",
    ],
}


def encode_frame(payload: Any) -> str:
    """Render one payload as a data: line followed by a blank separator."""
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n"


# --- Application ---

app = FastAPI(title="Fake Chat Backend", docs_url=None, redoc_url=None)


@app.get("/healthz")
async def healthz() -> Dict[str, Any]:
    """Liveness probe."""
    return {
        "status": "alive",
        "uptime_s": round(time.monotonic() - START_TIME, 2),
        "scenarios": sorted(SCENARIOS),
    }


@app.post("/chats/{scenario}/stream")
async def stream_chat(scenario: str, request: Request):
    """Replay a scripted scenario as text/event-stream."""
    if request.headers.get("authorization", "") == f"Bearer {EXPIRED_TOKEN}":
        return JSONResponse(
            status_code=403,
            content={"error": "TOKEN_EXPIRED", "message": "Access token expired"},
        )

    if scenario == "server-error":
        return JSONResponse(
            status_code=500,
            content={"error": "INTERNAL", "message": "Scripted failure"},
        )

    frames = SCENARIOS.get(scenario)
    if frames is None:
        return JSONResponse(
            status_code=404,
            content={"error": "UNKNOWN_SCENARIO", "message": f"No scenario '{scenario}'"},
        )

    async def replay() -> AsyncIterator[str]:
        # Non-frame lines the decoder must skip
        yield ": replay start\n"
        yield "event: message\n"
        for payload in frames:
            yield encode_frame(payload)

    return StreamingResponse(replay(), media_type="text/event-stream")


if __name__ == "__main__":
    import uvicorn

    print(f"[fake-chat] Serving on 127.0.0.1:{FAKE_PORT}", flush=True)
    uvicorn.run(app, host="127.0.0.1", port=FAKE_PORT)
