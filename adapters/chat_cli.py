#!/usr/bin/env python3
"""
chat_cli.py — Stream a chat response to the terminal

Usage: python3 chat_cli.py <url> [--body <file>] [--token <token> | --token-file <path>] [--config <file>]

The answer is written to stdout as fragments arrive; progress, tool activity
and usage go to stderr. Without --token/--token-file the token is taken from
CHATSTREAM_TOKEN when set.

Exit codes:
  0 = stream completed
  1 = backend error (HTTP status or in-band ERROR frame)
  2 = network/timeout error
  3 = credentials rejected (token cleared)
  4 = invalid usage or config
"""

import asyncio
import json
import os
import sys
from typing import Any, Dict, List, Optional

from chat_events import Usage
from chat_stream import StreamError, decode
from config_loader import StreamConfig, load_config
from stream_dispatcher import StreamCallbacks, StreamState, Terminal
from transport_guard import CredentialStore, FileCredentialStore, InMemoryCredentialStore

USAGE = (
    "Usage: python3 chat_cli.py <url> [--body <file>] "
    "[--token <token> | --token-file <path>] [--config <file>]"
)


class TerminalNavigator:
    """Login surface for a terminal: tells the user to sign in again."""

    def __init__(self) -> None:
        self.current_path = ""
        self.redirected = False

    def navigate(self, path: str) -> None:
        print(f"ERROR: Session expired, log in again ({path})", file=sys.stderr)
        self.current_path = path
        self.redirected = True


def _option(args: List[str], name: str) -> Optional[str]:
    if name not in args:
        return None
    idx = args.index(name)
    if idx + 1 >= len(args):
        print(f"ERROR: {name} requires an argument", file=sys.stderr)
        sys.exit(4)
    return args[idx + 1]


def _format_usage(usage: Optional[Usage]) -> str:
    if usage is None:
        return "--- Done ---"
    line = f"--- Tokens: {usage.prompt_tokens}in/{usage.completion_tokens}out"
    if usage.elapsed_time is not None:
        line += f" | {usage.elapsed_time}ms"
    return line + " ---"


def build_callbacks(errors: List[str]) -> StreamCallbacks:
    def on_start(chat_id: str) -> None:
        print(f"--- chat {chat_id} ---", file=sys.stderr)

    def on_chunk(text: str, chat_id: str) -> None:
        sys.stdout.write(text)
        sys.stdout.flush()

    def on_tool_call(call: Dict[str, Any], chat_id: str, usage: Optional[Usage]) -> None:
        args = json.dumps(call.get("arguments"), ensure_ascii=False)
        print(f"\n[tool call] {call.get('name', '?')} {args}", file=sys.stderr)

    def on_tool_response(result: Dict[str, Any], chat_id: str, usage: Optional[Usage]) -> None:
        output = json.dumps(result.get("result"), ensure_ascii=False)
        print(f"[tool result] {result.get('name', '?')}: {output}", file=sys.stderr)

    def on_complete(full_text: str, chat_id: str, usage: Optional[Usage]) -> None:
        print()
        print(_format_usage(usage), file=sys.stderr)

    def on_error(message: str, code: Optional[str], http_status: Optional[int]) -> None:
        detail = code or (f"HTTP {http_status}" if http_status else "")
        errors.append(message)
        print(f"\nERROR: {message}" + (f" ({detail})" if detail else ""), file=sys.stderr)

    return StreamCallbacks(
        on_start=on_start,
        on_chunk=on_chunk,
        on_tool_call=on_tool_call,
        on_tool_response=on_tool_response,
        on_complete=on_complete,
        on_error=on_error,
    )


def run_stream(
    url: str,
    body: Optional[str],
    credentials: Optional[CredentialStore],
    config: StreamConfig,
) -> int:
    """Decode one stream and return the process exit code."""
    errors: List[str] = []
    navigator = TerminalNavigator()
    options: Dict[str, Any] = {}
    if body is not None:
        options = {"method": "POST", "body": body, "headers": {"Content-Type": "application/json"}}

    try:
        state: StreamState = asyncio.run(decode(
            url,
            options,
            build_callbacks(errors),
            config=config,
            credentials=credentials,
            navigator=navigator,
        ))
    except StreamError as e:
        print(json.dumps(e.to_dict()), file=sys.stderr)
        return 2

    if navigator.redirected:
        return 3
    if errors or state.terminal is Terminal.ERRORED:
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    args = sys.argv[1:] if argv is None else argv

    if not args or args[0].startswith("--"):
        print(USAGE, file=sys.stderr)
        sys.exit(4)

    url = args[0]
    body_path = _option(args, "--body")
    token = _option(args, "--token")
    token_file = _option(args, "--token-file")
    config_path = _option(args, "--config")

    if token and token_file:
        print("ERROR: --token and --token-file are mutually exclusive", file=sys.stderr)
        sys.exit(4)

    try:
        config = load_config(config_path)
    except (OSError, ValueError) as e:
        print(f"ERROR: Invalid config: {e}", file=sys.stderr)
        sys.exit(4)

    body = None
    if body_path:
        try:
            with open(body_path) as f:
                body = f.read()
        except OSError as e:
            print(f"ERROR: Failed to read body: {e}", file=sys.stderr)
            sys.exit(4)

    credentials: Optional[CredentialStore] = None
    if token_file:
        credentials = FileCredentialStore(token_file)
    elif token or os.environ.get("CHATSTREAM_TOKEN"):
        credentials = InMemoryCredentialStore(token or os.environ["CHATSTREAM_TOKEN"])

    sys.exit(run_stream(url, body, credentials, config))


if __name__ == "__main__":
    main()
