"""HTTP status gate in front of the event-stream reader.

State machine: PENDING → OK | AUTH_EXPIRED | HTTP_ERROR.

- OK (2xx): the body may be read.
- AUTH_EXPIRED (config.auth_expired_status, 403 by default): credentials are
  cleared and the navigator is sent to the login path unless it is already
  there. No callback fires.
- HTTP_ERROR (anything else): a single Error event carrying the status is
  dispatched. The body is never read.

Credential storage and navigation are injected so the guard never touches
global state.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from chat_events import Error
from config_loader import StreamConfig
from stream_dispatcher import StreamDispatcher

logger = logging.getLogger("chatstream.transport_guard")


class GuardOutcome(str, Enum):
    PENDING = "pending"
    OK = "ok"
    AUTH_EXPIRED = "auth_expired"
    HTTP_ERROR = "http_error"


class CredentialStore(Protocol):
    def get_token(self) -> Optional[str]:
        ...

    def clear(self) -> None:
        ...


class LoginNavigator(Protocol):
    @property
    def current_path(self) -> str:
        ...

    def navigate(self, path: str) -> None:
        ...


class InMemoryCredentialStore:
    def __init__(self, token: Optional[str] = None) -> None:
        self.token = token

    def get_token(self) -> Optional[str]:
        return self.token

    def clear(self) -> None:
        self.token = None


class FileCredentialStore:
    """Bearer token kept in a file, one token per file.

    Clearing deletes the file.
    """

    def __init__(self, path: str) -> None:
        self.path = Path(os.path.expanduser(path))

    def get_token(self) -> Optional[str]:
        try:
            token = self.path.read_text().strip()
        except FileNotFoundError:
            return None
        return token or None

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def guard_response(
    status_code: int,
    dispatcher: StreamDispatcher,
    config: StreamConfig,
    credentials: Optional[CredentialStore] = None,
    navigator: Optional[LoginNavigator] = None,
) -> GuardOutcome:
    """Decide whether a response body may be decoded."""
    if is_success(status_code):
        return GuardOutcome.OK

    if status_code == config.auth_expired_status:
        logger.warning("Credentials rejected (HTTP %d), clearing stored token", status_code)
        if credentials is not None:
            credentials.clear()
        if navigator is not None and navigator.current_path != config.login_path:
            navigator.navigate(config.login_path)
        return GuardOutcome.AUTH_EXPIRED

    logger.warning("Stream request failed with HTTP %d", status_code)
    dispatcher.dispatch(Error(
        message=f"HTTP error! status: {status_code}",
        http_status=status_code,
    ))
    return GuardOutcome.HTTP_ERROR
