"""Canonical chat events and usage normalization.

Every wire dialect is mapped onto the event types defined here, so callers
never see which shape the backend actually emitted.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Union

logger = logging.getLogger("chatstream.chat_events")

# Preferred name first; the backend has emitted both camelCase and snake_case.
_PROMPT_KEYS = ("promptTokens", "inputTokens", "prompt_tokens", "input_tokens")
_COMPLETION_KEYS = ("completionTokens", "outputTokens", "completion_tokens", "output_tokens")
_TOTAL_KEYS = ("totalTokens", "total_tokens")
_FIRST_BYTE_KEYS = ("firstByteTimeout", "first_byte_timeout")
_ELAPSED_KEYS = ("elapsedTime", "elapsed_time")
_DETAILS_KEYS = ("promptTokensDetails", "prompt_tokens_details")
_CACHED_KEYS = ("cachedTokens", "cached_tokens")


@dataclass(frozen=True)
class Usage:
    """Token and timing metrics attached to tool and completion events."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    first_byte_timeout: Optional[int] = None
    elapsed_time: Optional[int] = None
    cached_tokens: Optional[int] = None

    def to_dict(self) -> Dict[str, int]:
        """Snake_case form with absent optional metrics omitted."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class Start:
    stream_id: str


@dataclass(frozen=True)
class Chunk:
    text: str
    stream_id: str


@dataclass(frozen=True)
class ToolCall:
    payload: Dict[str, Any]
    stream_id: Optional[str]
    usage: Optional[Usage] = None


@dataclass(frozen=True)
class ToolResult:
    payload: Dict[str, Any]
    stream_id: Optional[str]
    usage: Optional[Usage] = None


@dataclass(frozen=True)
class Done:
    full_text: str
    stream_id: str
    usage: Optional[Usage] = None


@dataclass(frozen=True)
class Error:
    message: str
    code: Optional[str] = None
    http_status: Optional[int] = None


ChatEvent = Union[Start, Chunk, ToolCall, ToolResult, Done, Error]

# In-band error text when the backend sends none
GENERIC_ERROR_MESSAGE = "Network error, please retry"


def _first_present(raw: Dict[str, Any], keys: tuple) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def normalize_usage(raw: Any) -> Optional[Usage]:
    """Build a Usage from either naming convention.

    Returns None when the frame carries no usage at all. Missing token counts
    default to 0 and missing timings stay None; absence is never an error.
    """
    if raw is None:
        return None
    if not isinstance(raw, dict):
        logger.warning("Malformed usage field (%s), ignoring", type(raw).__name__)
        return None

    details = _first_present(raw, _DETAILS_KEYS)
    cached = _first_present(details, _CACHED_KEYS) if isinstance(details, dict) else None

    return Usage(
        prompt_tokens=_first_present(raw, _PROMPT_KEYS) or 0,
        completion_tokens=_first_present(raw, _COMPLETION_KEYS) or 0,
        total_tokens=_first_present(raw, _TOTAL_KEYS) or 0,
        first_byte_timeout=_first_present(raw, _FIRST_BYTE_KEYS),
        elapsed_time=_first_present(raw, _ELAPSED_KEYS),
        cached_tokens=cached,
    )
