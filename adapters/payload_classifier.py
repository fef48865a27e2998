"""Frame payload parsing and structural dialect classification.

The backend has emitted four JSON shapes over its lifetime. A payload is
classified by which fields it carries, checked in DIALECT_PRECEDENCE order,
so a backend mid-migration can send either shape without ambiguity.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional

logger = logging.getLogger("chatstream.payload_classifier")

# Payload excerpt length in parse-failure logs
_LOG_EXCERPT = 200


class Dialect(str, Enum):
    CURRENT = "current"                  # {"type": "ASSISTANT", "chatId": ...}
    LEGACY_TYPED = "legacy_typed"        # {"msgType": "ANSWER", "chatId": ...}
    LEGACY_STATUS = "legacy_status"      # {"status": "chunk", "chatId": ...}
    PROVIDER_NATIVE = "provider_native"  # {"object": "chat.completion.chunk", ...}


DIALECT_PRECEDENCE = (
    Dialect.CURRENT,
    Dialect.LEGACY_TYPED,
    Dialect.LEGACY_STATUS,
    Dialect.PROVIDER_NATIVE,
)

CURRENT_ONLY = (Dialect.CURRENT,)


_PREDICATES: Dict[Dialect, Callable[[Dict[str, Any]], bool]] = {
    Dialect.CURRENT: lambda m: "type" in m and "msgType" not in m,
    Dialect.LEGACY_TYPED: lambda m: "msgType" in m,
    Dialect.LEGACY_STATUS: lambda m: "status" in m,
    Dialect.PROVIDER_NATIVE: lambda m: m.get("object") == "chat.completion.chunk",
}


def parse_payload(data: str) -> Optional[Dict[str, Any]]:
    """Parse a frame payload as a JSON object.

    Returns None (after logging) for invalid JSON or JSON that is not an
    object. A bad frame never aborts the stream.
    """
    try:
        message = json.loads(data)
    except (ValueError, RecursionError) as e:
        # Oversized integer literals raise a plain ValueError, deep nesting RecursionError
        logger.warning("Failed to parse frame payload: %s (data: %r)", e, data[:_LOG_EXCERPT])
        return None

    if not isinstance(message, dict):
        logger.warning("Frame payload is not an object: %r", data[:_LOG_EXCERPT])
        return None
    return message


def classify(
    message: Dict[str, Any], dialects: Iterable[Dialect] = DIALECT_PRECEDENCE
) -> Optional[Dialect]:
    """Return the matching dialect among the enabled ``dialects``, else None.

    Matching always follows DIALECT_PRECEDENCE, whatever order ``dialects``
    is given in.
    """
    enabled = set(dialects)
    for dialect in DIALECT_PRECEDENCE:
        if dialect in enabled and _PREDICATES[dialect](message):
            return dialect
    return None
