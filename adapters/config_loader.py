"""Decoder configuration — layered defaults, YAML file, environment, overrides.

Provides:
- StreamConfig with the decoder's tunables
- {env:VAR} interpolation in YAML values with allowlist enforcement
- Deep merge for layered config
- Redaction for safe logging (never leak bearer tokens)

Layer order (later wins): StreamConfig defaults, the ``chatstream:`` section
of a YAML file, CHATSTREAM_* environment variables, explicit overrides.
"""

from __future__ import annotations

import copy
import logging
import os
import re
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger("chatstream.config_loader")

# Redaction sentinel
REDACTED = "***REDACTED***"

CONFIG_SECTION = "chatstream"
ENV_PREFIX = "CHATSTREAM_"

# Only CHATSTREAM_* variables may be pulled into a config file
_ENV_ALLOW_RE = re.compile(r"^CHATSTREAM_")

# Regex for interpolation tokens: {env:VAR}
_INTERP_RE = re.compile(r"\{env:([^}]+)\}")

# Patterns that indicate sensitive keys (for redaction)
_SENSITIVE_KEY_RE = re.compile(
    r"(authorization|api[-_]?key|secret|token|password|credential|bearer|cookie)",
    re.IGNORECASE,
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class StreamConfig:
    auth_expired_status: int = 403
    login_path: str = "/login"
    legacy_dialects: bool = True
    connect_timeout_ms: int = 5000
    read_timeout_ms: int = 300000


# ── Interpolation ─────────────────────────────────────────────────────


def interpolate_value(value: str) -> str:
    """Resolve {env:VAR_NAME} tokens in a string value (allowlisted)."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if not _ENV_ALLOW_RE.search(var_name):
            raise ValueError(
                f"Environment variable '{var_name}' is not in the allowlist. "
                f"Allowed: ^CHATSTREAM_.*"
            )
        val = os.environ.get(var_name)
        if val is None:
            raise ValueError(f"Environment variable '{var_name}' is not set")
        return val

    return _INTERP_RE.sub(_replace, value)


def interpolate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively interpolate all string values in a config dict.

    Returns a new dict with resolved values.
    """
    result = {}
    for key, value in config.items():
        if isinstance(value, str):
            result[key] = interpolate_value(value)
        elif isinstance(value, dict):
            result[key] = interpolate_config(value)
        elif isinstance(value, list):
            result[key] = [
                interpolate_config(item) if isinstance(item, dict)
                else interpolate_value(item) if isinstance(item, str)
                else item
                for item in value
            ]
        else:
            result[key] = value
    return result


# ── Deep merge ────────────────────────────────────────────────────────


def deep_merge(base: Dict[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base. Overlay values win.

    Returns a new dict (base and overlay are not modified).
    """
    result = copy.deepcopy(base)
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


# ── Layers ────────────────────────────────────────────────────────────


def _file_layer(path: str) -> Dict[str, Any]:
    with open(Path(path)) as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    section = data.get(CONFIG_SECTION) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{CONFIG_SECTION}' in {path} must be a mapping")
    return interpolate_config(section)


def _env_layer(environ: Mapping[str, str]) -> Dict[str, Any]:
    layer = {}
    for f in fields(StreamConfig):
        env_name = ENV_PREFIX + f.name.upper()
        if env_name in environ:
            layer[f.name] = environ[env_name]
    return layer


def _coerce(name: str, value: Any, default: Any) -> Any:
    # bool before int: bool is an int subclass
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ValueError(f"Config '{name}' expects a boolean, got {value!r}")

    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Config '{name}' expects an integer, got {value!r}") from None

    return str(value)


def load_config(
    path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> StreamConfig:
    """Build a StreamConfig from all layers.

    Raises ValueError on unparseable values, disallowed {env:} references
    and non-positive timeouts. Unknown keys are logged and ignored.
    """
    merged = asdict(StreamConfig())
    if path:
        merged = deep_merge(merged, _file_layer(path))
    merged = deep_merge(merged, _env_layer(os.environ if environ is None else environ))
    if overrides:
        merged = deep_merge(merged, overrides)

    known = {f.name: f for f in fields(StreamConfig)}
    for key in sorted(set(merged) - set(known)):
        logger.warning("Ignoring unknown config key '%s'", key)

    values = {
        name: _coerce(name, merged[name], f.default) for name, f in known.items()
    }
    for name in ("connect_timeout_ms", "read_timeout_ms"):
        if values[name] <= 0:
            raise ValueError(f"Config '{name}' must be positive, got {values[name]}")

    config = StreamConfig(**values)
    logger.debug("Loaded config: %s", redact_config(asdict(config)))
    return config


# ── Redaction ─────────────────────────────────────────────────────────


def redact_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Create a redacted copy of config for display/logging."""
    result = {}
    for key, value in config.items():
        if isinstance(value, dict):
            result[key] = redact_config(value)
        elif _SENSITIVE_KEY_RE.search(key):
            result[key] = REDACTED
        else:
            result[key] = value
    return result


def redact_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Return a copy of headers with sensitive values redacted."""
    redacted = {}
    for key, value in headers.items():
        if _SENSITIVE_KEY_RE.search(key):
            redacted[key] = REDACTED
        else:
            redacted[key] = value
    return redacted
