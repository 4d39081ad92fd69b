"""Helpers for safe debug logging.

Rows, HTTP headers and broker settings can carry api keys and session
tokens. ``redact_for_log`` masks those before anything reaches a DEBUG
log line.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "apikey",
        "authorization",
        "cookie",
        "password",
        "secret",
        "token",
    }
)
_SENSITIVE_SUFFIXES: tuple[str, ...] = ("_token", "_key", "_secret", "_password")


def is_sensitive_key(key: str) -> bool:
    """Return ``True`` when values stored under *key* must not be logged."""
    lowered = key.lower().replace("-", "_")
    if lowered in _SENSITIVE_KEYS:
        return True
    return lowered.endswith(_SENSITIVE_SUFFIXES)


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 10:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if value.lower().startswith("bearer "):
            return "Bearer <redacted>"
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        return {
            str(k): "<redacted>" if is_sensitive_key(str(k)) else redact_for_log(v, max_string=max_string, _depth=_depth + 1)
            for k, v in value.items()
        }

    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
