"""Helpers for safe debug logging.

ticketgate handles OAuth2 credentials (client secret, authorization codes,
access and refresh tokens) and buyer personal data.  This module masks
sensitive fields before they reach a log line.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "access_token",
        "access_value",
        "authorization",
        "client_secret",
        "code",
        "refresh_token",
        "refresh_value",
        "state",
        "token",
    }
)


def mask_secret(secret: str | None, *, keep: int = 4) -> str:
    """Mask *secret*, keeping only its last *keep* characters.

    Short secrets are fully masked so nothing useful leaks.
    """
    if not secret:
        return "<none>"
    if len(secret) <= keep * 2:
        return "<redacted>"
    return f"…{secret[-keep:]}"


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs.

    Mappings and pydantic models are walked recursively; values stored
    under a sensitive key are replaced by :func:`mask_secret`.
    """
    if _depth > 20:
        return "<max-depth>"

    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if key.lower() in _SENSITIVE_VALUE_KEYS:
                redacted[key] = mask_secret(v) if isinstance(v, str) or v is None else "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
