"""Redaction of request parameters for debug logs.

Location queries carry the upstream API key in their query string.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

_SENSITIVE_KEYS: frozenset[str] = frozenset({"servicekey", "service_key", "apikey", "api_key", "token"})


def redact_params(params: Mapping[str, Any], *, max_string: int = 256) -> dict[str, str]:
    """Return a copy of *params* with secrets masked and long values truncated."""
    redacted: dict[str, str] = {}
    for key, value in params.items():
        if key.lower() in _SENSITIVE_KEYS:
            redacted[key] = "<redacted>"
            continue
        text = str(value)
        redacted[key] = f"{text[:max_string]}…<truncated>" if len(text) > max_string else text
    return redacted
