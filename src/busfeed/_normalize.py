"""Normalization helpers.

Centralizes defensive parsing of upstream payload values.
"""

from __future__ import annotations

import math
from typing import Any


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--":
        return None
    if isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text if text else None


def as_list(value: Any) -> list[Any]:
    """Wrap a single object in a list; map missing/empty values to ``[]``.

    The location API collapses one-element arrays into a bare object and
    returns an empty string when there is nothing to report.
    """
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    return [value]
