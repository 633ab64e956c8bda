"""Numeric and string coercion shared by the cache and the extraction rules."""

from __future__ import annotations

import math
from typing import Any


def as_number(value: Any) -> float | None:
    """Finite float for ``value`` or ``None``; empty strings and booleans are not numbers."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def as_int(value: Any) -> int | None:
    number = as_number(value)
    if number is None:
        return None
    return math.trunc(number)


def as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None
