"""Normalization helpers.

Centralizes lenient parsing of loosely typed row columns.
"""

from __future__ import annotations

import math
from typing import Any


def safe_float(value: Any) -> float | None:
    """Parse *value* as a finite float, or ``None`` when absent or invalid."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def float_or_zero(value: Any) -> float:
    """Numeric column that defaults to ``0`` when absent (speed, heading)."""
    parsed = safe_float(value)
    return 0.0 if parsed is None else parsed


def clamp_percent(value: Any) -> float | None:
    """Parse a 0-100 level (battery, fatigue), clamping out-of-range readings."""
    parsed = safe_float(value)
    if parsed is None:
        return None
    return max(0.0, min(100.0, parsed))
