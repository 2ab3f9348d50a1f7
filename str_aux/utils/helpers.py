"""Small numeric and time helpers."""

from __future__ import annotations

import math
import time
from typing import Any


def timestamp_ms() -> int:
    """Current wall clock time in milliseconds."""
    return int(time.time() * 1000)


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce to a finite float, falling back to `default`."""
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    return out if math.isfinite(out) else default


def is_positive(value: Any) -> bool:
    """True for finite numbers strictly greater than zero."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(v) and v > 0


def pct_change(value: float, reference: float) -> float:
    """(value/reference - 1) * 100, or 0 when the ratio is undefined."""
    if not is_positive(reference) or not math.isfinite(value):
        return 0.0
    return (value / reference - 1.0) * 100.0


def round_half_up(x: float) -> int:
    # Python's round() is banker's rounding; bins use half-up.
    return int(math.floor(x + 0.5))
