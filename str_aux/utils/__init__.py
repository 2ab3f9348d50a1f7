"""Utility helpers."""

from .helpers import is_positive, pct_change, round_half_up, timestamp_ms, to_float
from .logging import get_logger, setup_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "timestamp_ms",
    "to_float",
    "is_positive",
    "pct_change",
    "round_half_up",
]
