"""Circular sample sets per aggregation window."""

from __future__ import annotations

from typing import Literal, Sequence, TypeVar

WindowKey = Literal["30m", "1h", "3h"]

T = TypeVar("T")

WINDOW_POINT_COUNTS: dict[str, int] = {
    "30m": 45,
    "1h": 90,
    "3h": 270,
}


def required_point_count(window: str) -> int:
    """Number of trailing samples kept for a window (unknown keys use 30m)."""
    return WINDOW_POINT_COUNTS.get(window, WINDOW_POINT_COUNTS["30m"])


def compact_for_window(points: Sequence[T], window: str) -> list[T]:
    """Keep only the most recent `required_point_count(window)` samples."""
    need = required_point_count(window)
    if len(points) <= need:
        return list(points)
    return list(points[len(points) - need:])
