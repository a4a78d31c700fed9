"""Conversion between seconds and ``M:SS`` display timestamps."""

from __future__ import annotations

import math


def parse_timestamp(value: str | float | int | None) -> float:
    """Parse a display timestamp into seconds.

    Accepts ``"M:SS"``, ``"H:MM:SS"``, bare second strings and numbers.
    Unparseable input yields ``0.0``.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)

    parts = str(value).strip().split(":")
    try:
        if len(parts) == 2:
            return int(parts[0]) * 60 + float(parts[1])
        if len(parts) == 3:
            return int(parts[0]) * 3600 + int(parts[1]) * 60 + float(parts[2])
        return float(int(float(parts[0])))
    except ValueError:
        return 0.0


def format_timestamp(seconds: float) -> str:
    """Format seconds as ``M:SS`` (seconds floored, minutes unbounded)."""
    total = max(0, math.floor(seconds))
    return f"{total // 60}:{total % 60:02d}"


def format_duration(seconds: float) -> str:
    return format_timestamp(seconds)
