"""Billed-hour rules for support tickets.

Partial hours always round up and a minimum charge always applies. Times
are wall-clock values within one logical day; no timezone conversion.
"""

from __future__ import annotations

import math
from datetime import datetime, time

from src.core.errors import ValidationFailed

MIN_BILLED_HOURS = 1
"""Default minimum charge for a completed ticket."""


def calculate_billed_hours(
    duration_minutes: int, minimum: int = MIN_BILLED_HOURS
) -> int:
    """Convert a worked duration into chargeable whole hours.

    Args:
        duration_minutes: Minutes worked. Zero or negative means unknown.
        minimum: Minimum chargeable hours.

    Returns:
        ``minimum`` for non-positive durations, otherwise the duration in
        hours rounded up, never below ``minimum``.

    Examples:
        45 -> 1, 61 -> 2, 120 -> 2, 121 -> 3 (with minimum=1).
    """
    if duration_minutes <= 0:
        return minimum
    return max(minimum, math.ceil(duration_minutes / 60))


def parse_wall_time(value: time | str) -> time:
    """Accept a ``time`` or an ``HH:MM[:SS]`` string."""
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValidationFailed(f"Invalid time value: {value!r}") from exc


def calculate_duration_minutes(start: time | str, end: time | str) -> int:
    """Whole minutes between two same-day times; 0 when end <= start."""
    start_time = parse_wall_time(start)
    end_time = parse_wall_time(end)
    # Anchor both on the same arbitrary day and drop tzinfo: wall-clock only.
    anchor = datetime(2000, 1, 1)
    start_at = datetime.combine(anchor, start_time.replace(tzinfo=None))
    end_at = datetime.combine(anchor, end_time.replace(tzinfo=None))
    minutes = int((end_at - start_at).total_seconds() // 60)
    return minutes if minutes > 0 else 0


def ensure_time_window(start: time | None, end: time | None) -> None:
    """Reject a time window whose end is not strictly after its start."""
    if start is not None and end is not None and end <= start:
        raise ValidationFailed("end_time must be later than start_time")
