"""Tests for billed-hour rounding and duration rules."""

from datetime import time

import pytest

from src.billing.hours import (
    calculate_billed_hours,
    calculate_duration_minutes,
    ensure_time_window,
    parse_wall_time,
)
from src.core.errors import ValidationFailed


class TestCalculateBilledHours:
    """Partial hours round up and the minimum always applies."""

    @pytest.mark.parametrize(
        ("minutes", "expected"),
        [(1, 1), (45, 1), (60, 1), (61, 2), (120, 2), (121, 3), (480, 8)],
    )
    def test_rounds_up_to_whole_hours(self, minutes: int, expected: int) -> None:
        assert calculate_billed_hours(minutes) == expected

    @pytest.mark.parametrize("minutes", [0, -15])
    def test_non_positive_duration_bills_minimum(self, minutes: int) -> None:
        assert calculate_billed_hours(minutes) == 1
        assert calculate_billed_hours(minutes, minimum=2) == 2

    def test_minimum_wins_over_short_duration(self) -> None:
        assert calculate_billed_hours(30, minimum=2) == 2
        assert calculate_billed_hours(150, minimum=2) == 3


class TestCalculateDurationMinutes:
    """Durations are whole minutes between same-day wall-clock times."""

    def test_from_time_values(self) -> None:
        assert calculate_duration_minutes(time(9, 0), time(10, 30)) == 90

    def test_from_strings(self) -> None:
        assert calculate_duration_minutes("08:15", "12:00") == 225

    def test_partial_minutes_are_truncated(self) -> None:
        assert calculate_duration_minutes(time(9, 0, 0), time(9, 1, 59)) == 1

    def test_end_not_after_start_is_zero(self) -> None:
        assert calculate_duration_minutes(time(10, 0), time(10, 0)) == 0
        assert calculate_duration_minutes(time(18, 0), time(9, 0)) == 0

    def test_invalid_string_rejected(self) -> None:
        with pytest.raises(ValidationFailed):
            parse_wall_time("25:99")


class TestEnsureTimeWindow:
    def test_accepts_open_window(self) -> None:
        ensure_time_window(time(9, 0), None)
        ensure_time_window(None, None)

    def test_rejects_inverted_window(self) -> None:
        with pytest.raises(ValidationFailed, match="end_time"):
            ensure_time_window(time(11, 0), time(10, 0))
