"""
Tests for shift duration arithmetic and display formatting.
"""

import pytest
import sys
from pathlib import Path
from datetime import date

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shift_ledger.time_utils import (
    compute_duration_hours, format_duration, format_currency, round_currency,
    is_valid_clock_time, week_bounds, month_bounds, shift_month
)


@pytest.mark.parametrize(
    "start, end, expected",
    [
        ("09:00", "17:00", 8),
        ("22:00", "06:00", 8),
        ("09:30", "09:15", 23.75),
        ("08:30", "16:45", 8.25),
        ("12:00", "12:00", 0),
        ("23:59", "00:00", 1 / 60),
    ],
)
def test_compute_duration_hours(start, end, expected):
    assert compute_duration_hours(start, end) == pytest.approx(expected)


def test_duration_always_within_a_day():
    """
    Why this is important: every clock pair must produce a duration in
    [0, 24), otherwise weekly quota consumption goes negative or overflows.
    """
    samples = [f"{h:02d}:{m:02d}" for h in range(0, 24, 5) for m in (0, 7, 30, 59)]
    for start in samples:
        for end in samples:
            hours = compute_duration_hours(start, end)
            assert 0 <= hours < 24, (start, end, hours)


@pytest.mark.parametrize(
    "hours, expected",
    [(8, "8h"), (7.5, "7h 30m"), (0.25, "0h 15m"), (0, "0h")],
)
def test_format_duration(hours, expected):
    assert format_duration(hours) == expected


def test_currency_rounding_half_away_from_zero():
    assert round_currency(2.675) == 2.68
    assert round_currency(-2.675) == -2.68
    assert round_currency(10) == 10.0


def test_format_currency_uses_italian_separators():
    assert format_currency(1234.5) == "1.234,50 €"
    assert format_currency(0) == "0,00 €"
    assert format_currency(-12.345, symbol="EUR") == "-12,35 EUR"


def test_clock_validation():
    assert is_valid_clock_time("9:05")
    assert is_valid_clock_time("23:59")
    assert not is_valid_clock_time("24:00")
    assert not is_valid_clock_time("12:60")
    assert not is_valid_clock_time("noon")


def test_calendar_windows():
    # 2025-01-01 is a Wednesday
    assert week_bounds(date(2025, 1, 1)) == (date(2024, 12, 30), date(2025, 1, 5))
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert shift_month(2025, 1, -1) == (2024, 12)
    assert shift_month(2024, 11, 3) == (2025, 2)
