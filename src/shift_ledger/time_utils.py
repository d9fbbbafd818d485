"""
Time Arithmetic for Shift Ledger

Pure helpers for shift durations, currency rendering and the calendar
windows (ISO weeks, calendar months) used by classification and reporting.
"""

import re
import calendar
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Tuple, Union

CLOCK_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})$')


def compute_duration_hours(start_time: str, end_time: str) -> float:
    """
    Elapsed hours between two HH:MM wall-clock times.

    An end time earlier than the start time means the shift crosses
    midnight. Inputs must already be valid clock values.
    """
    start_h, start_m = (int(part) for part in start_time.split(':')[:2])
    end_h, end_m = (int(part) for part in end_time.split(':')[:2])

    hours = end_h - start_h
    minutes = end_m - start_m

    # Borrow before wrapping so 09:30 -> 09:15 lands at 23.75, not -0.25
    if minutes < 0:
        hours -= 1
        minutes += 60

    # Overnight shift
    if hours < 0:
        hours += 24

    return hours + minutes / 60


def format_duration(hours: float) -> str:
    """Render hours as '8h' or '7h 30m'"""
    whole = int(hours // 1)
    minutes = int(round((hours - whole) * 60))
    return f"{whole}h {minutes}m" if minutes > 0 else f"{whole}h"


def round_currency(amount: float) -> float:
    """Round to cents, half away from zero"""
    return float(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_currency(amount: float, symbol: str = "€", thousands_sep: str = ".",
                    decimal_sep: str = ",") -> str:
    """Two-decimal currency string, Italian conventions by default (1.234,56 €)"""
    rendered = f"{abs(round_currency(amount)):,.2f}"
    rendered = rendered.replace(",", "\x00").replace(".", decimal_sep).replace("\x00", thousands_sep)
    sign = "-" if amount < 0 and round_currency(amount) != 0 else ""
    return f"{sign}{rendered} {symbol}"


def is_valid_clock_time(value: str) -> bool:
    """Check that value is an H:MM / HH:MM time inside 00:00..23:59"""
    match = CLOCK_PATTERN.match(value or "")
    if not match:
        return False
    return int(match.group(1)) <= 23 and int(match.group(2)) <= 59


def parse_iso_date(value: Union[str, date]) -> date:
    """Parse YYYY-MM-DD (datetime values are truncated to their date)"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()


def week_bounds(day: date) -> Tuple[date, date]:
    """Monday and Sunday of the ISO week containing day"""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """First and last day of a calendar month"""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def shift_month(year: int, month: int, offset: int) -> Tuple[int, int]:
    """Move (year, month) by offset months"""
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def shifts_for_month(shifts: Iterable, year: int, month: int) -> List:
    """Shifts dated inside the given calendar month"""
    return [s for s in shifts if s.date.year == year and s.date.month == month]


def shifts_for_week(shifts: Iterable, reference: date) -> List:
    """Shifts dated inside the ISO week containing reference"""
    monday, sunday = week_bounds(reference)
    return [s for s in shifts if monday <= s.date <= sunday]
