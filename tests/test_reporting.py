"""
Tests for summary aggregation, monthly trends and dashboard figures.
"""

import pytest
import sys
from pathlib import Path
from datetime import date
import copy

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shift_ledger.data_manager import (
    Shift, ShiftStatus, PaymentMethod, UserWorkSettings, SystemPaySettings
)
from shift_ledger.reporting import (
    DateWindow, aggregate, monthly_trend, percent_change, weekly_progress,
    payment_status_counts
)


@pytest.fixture
def user_settings():
    return UserWorkSettings(user_id="u1", weekly_hours_quota=18, contract_start_date=date(2025, 1, 1),
                            extra_rate=15.0)


@pytest.fixture
def system_settings():
    return SystemPaySettings(payment_method=PaymentMethod.HOURLY, default_hourly_rate=10.0,
                             default_shift_rate=50.0)


@pytest.fixture
def history():
    """Three 8h shifts in one March week (third is extra) plus one February shift"""
    return [
        Shift(id=1, owner_user_id="u1", date=date(2025, 3, 10), start_time="09:00", end_time="17:00",
              status=ShiftStatus.PAID),
        Shift(id=2, owner_user_id="u1", date=date(2025, 3, 12), start_time="09:00", end_time="17:00"),
        Shift(id=3, owner_user_id="u1", date=date(2025, 3, 14), start_time="09:00", end_time="17:00",
              status=ShiftStatus.PAID),
        Shift(id=4, owner_user_id="u1", date=date(2025, 2, 3), start_time="22:00", end_time="02:00"),
    ]


def test_aggregate_month(history, user_settings, system_settings):
    summary = aggregate(history, user_settings, system_settings, DateWindow.month(2025, 3))

    assert summary.total_shifts == 3
    assert summary.total_hours == 24
    assert summary.contract_hours == 16
    assert summary.extra_hours == 8
    assert summary.paid_contract == 80.0
    assert summary.unpaid_contract == 80.0
    assert summary.paid_extra == 120.0
    assert summary.unpaid_extra == 0.0
    assert summary.total_earnings == 280.0


def test_aggregate_additivity(history, user_settings, system_settings):
    for window in (DateWindow.all(), DateWindow.month(2025, 2), DateWindow.week(date(2025, 3, 12))):
        summary = aggregate(history, user_settings, system_settings, window)
        assert summary.contract_earnings + summary.extra_earnings == pytest.approx(summary.total_earnings)
        assert summary.paid_contract + summary.unpaid_contract == pytest.approx(summary.contract_earnings)
        assert summary.paid_extra + summary.unpaid_extra == pytest.approx(summary.extra_earnings)


def test_window_uses_full_history_for_quota(history, user_settings, system_settings):
    """
    Why this is important: a Friday-only window must still see that Monday
    and Wednesday used up the quota, otherwise the Friday shift is misreported
    as contract hours.
    """
    friday_only = DateWindow(start=date(2025, 3, 14), end=date(2025, 3, 14))
    summary = aggregate(history, user_settings, system_settings, friday_only)
    assert summary.total_shifts == 1
    assert summary.extra_hours == 8
    assert summary.contract_hours == 0


def test_per_shift_payment(history, user_settings, system_settings):
    system_settings.payment_method = PaymentMethod.PER_SHIFT
    summary = aggregate(history, user_settings, system_settings, DateWindow.month(2025, 3))
    assert summary.contract_earnings == 100.0
    assert summary.extra_earnings == 120.0


def test_aggregate_is_pure(history, user_settings, system_settings):
    snapshot = copy.deepcopy(history)
    first = aggregate(history, user_settings, system_settings)
    second = aggregate(history, user_settings, system_settings)
    assert first.to_dict() == second.to_dict()
    assert history == snapshot


def test_empty_window(history, user_settings, system_settings):
    summary = aggregate(history, user_settings, system_settings, DateWindow.month(2020, 1))
    assert summary.total_shifts == 0
    assert summary.total_earnings == 0
    assert summary.entries == []


def test_monthly_trend(history, user_settings, system_settings):
    trend = monthly_trend(history, user_settings, system_settings, date(2025, 3, 20))

    assert len(trend.months) == 6
    assert [(m.year, m.month) for m in trend.months][0] == (2024, 10)
    assert trend.current.month == 3
    assert trend.months[-2].summary.total_hours == 4
    # February: one 4h overnight contract shift at 10/h
    assert trend.months[-2].summary.total_earnings == 40.0
    assert trend.hours_change == 500
    assert trend.earnings_change == 600


def test_percent_change_handles_zero_previous():
    assert percent_change(10, 0) == 0
    assert percent_change(0, 10) == -100
    assert percent_change(15, 10) == 50


def test_weekly_progress(history, user_settings):
    progress = weekly_progress(history, user_settings, date(2025, 3, 11))
    assert progress["hours"] == 24
    assert progress["quota"] == 18
    assert progress["progress"] == 100.0


def test_payment_status_counts(history):
    counts = payment_status_counts(history, DateWindow.month(2025, 3))
    assert counts == {"paid": 2, "pending": 1}


def test_duplicate_entries_without_ids_respect_quota(system_settings):
    settings = UserWorkSettings(user_id="u1", weekly_hours_quota=8, contract_start_date=date(2025, 1, 1),
                                extra_rate=15.0)
    shifts = [
        Shift(id=None, owner_user_id="u1", date=date(2025, 3, 10), start_time="09:00", end_time="17:00"),
        Shift(id=None, owner_user_id="u1", date=date(2025, 3, 10), start_time="09:00", end_time="17:00"),
    ]
    summary = aggregate(shifts, settings, system_settings)
    assert summary.contract_hours == 8
    assert summary.extra_hours == 8
