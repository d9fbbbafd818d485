"""
Tests for personal/global calendar reconciliation and the once-per-session guard.
"""

import pytest
import sys
from pathlib import Path
from datetime import date
import threading

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shift_ledger.data_manager import DataManager, DataSaveError, Shift, ShiftStatus
from shift_ledger.sync import SessionContext, ShiftSynchronizer, reconcile


def make_shift(day, start, end, owner="u1", notes="", status=ShiftStatus.PENDING):
    return Shift(id=None, owner_user_id=owner, date=day, start_time=start, end_time=end,
                 notes=notes, status=status)


@pytest.fixture
def data_manager(tmp_path):
    """DataManager on an isolated temp file with one user and overlapping calendars."""
    dm = DataManager(str(tmp_path / "ledger.json"))
    dm.add_user("u1", "mrossi", "Mario Rossi")
    dm.add_shift(make_shift(date(2025, 3, 10), "09:00", "17:00"))
    dm.add_shift(make_shift(date(2025, 3, 11), "09:00", "13:00", notes="personal only"))
    dm.add_global_shift(make_shift(date(2025, 3, 10), "09:00", "17:00", notes="different note"))
    dm.add_global_shift(make_shift(date(2025, 3, 12), "14:00", "22:00", status=ShiftStatus.PAID))
    dm.add_global_shift(make_shift(date(2025, 3, 12), "14:00", "22:00", owner="u2"))
    return dm


def test_reconcile_by_structural_key(data_manager):
    plan = reconcile(data_manager.get_shifts("u1"), data_manager.get_global_shifts("u1"))
    assert [s.key for s in plan.to_add_to_private] == ["2025-03-12|14:00|22:00"]
    assert [s.key for s in plan.to_add_to_shared] == ["2025-03-11|09:00|13:00"]


def test_reconcile_is_idempotent(data_manager):
    private = data_manager.get_shifts("u1")
    shared = data_manager.get_global_shifts("u1")
    first = reconcile(private, shared)
    second = reconcile(private, shared)
    assert first == second


def test_conflicting_fields_are_not_reconciled(data_manager):
    """Same key with different notes counts as present on both sides."""
    plan = reconcile(data_manager.get_shifts("u1"), data_manager.get_global_shifts("u1"))
    assert all(s.date != date(2025, 3, 10) for s in plan.to_add_to_private + plan.to_add_to_shared)


def test_sync_session_applies_both_directions(data_manager):
    report = ShiftSynchronizer(data_manager).sync_session(SessionContext("u1"))

    assert not report.skipped
    assert (report.added_to_private, report.added_to_shared) == (1, 1)
    assert report.errors == []

    copied = [s for s in data_manager.get_shifts("u1") if s.date == date(2025, 3, 12)]
    assert len(copied) == 1 and copied[0].status == ShiftStatus.PAID
    mirrored = [s for s in data_manager.get_global_shifts("u1") if s.date == date(2025, 3, 11)]
    assert mirrored[0].created_by_user_id == "u1"

    # Nothing left to do once applied
    plan = reconcile(data_manager.get_shifts("u1"), data_manager.get_global_shifts("u1"))
    assert plan.to_add_to_private == [] and plan.to_add_to_shared == []


def test_sync_runs_once_per_session(data_manager):
    synchronizer = ShiftSynchronizer(data_manager)
    session = SessionContext("u1")
    assert not synchronizer.sync_session(session).skipped
    assert synchronizer.sync_session(session).skipped
    # A new login gets a new context
    assert not synchronizer.sync_session(SessionContext("u1")).skipped


def test_claim_sync_is_one_shot_across_threads():
    session = SessionContext("u1")
    results = []
    threads = [threading.Thread(target=lambda: results.append(session.claim_sync())) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count(True) == 1


def test_failed_direction_does_not_block_the_other(data_manager, monkeypatch):
    """
    Why this is important: users without permission to write the global
    calendar must still receive the shifts an administrator assigned them.
    """
    def denied(shifts):
        raise DataSaveError("permission denied")

    monkeypatch.setattr(data_manager, "add_global_shifts", denied)
    report = ShiftSynchronizer(data_manager).sync_session(SessionContext("u1"))

    assert report.added_to_private == 1
    assert report.added_to_shared == 0
    assert len(report.errors) == 1 and "permission denied" in report.errors[0]


def test_fetch_failure_is_reported(data_manager, monkeypatch):
    def broken(owner_user_id=None):
        raise DataSaveError("storage offline")

    monkeypatch.setattr(data_manager, "get_global_shifts", broken)
    report = ShiftSynchronizer(data_manager).sync_session(SessionContext("u1"))
    assert report.added_to_private == report.added_to_shared == 0
    assert report.errors


def test_failed_save_leaves_no_trace_of_that_direction(data_manager, monkeypatch):
    """
    Why this is important: when the personal calendar cannot be saved, the
    global direction's later save must not write those shifts to disk anyway.
    """
    original_save = data_manager.save_data
    calls = []

    def save_once_failing():
        calls.append(1)
        if len(calls) == 1:
            raise DataSaveError("disk full")
        return original_save()

    monkeypatch.setattr(data_manager, "save_data", save_once_failing)
    report = ShiftSynchronizer(data_manager).sync_session(SessionContext("u1"))

    assert report.added_to_private == 0
    assert report.added_to_shared == 1
    assert len(report.errors) == 1 and "disk full" in report.errors[0]

    assert len(data_manager.get_shifts("u1")) == 2
    reloaded = DataManager(data_manager.data_file)
    private = reloaded.get_shifts("u1")
    assert len(private) == 2
    assert all(s.date != date(2025, 3, 12) for s in private)
    assert len(reloaded.get_global_shifts("u1")) == 3
