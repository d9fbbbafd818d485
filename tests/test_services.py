"""
Tests for admin workflows: shift assignment, CSV import commit and leave reviews.
"""

import pytest
import sys
from pathlib import Path
from datetime import date

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shift_ledger.csv_import import parse_shifts_csv
from shift_ledger.data_manager import (
    DataManager, DataValidationError, LeaveRequestStatus, RecordNotFoundError, ShiftStatus
)
from shift_ledger.notifications import LogNotifier, Notifier, notify_safely
from shift_ledger.reporting import DateWindow
from shift_ledger.services import ShiftLedgerService


class FailingNotifier(Notifier):
    def send(self, user_id, payload):
        raise ConnectionError("mail server unreachable")


@pytest.fixture
def data_manager(tmp_path):
    dm = DataManager(str(tmp_path / "ledger.json"))
    dm.add_user("admin", "boss", "Head Office", is_admin=True)
    dm.add_user("u1", "mrossi", "Mario Rossi", email="mario@example.com")
    dm.update_user_settings("u1", contract_start_date=date(2025, 1, 1))
    return dm


@pytest.fixture
def notifier():
    return LogNotifier()


@pytest.fixture
def service(data_manager, notifier):
    return ShiftLedgerService(data_manager, notifier)


def test_assign_shift_notifies_user(service, data_manager, notifier):
    shift = service.assign_shift("admin", "u1", "2025-03-10", "9:00", "17:00", "front desk")

    assert shift.start_time == "09:00"
    assert data_manager.get_global_shifts("u1") == [shift]
    assert data_manager.get_change_logs()[0]["action"] == "add"
    assert len(notifier.outbox) == 1
    user_id, payload = notifier.outbox[0]
    assert user_id == "u1"
    assert payload["kind"] == "shift_assigned"
    assert payload["email"] == "mario@example.com"


def test_notification_failure_does_not_fail_assignment(data_manager):
    """
    Why this is important: a mail outage must never roll back or block the
    shift an administrator just created.
    """
    service = ShiftLedgerService(data_manager, FailingNotifier())
    shift = service.assign_shift("admin", "u1", "2025-03-10", "09:00", "17:00")
    assert data_manager.get_global_shifts("u1") == [shift]


def test_notify_safely_reports_failure():
    assert notify_safely(FailingNotifier(), "u1", {"kind": "test"}) is False
    assert notify_safely(None, "u1", {"kind": "test"}) is False
    assert notify_safely(LogNotifier(), "u1", {"kind": "test"}) is True


def test_assign_shift_rejects_bad_input(service):
    with pytest.raises(RecordNotFoundError):
        service.assign_shift("admin", "ghost", "2025-03-10", "09:00", "17:00")
    with pytest.raises(DataValidationError):
        service.assign_shift("admin", "u1", "2025-03-10", "25:00", "17:00")


def test_personal_shift_mirrored_and_summarised(service, data_manager):
    shift = service.add_personal_shift("u1", "2025-03-10", "09:00", "17:00")
    assert len(data_manager.get_global_shifts("u1")) == 1

    service.set_shift_status(shift.id, ShiftStatus.PAID)
    summary = service.user_summary("u1", DateWindow.month(2025, 3))
    assert summary.total_hours == 8
    assert summary.paid_contract == 80.0


def test_commit_import_writes_only_matched_rows(service, data_manager):
    text = "\n".join([
        "Nome dipendente,Data,Entrata,Uscita,Note,Stato",
        "Mario Rossi,10/03/2025,09:00,17:00,,pagato",
        "Giulia Neri,11/03/2025,09:00,17:00,,",
        "Mario Rossi,bad-date,09:00,17:00,,",
    ])
    result = parse_shifts_csv(text, data_manager.get_users())
    assert len(result.errors) == 1
    assert data_manager.get_global_shifts() == []  # nothing written before commit

    assert service.commit_import("admin", result) == 1
    imported = data_manager.get_global_shifts("u1")
    assert len(imported) == 1
    assert imported[0].status == ShiftStatus.PAID
    assert imported[0].created_by_user_id == "admin"


def test_leave_request_review(service, data_manager, notifier):
    request = service.request_leave("u1", "vacation", "2025-08-01", "2025-08-05", "summer")
    reviewed = service.review_leave_request(request.id, "admin", approved=False, notes="peak season")

    assert reviewed.status == LeaveRequestStatus.REJECTED
    assert data_manager.get_leave_requests("u1")[0].reviewed_by_user_id == "admin"
    assert notifier.outbox[-1][1]["kind"] == "leave_decision"
    assert notifier.outbox[-1][1]["status"] == "rejected"

    with pytest.raises(DataValidationError):
        service.review_leave_request(request.id, "admin", approved=True)


def test_user_trend(service):
    service.add_personal_shift("u1", "2025-02-10", "09:00", "13:00")
    service.add_personal_shift("u1", "2025-03-10", "09:00", "17:00")
    trend = service.user_trend("u1", date(2025, 3, 15), months=2)
    assert [m.summary.total_hours for m in trend.months] == [4, 8]
    assert trend.hours_change == 100
