"""
Service layer for Shift Ledger

Administrative and per-user workflows that combine the data store,
the reporting core and notifications.
"""

import logging
from datetime import date, datetime
from typing import Optional

from .csv_import import ImportResult
from .data_manager import (
    DataManager, DataValidationError, LeaveRequest, LeaveRequestStatus,
    RecordNotFoundError, Shift, ShiftStatus
)
from .notifications import Notifier, leave_decision_payload, notify_safely, shift_assigned_payload
from .reporting import DateWindow, MonthlyTrend, Summary, aggregate, monthly_trend
from .time_utils import is_valid_clock_time, parse_iso_date

logger = logging.getLogger(__name__)


class ShiftLedgerService:
    """Entry point for operations that touch more than one collaborator"""

    def __init__(self, data_manager: DataManager, notifier: Optional[Notifier] = None):
        self.data_manager = data_manager
        self.notifier = notifier

    @staticmethod
    def _build_shift(user_id: str, shift_date, start_time: str, end_time: str,
                     notes: str = "", status: ShiftStatus = ShiftStatus.PENDING,
                     created_by: Optional[str] = None) -> Shift:
        if not is_valid_clock_time(start_time) or not is_valid_clock_time(end_time):
            raise DataValidationError(f"Invalid shift times {start_time}-{end_time}")
        start_h, start_m = start_time.split(':')
        end_h, end_m = end_time.split(':')
        return Shift(
            id=None,
            owner_user_id=user_id,
            date=parse_iso_date(shift_date),
            start_time=f"{int(start_h):02d}:{start_m}",
            end_time=f"{int(end_h):02d}:{end_m}",
            notes=notes or "",
            status=status,
            created_by_user_id=created_by
        )

    def assign_shift(self, admin_id: str, user_id: str, shift_date, start_time: str,
                     end_time: str, notes: str = "") -> Shift:
        """Put a shift on the organization calendar for a user and notify them"""
        user = self.data_manager.get_user(user_id)
        if user is None:
            raise RecordNotFoundError(f"User {user_id} not found")

        shift = self.data_manager.add_global_shift(
            self._build_shift(user_id, shift_date, start_time, end_time, notes, created_by=admin_id)
        )
        self.data_manager.log_change(admin_id, "add", f"Shift added for {user.username} on {shift.date}")
        self.data_manager.save_data()

        notify_safely(self.notifier, user_id, shift_assigned_payload(shift, user))
        return shift

    def add_personal_shift(self, user_id: str, shift_date, start_time: str, end_time: str,
                           notes: str = "", status: ShiftStatus = ShiftStatus.PENDING) -> Shift:
        """Log a shift on the user's own calendar and mirror it to the organization calendar"""
        shift = self.data_manager.add_shift(
            self._build_shift(user_id, shift_date, start_time, end_time, notes, status)
        )
        self.data_manager.add_global_shift(
            self._build_shift(user_id, shift_date, start_time, end_time, notes, status, created_by=user_id)
        )
        self.data_manager.save_data()
        return shift

    def set_shift_status(self, shift_id: int, status: ShiftStatus) -> Shift:
        """Mark a personal shift paid or pending"""
        shift = self.data_manager.update_shift(shift_id, status=status)
        self.data_manager.save_data()
        return shift

    def commit_import(self, admin_id: str, import_result: ImportResult) -> int:
        """Write the matched rows of a reviewed import to the organization calendar"""
        rows = import_result.importable
        if not rows:
            return 0

        self.data_manager.add_global_shifts(
            self._build_shift(row.matched_user_id, row.date, row.start_time, row.end_time,
                              row.notes, row.status, created_by=admin_id)
            for row in rows
        )
        self.data_manager.log_change(admin_id, "import", f"Imported {len(rows)} shifts from CSV")
        self.data_manager.save_data()
        logger.info(f"Committed {len(rows)} imported shifts, skipped {len(import_result.unmatched)} unmatched")
        return len(rows)

    def request_leave(self, user_id: str, request_type: str, start_date, end_date,
                      reason: Optional[str] = None) -> LeaveRequest:
        request = self.data_manager.add_leave_request(LeaveRequest(
            id=None,
            user_id=user_id,
            request_type=request_type,
            start_date=parse_iso_date(start_date),
            end_date=parse_iso_date(end_date),
            reason=reason
        ))
        self.data_manager.save_data()
        return request

    def review_leave_request(self, request_id: int, reviewer_id: str, approved: bool,
                             notes: Optional[str] = None) -> LeaveRequest:
        """Approve or reject a pending request and tell the requester"""
        for request in self.data_manager.get_leave_requests():
            if request.id == request_id:
                break
        else:
            raise RecordNotFoundError(f"Leave request {request_id} not found")

        if request.status != LeaveRequestStatus.PENDING:
            raise DataValidationError(f"Leave request {request_id} was already {request.status.value}")

        request.status = LeaveRequestStatus.APPROVED if approved else LeaveRequestStatus.REJECTED
        request.reviewed_by_user_id = reviewer_id
        request.reviewed_at = datetime.now().isoformat()
        request.review_notes = notes
        self.data_manager.update_leave_request(request)
        self.data_manager.save_data()

        user = self.data_manager.get_user(request.user_id)
        notify_safely(self.notifier, request.user_id, leave_decision_payload(request, user))
        return request

    def user_summary(self, user_id: str, window: Optional[DateWindow] = None) -> Summary:
        return aggregate(
            self.data_manager.get_shifts(owner_user_id=user_id),
            self.data_manager.get_user_settings(user_id),
            self.data_manager.get_system_settings(),
            window
        )

    def user_trend(self, user_id: str, reference_date: Optional[date] = None,
                   months: int = 6) -> MonthlyTrend:
        return monthly_trend(
            self.data_manager.get_shifts(owner_user_id=user_id),
            self.data_manager.get_user_settings(user_id),
            self.data_manager.get_system_settings(),
            reference_date or date.today(),
            months
        )
