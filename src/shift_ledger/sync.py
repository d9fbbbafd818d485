"""
Cross-Calendar Sync for Shift Ledger

Keeps a user's personal calendar and the organization calendar in step by
copying shifts that exist on only one side, matched by structural key
(date, start time, end time). Conflicting notes or status on shifts
present on both sides are left alone.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Sequence

from .data_manager import DataManager, Shift

logger = logging.getLogger(__name__)


class SessionContext:
    """Per-login state; create a new one at session start to allow another sync"""

    def __init__(self, user_id: str):
        self.user_id = user_id
        self.has_synced = False
        self._lock = threading.Lock()

    def claim_sync(self) -> bool:
        """Atomically mark the session as synced; False if it already was"""
        with self._lock:
            if self.has_synced:
                return False
            self.has_synced = True
            return True


@dataclass
class SyncPlan:
    to_add_to_private: List[Shift] = field(default_factory=list)
    to_add_to_shared: List[Shift] = field(default_factory=list)


@dataclass
class SyncReport:
    skipped: bool = False
    added_to_private: int = 0
    added_to_shared: int = 0
    errors: List[str] = field(default_factory=list)


def reconcile(private_shifts: Sequence[Shift], shared_shifts: Sequence[Shift]) -> SyncPlan:
    """Shifts each side is missing, by structural key"""
    private_keys = {s.key for s in private_shifts}
    shared_keys = {s.key for s in shared_shifts}
    return SyncPlan(
        to_add_to_private=[s for s in shared_shifts if s.key not in private_keys],
        to_add_to_shared=[s for s in private_shifts if s.key not in shared_keys],
    )


class ShiftSynchronizer:
    """Applies reconcile() for a session's user against the data store"""

    def __init__(self, data_manager: DataManager):
        self.data_manager = data_manager

    def sync_session(self, session: SessionContext) -> SyncReport:
        """Run the sync at most once per session; each direction fails independently"""
        if not session.claim_sync():
            logger.info(f"Shift sync already ran for user {session.user_id} this session")
            return SyncReport(skipped=True)

        logger.info(f"Starting shift sync for user: {session.user_id}")
        report = SyncReport()

        try:
            private_shifts = self.data_manager.get_shifts(owner_user_id=session.user_id)
            shared_shifts = self.data_manager.get_global_shifts(owner_user_id=session.user_id)
        except Exception as e:
            logger.error(f"Error fetching shifts for sync: {e}", exc_info=True)
            report.errors.append(f"fetch failed: {e}")
            return report

        plan = reconcile(private_shifts, shared_shifts)

        if plan.to_add_to_private:
            snapshot = self.data_manager.snapshot_shifts(shared=False)
            try:
                self.data_manager.add_shifts(
                    self._copy_for(s, session.user_id, shared=False) for s in plan.to_add_to_private
                )
                self.data_manager.save_data()
                report.added_to_private = len(plan.to_add_to_private)
                logger.info(f"Synced {report.added_to_private} shifts from global calendar")
            except Exception as e:
                self.data_manager.restore_shifts(snapshot, shared=False)
                logger.error(f"Error syncing to personal calendar: {e}", exc_info=True)
                report.errors.append(f"personal calendar: {e}")
        else:
            logger.info("No new shifts to sync")

        if plan.to_add_to_shared:
            snapshot = self.data_manager.snapshot_shifts(shared=True)
            try:
                self.data_manager.add_global_shifts(
                    self._copy_for(s, session.user_id, shared=True) for s in plan.to_add_to_shared
                )
                self.data_manager.save_data()
                report.added_to_shared = len(plan.to_add_to_shared)
                logger.info(f"Synced {report.added_to_shared} personal shifts to global calendar")
            except Exception as e:
                # Users may lack permission to write the organization calendar
                self.data_manager.restore_shifts(snapshot, shared=True)
                logger.error(f"Error syncing to global calendar: {e}", exc_info=True)
                report.errors.append(f"global calendar: {e}")

        return report

    @staticmethod
    def _copy_for(shift: Shift, user_id: str, shared: bool) -> Shift:
        return Shift(
            id=None,
            owner_user_id=user_id,
            date=shift.date,
            start_time=shift.start_time,
            end_time=shift.end_time,
            notes=shift.notes,
            status=shift.status,
            created_by_user_id=user_id if shared else None,
        )
