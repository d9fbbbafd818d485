"""
Notifications for Shift Ledger

Best-effort, fire-and-forget messages to users about assigned shifts and
leave request decisions. Delivery failures are logged and never surface
to the operation that triggered them.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from .data_manager import LeaveRequest, Shift, UserProfile

logger = logging.getLogger(__name__)


class Notifier:
    """Delivery backend keyed by user id"""

    def send(self, user_id: str, payload: Dict[str, Any]):
        raise NotImplementedError


class LogNotifier(Notifier):
    """Writes notifications to the log and keeps them in an outbox"""

    def __init__(self):
        self.outbox: List[Tuple[str, Dict[str, Any]]] = []

    def send(self, user_id: str, payload: Dict[str, Any]):
        self.outbox.append((user_id, payload))
        logger.info(f"Notification for {user_id}: {payload.get('subject', payload.get('kind'))}")


def notify_safely(notifier: Optional[Notifier], user_id: str, payload: Dict[str, Any]) -> bool:
    """Send payload, returning False instead of raising on any delivery failure"""
    if notifier is None:
        return False
    try:
        notifier.send(user_id, payload)
        return True
    except Exception as e:
        logger.error(f"Failed to send notification to {user_id}: {e}", exc_info=True)
        return False


def shift_assigned_payload(shift: Shift, user: Optional[UserProfile]) -> Dict[str, Any]:
    name = user.display_name if user else "User"
    return {
        "kind": "shift_assigned",
        "subject": f"New shift assigned - {shift.date.strftime('%A %d %B %Y')}",
        "recipient_name": name,
        "email": user.email if user else None,
        "shift_date": shift.date.isoformat(),
        "start_time": shift.start_time,
        "end_time": shift.end_time,
        "notes": shift.notes
    }


def leave_decision_payload(request: LeaveRequest, user: Optional[UserProfile]) -> Dict[str, Any]:
    name = user.display_name if user else "User"
    return {
        "kind": "leave_decision",
        "subject": f"Leave request {request.status.value}",
        "recipient_name": name,
        "email": user.email if user else None,
        "request_type": request.request_type,
        "start_date": request.start_date.isoformat(),
        "end_date": request.end_date.isoformat(),
        "status": request.status.value,
        "review_notes": request.review_notes
    }
