"""
Data Manager for Shift Ledger

Handles JSON persistence and CRUD operations for users, work settings,
system pay settings, personal and shared shifts, leave requests and the
administrative change log.
"""

import copy
import json
import logging
from datetime import datetime, date
from enum import Enum
from typing import Dict, List, Optional, Any, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .time_utils import parse_iso_date

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"
DEFAULT_WEEKLY_HOURS = 18.0
DEFAULT_EXTRA_RATE = 10.0
DEFAULT_HOURLY_RATE = 10.0
DEFAULT_SHIFT_RATE = 50.0


class DataManagerError(Exception):
    """Base exception for DataManager operations"""
    pass


class DataFileCorruptedError(DataManagerError):
    """Raised when the data file is corrupted"""
    pass


class DataFileNotFoundError(DataManagerError):
    """Raised when the data file is not found"""
    pass


class DataSaveError(DataManagerError):
    """Raised when saving data fails"""
    pass


class DataValidationError(DataManagerError):
    """Raised when data validation fails"""
    pass


class RecordNotFoundError(DataManagerError):
    """Raised when an update or delete targets a missing record"""
    pass


class ShiftStatus(Enum):
    PENDING = "pending"
    PAID = "paid"


class PaymentMethod(Enum):
    HOURLY = "hourly"
    PER_SHIFT = "per_shift"


class LeaveRequestStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


LEAVE_REQUEST_TYPES = ("vacation", "permit", "sickness", "other")


def _optional_date(value: Optional[str]) -> Optional[date]:
    return parse_iso_date(value) if value else None


def _optional_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


@dataclass
class Shift:
    """A worked shift owned by one user"""
    id: Optional[int]
    owner_user_id: str
    date: date
    start_time: str
    end_time: str
    notes: str = ""
    status: ShiftStatus = ShiftStatus.PENDING
    created_by_user_id: Optional[str] = None

    @property
    def key(self) -> str:
        """Structural key shared by equivalent records in both calendars"""
        return f"{self.date.isoformat()}|{self.start_time}|{self.end_time}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ownerUserId": self.owner_user_id,
            "date": self.date.isoformat(),
            "startTime": self.start_time,
            "endTime": self.end_time,
            "notes": self.notes,
            "status": self.status.value,
            "createdByUserId": self.created_by_user_id
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Shift':
        return cls(
            id=data.get("id"),
            owner_user_id=data["ownerUserId"],
            date=parse_iso_date(data["date"]),
            start_time=data["startTime"][:5],
            end_time=data["endTime"][:5],
            notes=data.get("notes") or "",
            status=ShiftStatus(data.get("status") or "pending"),
            created_by_user_id=data.get("createdByUserId")
        )


@dataclass
class UserWorkSettings:
    """Contract and pay configuration for one user"""
    user_id: str
    weekly_hours_quota: float = DEFAULT_WEEKLY_HOURS
    contract_start_date: Optional[date] = None
    extra_rate: float = DEFAULT_EXTRA_RATE
    use_custom_rates: bool = False
    custom_hourly_rate: Optional[float] = None
    custom_shift_rate: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "weeklyHoursQuota": self.weekly_hours_quota,
            "contractStartDate": self.contract_start_date.isoformat() if self.contract_start_date else None,
            "extraRate": self.extra_rate,
            "useCustomRates": self.use_custom_rates,
            "customHourlyRate": self.custom_hourly_rate,
            "customShiftRate": self.custom_shift_rate
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserWorkSettings':
        return cls(
            user_id=data["userId"],
            weekly_hours_quota=float(data.get("weeklyHoursQuota", DEFAULT_WEEKLY_HOURS)),
            contract_start_date=_optional_date(data.get("contractStartDate")),
            extra_rate=float(data.get("extraRate", DEFAULT_EXTRA_RATE)),
            use_custom_rates=bool(data.get("useCustomRates", False)),
            custom_hourly_rate=_optional_float(data.get("customHourlyRate")),
            custom_shift_rate=_optional_float(data.get("customShiftRate"))
        )


@dataclass
class SystemPaySettings:
    """Organization-wide pay configuration"""
    payment_method: PaymentMethod = PaymentMethod.HOURLY
    default_hourly_rate: float = DEFAULT_HOURLY_RATE
    default_shift_rate: float = DEFAULT_SHIFT_RATE
    users_can_edit_rates: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "paymentMethod": self.payment_method.value,
            "defaultHourlyRate": self.default_hourly_rate,
            "defaultShiftRate": self.default_shift_rate,
            "usersCanEditRates": self.users_can_edit_rates
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SystemPaySettings':
        return cls(
            payment_method=PaymentMethod(data.get("paymentMethod", "hourly")),
            default_hourly_rate=float(data.get("defaultHourlyRate", DEFAULT_HOURLY_RATE)),
            default_shift_rate=float(data.get("defaultShiftRate", DEFAULT_SHIFT_RATE)),
            users_can_edit_rates=bool(data.get("usersCanEditRates", True))
        )


@dataclass
class UserProfile:
    """Identity of a user known to the system"""
    id: str
    username: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    is_admin: bool = False

    @property
    def display_name(self) -> str:
        return self.full_name or self.username

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "fullName": self.full_name,
            "email": self.email,
            "isAdmin": self.is_admin
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserProfile':
        return cls(
            id=data["id"],
            username=data["username"],
            full_name=data.get("fullName"),
            email=data.get("email"),
            is_admin=data.get("isAdmin", False)
        )


@dataclass
class LeaveRequest:
    """Absence request awaiting or carrying an administrator decision"""
    id: Optional[int]
    user_id: str
    request_type: str
    start_date: date
    end_date: date
    reason: Optional[str] = None
    status: LeaveRequestStatus = LeaveRequestStatus.PENDING
    reviewed_by_user_id: Optional[str] = None
    reviewed_at: Optional[str] = None
    review_notes: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "requestType": self.request_type,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "reason": self.reason,
            "status": self.status.value,
            "reviewedByUserId": self.reviewed_by_user_id,
            "reviewedAt": self.reviewed_at,
            "reviewNotes": self.review_notes,
            "createdAt": self.created_at
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LeaveRequest':
        return cls(
            id=data.get("id"),
            user_id=data["userId"],
            request_type=data.get("requestType", "other"),
            start_date=parse_iso_date(data["startDate"]),
            end_date=parse_iso_date(data["endDate"]),
            reason=data.get("reason"),
            status=LeaveRequestStatus(data.get("status", "pending")),
            reviewed_by_user_id=data.get("reviewedByUserId"),
            reviewed_at=data.get("reviewedAt"),
            review_notes=data.get("reviewNotes"),
            created_at=data.get("createdAt") or datetime.now().isoformat()
        )


class DataManager:
    """Manages all data persistence and CRUD operations"""

    SHIFT_SECTIONS = ("shifts", "global_shifts")

    def __init__(self, data_file: str = "data/ledger_data.json"):
        if data_file == "data/ledger_data.json":
            # Use path relative to the package directory
            data_file = Path(__file__).parent.parent / "data" / "ledger_data.json"
        self.data_file = Path(data_file)
        self.data = self._load_or_create_data()
        self._system_settings: Optional[SystemPaySettings] = None

    def _load_or_create_data(self) -> Dict[str, Any]:
        """Load existing data or create default structure with recovery from backup"""
        backup_file = self.data_file.with_suffix('.bak')
        if self.data_file.exists():
            try:
                with open(self.data_file, 'r', encoding='utf-8') as f:
                    return self._validate_and_migrate_data(json.load(f))
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Error loading main data file {self.data_file}: {e}")
                if not backup_file.exists():
                    raise DataFileCorruptedError(f"Main data file corrupted and no backup available: {e}")
                return self._recover_from_backup(backup_file)
        if backup_file.exists():
            logger.info(f"Main data file missing, attempting recovery from backup {backup_file}")
            return self._recover_from_backup(backup_file)
        logger.info("No data file found, creating default data")
        return self._create_default_data()

    def _recover_from_backup(self, backup_file: Path) -> Dict[str, Any]:
        try:
            with open(backup_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            backup_file.replace(self.data_file)
            logger.info("Successfully recovered data from backup")
            return self._validate_and_migrate_data(data)
        except (json.JSONDecodeError, IOError) as backup_e:
            logger.error(f"Backup file corrupted: {backup_e}")
            logger.info("Creating default data due to corrupted backup")
            return self._create_default_data()

    def _validate_and_migrate_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and migrate data structure to current version"""
        if not isinstance(data, dict):
            raise DataValidationError("Data file root must be a JSON object")

        default_data = self._create_default_data()
        for key in default_data:
            if key not in data:
                data[key] = default_data[key]

        settings = data["settings"]
        if "systemPay" not in settings:
            settings["systemPay"] = SystemPaySettings().to_dict()

        return data

    def _create_default_data(self) -> Dict[str, Any]:
        """Create default data structure"""
        return {
            "settings": {
                "appVersion": APP_VERSION,
                "dataFile": str(self.data_file),
                "systemPay": SystemPaySettings().to_dict()
            },
            "users": [],
            "user_settings": {},  # {user_id: UserWorkSettings dict}
            "shifts": [],  # personal calendar
            "global_shifts": [],  # organization calendar
            "leave_requests": [],
            "change_logs": []
        }

    def _validate_saved_data(self) -> bool:
        """Validate that the saved data file matches current data"""
        try:
            if not self.data_file.exists():
                raise DataFileNotFoundError(f"Saved data file {self.data_file} does not exist")

            with open(self.data_file, 'r', encoding='utf-8') as f:
                saved_data = json.load(f)

            for key in self._create_default_data():
                if key not in saved_data:
                    raise DataValidationError(f"Required section '{key}' missing from saved data")

            if saved_data.get("settings", {}).get("appVersion") != self.data.get("settings", {}).get("appVersion"):
                raise DataValidationError("App version mismatch in saved data")

            return True

        except (json.JSONDecodeError, IOError) as e:
            raise DataValidationError(f"Failed to validate saved data: {e}")

    def save_data(self) -> bool:
        """Save current data to file atomically with validation"""
        temp_file = None
        backup_file = self.data_file.with_suffix('.bak')

        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            if self.data_file.exists():
                self.data_file.replace(backup_file)

            temp_file = self.data_file.with_suffix('.tmp')
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(self.data, f, indent=2, ensure_ascii=False)

            # Atomic rename: move temp file to final location
            temp_file.replace(self.data_file)

            self._validate_saved_data()
            return True

        except DataValidationError as e:
            logger.error(f"Data validation failed after save: {e}", exc_info=True)
            if backup_file.exists():
                try:
                    backup_file.replace(self.data_file)
                except OSError as restore_e:
                    logger.error(f"Failed to restore from backup: {restore_e}", exc_info=True)
            raise DataSaveError(f"Save operation failed validation: {e}")

        except (IOError, OSError) as e:
            logger.error(f"I/O error during save operation: {e}", exc_info=True)
            raise DataSaveError(f"Failed to save data due to I/O error: {e}")

        finally:
            if temp_file and temp_file.exists():
                try:
                    temp_file.unlink()
                except OSError as cleanup_e:
                    logger.error(f"Failed to clean up temporary file {temp_file}: {cleanup_e}", exc_info=True)

    # User Management
    def get_users(self) -> List[UserProfile]:
        """Get all known users in insertion order"""
        return [UserProfile.from_dict(u) for u in self.data.get("users", [])]

    def get_user(self, user_id: str) -> Optional[UserProfile]:
        """Get user by ID"""
        for user_data in self.data.get("users", []):
            if user_data["id"] == user_id:
                return UserProfile.from_dict(user_data)
        return None

    def add_user(self, user_id: str, username: str, full_name: Optional[str] = None,
                 email: Optional[str] = None, is_admin: bool = False) -> UserProfile:
        """Add new user with default work settings"""
        if self.get_user(user_id):
            raise DataValidationError(f"User '{user_id}' already exists")
        user = UserProfile(id=user_id, username=username, full_name=full_name,
                           email=email, is_admin=is_admin)
        self.data.setdefault("users", []).append(user.to_dict())
        self.data.setdefault("user_settings", {}).setdefault(
            user_id, UserWorkSettings(user_id=user_id).to_dict())
        return user

    # Work Settings
    def get_user_settings(self, user_id: str) -> UserWorkSettings:
        """Get work settings for user, falling back to defaults"""
        raw = self.data.get("user_settings", {}).get(user_id)
        if raw is None:
            return UserWorkSettings(user_id=user_id)
        return UserWorkSettings.from_dict(raw)

    def update_user_settings(self, user_id: str, **changes) -> UserWorkSettings:
        """Update selected fields of a user's work settings"""
        settings = self.get_user_settings(user_id)
        for name, value in changes.items():
            if not hasattr(settings, name) or name == "user_id":
                raise DataValidationError(f"Unknown work setting '{name}'")
            if name == "contract_start_date" and isinstance(value, str):
                value = parse_iso_date(value)
            setattr(settings, name, value)
        self.data.setdefault("user_settings", {})[user_id] = settings.to_dict()
        return settings

    # System Settings
    def get_system_settings(self) -> SystemPaySettings:
        """Get cached organization pay settings, loading them on first use"""
        if self._system_settings is None:
            self.refresh_system_settings()
        return self._system_settings

    def refresh_system_settings(self) -> SystemPaySettings:
        """Reload organization pay settings from the data store"""
        raw = self.data.get("settings", {}).get("systemPay", {})
        self._system_settings = SystemPaySettings.from_dict(raw)
        return self._system_settings

    def update_system_settings(self, **changes) -> SystemPaySettings:
        """Persist changes to organization pay settings and refresh the cache"""
        current = SystemPaySettings.from_dict(self.data.get("settings", {}).get("systemPay", {}))
        for name, value in changes.items():
            if not hasattr(current, name):
                raise DataValidationError(f"Unknown system setting '{name}'")
            if name == "payment_method" and not isinstance(value, PaymentMethod):
                value = PaymentMethod(value)
            setattr(current, name, value)
        self.data.setdefault("settings", {})["systemPay"] = current.to_dict()
        return self.refresh_system_settings()

    def get_setting(self, key: str, default=None):
        """Get application setting"""
        return self.data.get("settings", {}).get(key, default)

    def set_setting(self, key: str, value):
        """Set application setting"""
        self.data.setdefault("settings", {})[key] = value

    # Shift Management
    def _shift_section(self, shared: bool) -> List[Dict[str, Any]]:
        return self.data.setdefault(self.SHIFT_SECTIONS[1] if shared else self.SHIFT_SECTIONS[0], [])

    def snapshot_shifts(self, shared: bool = False) -> List[Dict[str, Any]]:
        """Copy of a calendar section that restore_shifts can roll back to"""
        return copy.deepcopy(self._shift_section(shared))

    def restore_shifts(self, snapshot: List[Dict[str, Any]], shared: bool = False):
        """Discard unsaved changes to a calendar section"""
        self.data[self.SHIFT_SECTIONS[1] if shared else self.SHIFT_SECTIONS[0]] = copy.deepcopy(snapshot)

    def _add_shift_record(self, shift: Shift, shared: bool) -> Shift:
        section = self._shift_section(shared)
        shift.id = max((s["id"] for s in section), default=0) + 1
        section.append(shift.to_dict())
        return shift

    def _get_shift_records(self, shared: bool, owner_user_id: Optional[str]) -> List[Shift]:
        shifts = [Shift.from_dict(s) for s in self._shift_section(shared)]
        if owner_user_id is not None:
            shifts = [s for s in shifts if s.owner_user_id == owner_user_id]
        return shifts

    def _update_shift_record(self, shared: bool, shift_id: int, changes: Dict[str, Any]) -> Shift:
        for index, raw in enumerate(self._shift_section(shared)):
            if raw["id"] == shift_id:
                shift = Shift.from_dict(raw)
                for name, value in changes.items():
                    if not hasattr(shift, name) or name == "id":
                        raise DataValidationError(f"Unknown shift field '{name}'")
                    if name == "status" and not isinstance(value, ShiftStatus):
                        value = ShiftStatus(value)
                    if name == "date" and isinstance(value, str):
                        value = parse_iso_date(value)
                    setattr(shift, name, value)
                self._shift_section(shared)[index] = shift.to_dict()
                return shift
        raise RecordNotFoundError(f"Shift {shift_id} not found")

    def _delete_shift_record(self, shared: bool, shift_id: int) -> bool:
        section = self._shift_section(shared)
        for raw in section:
            if raw["id"] == shift_id:
                section.remove(raw)
                return True
        return False

    def add_shift(self, shift: Shift) -> Shift:
        """Add a shift to the owner's personal calendar"""
        return self._add_shift_record(shift, shared=False)

    def add_shifts(self, shifts: Iterable[Shift]) -> List[Shift]:
        """Bulk-add shifts to personal calendars"""
        return [self.add_shift(s) for s in shifts]

    def get_shifts(self, owner_user_id: Optional[str] = None) -> List[Shift]:
        """Get personal shifts, optionally filtered by owner"""
        return self._get_shift_records(False, owner_user_id)

    def update_shift(self, shift_id: int, **changes) -> Shift:
        """Update fields of a personal shift"""
        return self._update_shift_record(False, shift_id, changes)

    def delete_shift(self, shift_id: int) -> bool:
        """Delete a personal shift"""
        return self._delete_shift_record(False, shift_id)

    def add_global_shift(self, shift: Shift) -> Shift:
        """Add a shift to the organization calendar"""
        return self._add_shift_record(shift, shared=True)

    def add_global_shifts(self, shifts: Iterable[Shift]) -> List[Shift]:
        """Bulk-add shifts to the organization calendar"""
        return [self.add_global_shift(s) for s in shifts]

    def get_global_shifts(self, owner_user_id: Optional[str] = None) -> List[Shift]:
        """Get organization shifts, optionally filtered by assignee"""
        return self._get_shift_records(True, owner_user_id)

    def update_global_shift(self, shift_id: int, **changes) -> Shift:
        """Update fields of an organization shift"""
        return self._update_shift_record(True, shift_id, changes)

    def delete_global_shift(self, shift_id: int) -> bool:
        """Delete an organization shift"""
        return self._delete_shift_record(True, shift_id)

    # Leave Requests
    def add_leave_request(self, request: LeaveRequest) -> LeaveRequest:
        """Store a new leave request"""
        if request.request_type not in LEAVE_REQUEST_TYPES:
            raise DataValidationError(f"Unknown leave request type '{request.request_type}'")
        if request.end_date < request.start_date:
            raise DataValidationError("Leave request ends before it starts")
        section = self.data.setdefault("leave_requests", [])
        request.id = max((r["id"] for r in section), default=0) + 1
        section.append(request.to_dict())
        return request

    def get_leave_requests(self, user_id: Optional[str] = None) -> List[LeaveRequest]:
        """Get leave requests, newest first"""
        requests = [LeaveRequest.from_dict(r) for r in self.data.get("leave_requests", [])]
        if user_id is not None:
            requests = [r for r in requests if r.user_id == user_id]
        return sorted(requests, key=lambda r: r.created_at, reverse=True)

    def update_leave_request(self, request: LeaveRequest) -> LeaveRequest:
        """Replace a stored leave request"""
        section = self.data.setdefault("leave_requests", [])
        for index, raw in enumerate(section):
            if raw["id"] == request.id:
                section[index] = request.to_dict()
                return request
        raise RecordNotFoundError(f"Leave request {request.id} not found")

    # Change Log
    def log_change(self, actor_user_id: str, action: str, details: str):
        """Track administrative changes for auditing"""
        self.data.setdefault("change_logs", []).append({
            "userId": actor_user_id,
            "action": action,
            "details": details,
            "timestamp": datetime.now().isoformat()
        })

    def get_change_logs(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Get change log entries, newest first"""
        logs = list(reversed(self.data.get("change_logs", [])))
        return logs[:limit] if limit is not None else logs
