"""
Shift Logic for Shift Ledger

Classifies shifts as contract or extra hours against a weekly quota and
prices them under the organization's payment method.
"""

from datetime import date
from typing import Dict, List, Optional, Sequence, Set, Tuple
from dataclasses import dataclass
from enum import Enum
import logging

from .data_manager import (
    Shift, ShiftStatus, PaymentMethod, UserWorkSettings, SystemPaySettings
)
from .time_utils import compute_duration_hours, week_bounds

logger = logging.getLogger(__name__)


class ShiftType(Enum):
    CONTRACT = "contract"
    EXTRA = "extra"


class ClassificationError(Exception):
    """Raised when a shift cannot be located in the history it is classified against"""
    pass


@dataclass
class ClassifiedShift:
    """A shift annotated with its worked hours, type and earnings (never persisted)"""
    shift: Shift
    hours_worked: float
    shift_type: ShiftType
    earnings: float

    @property
    def is_paid(self) -> bool:
        return self.shift.status == ShiftStatus.PAID


@dataclass
class PayRates:
    """Rates in effect for one user"""
    hourly_rate: float
    shift_rate: float
    extra_rate: float


def _ordering_key(shift: Shift) -> Tuple[date, str]:
    return shift.date, shift.start_time


def _find_in_allocation(allocation: Sequence[Tuple[Shift, ShiftType]], target: Shift,
                        claimed: Set[int]) -> Optional[ShiftType]:
    """
    Locate target in a week's allocation: by identity, then by id, then by
    structural key. Key matches skip entries already claimed so identical
    shifts without ids each take their own slot.
    """
    for index, (candidate, shift_type) in enumerate(allocation):
        if candidate is target:
            claimed.add(index)
            return shift_type

    if target.id is not None:
        for index, (candidate, shift_type) in enumerate(allocation):
            if candidate.id == target.id:
                claimed.add(index)
                return shift_type

    for index, (candidate, shift_type) in enumerate(allocation):
        if index in claimed:
            continue
        if candidate.id is not None and target.id is not None:
            continue
        if candidate.key == target.key:
            claimed.add(index)
            return shift_type
    return None


def _week_allocation(week_shifts: Sequence[Shift], weekly_quota: float) -> List[Tuple[Shift, ShiftType]]:
    """
    Greedily assign a week's shifts to the contract bucket in date order.

    A shift is contract only if it fits entirely in the quota left when it
    is reached; every shift consumes min(duration, remaining) either way.
    """
    allocation = []
    consumed = 0.0
    for shift in sorted(week_shifts, key=_ordering_key):
        hours = compute_duration_hours(shift.start_time, shift.end_time)
        remaining = weekly_quota - consumed
        shift_type = ShiftType.CONTRACT if hours <= remaining else ShiftType.EXTRA
        allocation.append((shift, shift_type))
        consumed += min(hours, remaining)
    return allocation


def _contract_week_shifts(shift_date: date, all_shifts: Sequence[Shift],
                          contract_start_date: date) -> List[Shift]:
    monday, sunday = week_bounds(shift_date)
    return [
        s for s in all_shifts
        if s.date >= contract_start_date and monday <= s.date <= sunday
    ]


def classify_shift(shift: Shift, all_shifts: Sequence[Shift], weekly_quota: float,
                   contract_start_date: Optional[date]) -> ShiftType:
    """
    Classify one shift against the owner's full shift history.

    Raises ClassificationError if the shift is on or after the contract
    start but absent from all_shifts.
    """
    if contract_start_date is None:
        return ShiftType.EXTRA

    if shift.date < contract_start_date:
        return ShiftType.EXTRA

    week_shifts = _contract_week_shifts(shift.date, all_shifts, contract_start_date)
    allocation = _week_allocation(week_shifts, weekly_quota)
    shift_type = _find_in_allocation(allocation, shift, set())
    if shift_type is not None:
        return shift_type

    raise ClassificationError(
        f"shift not found in history: {shift.key} (owner {shift.owner_user_id})"
    )


def classify_shifts(shifts: Sequence[Shift], all_shifts: Sequence[Shift], weekly_quota: float,
                    contract_start_date: Optional[date]) -> List[ShiftType]:
    """Classify several shifts, walking each ISO week of the history only once"""
    allocations: Dict[date, List[Tuple[Shift, ShiftType]]] = {}
    claimed: Dict[date, Set[int]] = {}
    results = []
    for shift in shifts:
        if contract_start_date is None or shift.date < contract_start_date:
            results.append(ShiftType.EXTRA)
            continue

        monday = week_bounds(shift.date)[0]
        if monday not in allocations:
            week_shifts = _contract_week_shifts(shift.date, all_shifts, contract_start_date)
            allocations[monday] = _week_allocation(week_shifts, weekly_quota)
            claimed[monday] = set()

        shift_type = _find_in_allocation(allocations[monday], shift, claimed[monday])
        if shift_type is None:
            raise ClassificationError(
                f"shift not found in history: {shift.key} (owner {shift.owner_user_id})"
            )
        results.append(shift_type)
    return results


def compute_earnings(hours: float, shift_count: int, payment_method: PaymentMethod,
                     hourly_rate: float, shift_rate: float) -> float:
    """Unrounded amount for hours or shifts under the given payment method"""
    if payment_method == PaymentMethod.HOURLY:
        return hours * hourly_rate
    return shift_count * shift_rate


def resolve_rates(user_settings: UserWorkSettings, system_settings: SystemPaySettings) -> PayRates:
    """Pick custom rates over organization defaults where the user has them enabled"""
    hourly_rate = system_settings.default_hourly_rate
    shift_rate = system_settings.default_shift_rate

    if user_settings.use_custom_rates:
        if user_settings.custom_hourly_rate is not None:
            hourly_rate = user_settings.custom_hourly_rate
        if user_settings.custom_shift_rate is not None:
            shift_rate = user_settings.custom_shift_rate

    return PayRates(hourly_rate=hourly_rate, shift_rate=shift_rate,
                    extra_rate=user_settings.extra_rate)


def shift_earnings(hours: float, shift_type: ShiftType, payment_method: PaymentMethod,
                   rates: PayRates) -> float:
    """Earnings for a single classified shift"""
    if shift_type == ShiftType.EXTRA:
        return hours * rates.extra_rate
    return compute_earnings(hours, 1, payment_method, rates.hourly_rate, rates.shift_rate)


def classify_and_price(shifts: Sequence[Shift], all_shifts: Sequence[Shift],
                       user_settings: UserWorkSettings,
                       system_settings: SystemPaySettings) -> List[ClassifiedShift]:
    """Annotate shifts with hours, type and earnings for one user"""
    rates = resolve_rates(user_settings, system_settings)
    types = classify_shifts(shifts, all_shifts, user_settings.weekly_hours_quota,
                            user_settings.contract_start_date)

    classified = []
    for shift, shift_type in zip(shifts, types):
        hours = compute_duration_hours(shift.start_time, shift.end_time)
        earnings = shift_earnings(hours, shift_type, system_settings.payment_method, rates)
        classified.append(ClassifiedShift(shift=shift, hours_worked=hours,
                                          shift_type=shift_type, earnings=earnings))

    logger.debug(f"Classified {len(classified)} shifts for contract start "
                 f"{user_settings.contract_start_date}")
    return classified
