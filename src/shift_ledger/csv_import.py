"""
CSV Import for Shift Ledger

Parses loosely formatted shift spreadsheets exported by hand, validates
each row, and resolves free-text employee names to known users.
Nothing is written here: callers commit the importable rows explicitly.
"""

import re
import logging
from datetime import date
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .data_manager import ShiftStatus, UserProfile

logger = logging.getLogger(__name__)

HEADER_MARKERS = ("nome", "dipendente", "data")
PAID_VALUES = ("paid", "pagato", "1")
USER_NOT_FOUND = "user not found"

ISO_DATE_PATTERN = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$')
DAY_FIRST_DATE_PATTERN = re.compile(r'^(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})$')
TIME_PATTERN = re.compile(r'^(\d{1,2})[:.](\d{2})$')

SAMPLE_CSV = """Nome dipendente,Data,Entrata,Uscita,Note,Stato
Mario Rossi,25/12/2024,09:00,17:00,Turno festivo,pending
Anna Verdi,26/12/2024,14:00,22:00,,paid
Luca Bianchi,2024-12-27,08:30,16:30,Note esempio,pending"""


@dataclass
class ParsedShiftRow:
    """Candidate shift read from one CSV row"""
    user_name: str
    date: str
    start_time: str
    end_time: str
    notes: str
    status: ShiftStatus
    matched_user_id: Optional[str] = None
    validation_error: Optional[str] = None


@dataclass
class ImportResult:
    shifts: List[ParsedShiftRow] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    total_rows: int = 0

    @property
    def importable(self) -> List[ParsedShiftRow]:
        """Rows resolved to a known user"""
        return [row for row in self.shifts if row.matched_user_id is not None]

    @property
    def unmatched(self) -> List[ParsedShiftRow]:
        return [row for row in self.shifts if row.matched_user_id is None]


def split_csv_line(line: str) -> List[str]:
    """Split on commas or semicolons outside double quotes; quotes are dropped"""
    fields = []
    current = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char in ',;' and not in_quotes:
            fields.append(''.join(current).strip())
            current = []
        else:
            current.append(char)

    fields.append(''.join(current).strip())
    return fields


def normalize_date(value: str) -> Optional[str]:
    """Return YYYY-MM-DD for ISO or day-first dates, None if unparseable"""
    match = ISO_DATE_PATTERN.match(value)
    if match:
        year, month, day = match.groups()
    else:
        match = DAY_FIRST_DATE_PATTERN.match(value)
        if not match:
            return None
        day, month, year = match.groups()

    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def normalize_time(value: str) -> Optional[str]:
    """Return HH:MM for H:MM, HH:MM, H.MM or HH.MM, None otherwise"""
    match = TIME_PATTERN.match(value)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def parse_status(value: str) -> ShiftStatus:
    return ShiftStatus.PAID if value.strip().lower() in PAID_VALUES else ShiftStatus.PENDING


def find_user_by_name(name: str, users: Sequence[UserProfile]) -> Optional[str]:
    """
    Resolve a free-text name to a user id.

    Tiers, first match wins: exact username, exact full name, full name
    substring (either direction), username substring (either direction).
    Users are considered in id order so ties resolve the same way whatever
    order storage returns them in.
    """
    wanted = name.strip().lower()
    if not wanted:
        return None

    ordered = sorted(users, key=lambda u: str(u.id))

    for user in ordered:
        if user.username.lower() == wanted:
            return user.id

    for user in ordered:
        if user.full_name and user.full_name.lower() == wanted:
            return user.id

    for user in ordered:
        full_name = (user.full_name or "").strip().lower()
        if full_name and (wanted in full_name or full_name in wanted):
            return user.id

    for user in ordered:
        username = user.username.lower()
        if username and (wanted in username or username in wanted):
            return user.id

    return None


def _has_header(first_line: str) -> bool:
    lowered = first_line.lower()
    return any(marker in lowered for marker in HEADER_MARKERS)


def parse_shifts_csv(raw_text: str, known_users: Sequence[UserProfile]) -> ImportResult:
    """Parse CSV text into candidate shifts plus a per-row error list"""
    lines = [line for line in raw_text.splitlines() if line.strip()]
    if not lines:
        return ImportResult(errors=["CSV file is empty"])

    start_index = 1 if _has_header(lines[0]) else 0
    result = ImportResult(total_rows=len(lines) - start_index)

    for index in range(start_index, len(lines)):
        row_number = index + 1
        columns = split_csv_line(lines[index].strip())

        if len(columns) < 4:
            result.errors.append(f"Row {row_number}: invalid format (at least 4 columns required)")
            continue

        employee_name, raw_date, raw_start, raw_end = columns[:4]
        notes = columns[4] if len(columns) > 4 else ""
        raw_status = columns[5] if len(columns) > 5 else "pending"

        parsed_date = normalize_date(raw_date)
        if not parsed_date:
            result.errors.append(f'Row {row_number}: invalid date "{raw_date}"')
            continue

        start_time = normalize_time(raw_start)
        end_time = normalize_time(raw_end)
        if not start_time or not end_time:
            result.errors.append(f"Row {row_number}: invalid time format")
            continue

        user_id = find_user_by_name(employee_name, known_users)
        result.shifts.append(ParsedShiftRow(
            user_name=employee_name,
            date=parsed_date,
            start_time=start_time,
            end_time=end_time,
            notes=notes,
            status=parse_status(raw_status),
            matched_user_id=user_id,
            validation_error=None if user_id is not None else USER_NOT_FOUND
        ))

    logger.info(f"Parsed {len(result.shifts)} of {result.total_rows} CSV rows "
                f"({len(result.errors)} errors, {len(result.unmatched)} unmatched)")
    return result


def generate_sample_csv() -> str:
    """Template users can fill in before importing"""
    return SAMPLE_CSV
