"""
Shift Ledger

Timesheet and pay tracking for small teams: classifies worked shifts as
contract or extra hours against a weekly quota, prices them, imports
shifts from CSV and keeps personal and organization calendars in sync.
"""

__version__ = "1.0.0"
__author__ = "Shift Ledger Team"
