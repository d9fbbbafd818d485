"""
Reporting and Export Module for Shift Ledger

Rolls classified, priced shifts up into summaries over date windows and
monthly trends, and renders those summaries to PDF, Excel and CSV.
"""

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from datetime import datetime, date
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any, Sequence
import calendar
import logging
import math

from .data_manager import Shift, ShiftStatus, UserWorkSettings, SystemPaySettings
from .shift_logic import ClassifiedShift, ShiftType, classify_and_price
from .time_utils import (
    compute_duration_hours, format_currency, format_duration, month_bounds,
    round_currency, shift_month, week_bounds
)

logger = logging.getLogger(__name__)

DEFAULT_TREND_MONTHS = 6


@dataclass(frozen=True)
class DateWindow:
    """Inclusive date interval; a missing bound is unbounded"""
    start: Optional[date] = None
    end: Optional[date] = None

    def contains(self, day: date) -> bool:
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True

    @classmethod
    def all(cls) -> 'DateWindow':
        return cls()

    @classmethod
    def month(cls, year: int, month: int) -> 'DateWindow':
        return cls(*month_bounds(year, month))

    @classmethod
    def week(cls, reference: date) -> 'DateWindow':
        return cls(*week_bounds(reference))

    @property
    def label(self) -> str:
        if self.start is None and self.end is None:
            return "All shifts"
        if self.start and self.end and (self.start, self.end) == month_bounds(self.start.year, self.start.month):
            return f"{calendar.month_name[self.start.month]} {self.start.year}"
        start = self.start.isoformat() if self.start else "..."
        end = self.end.isoformat() if self.end else "..."
        return f"{start} - {end}"


@dataclass
class Summary:
    """Totals for one user's shifts inside a window"""
    total_shifts: int = 0
    total_hours: float = 0.0
    contract_hours: float = 0.0
    extra_hours: float = 0.0
    paid_contract: float = 0.0
    unpaid_contract: float = 0.0
    paid_extra: float = 0.0
    unpaid_extra: float = 0.0
    entries: List[ClassifiedShift] = field(default_factory=list)

    @property
    def contract_earnings(self) -> float:
        return self.paid_contract + self.unpaid_contract

    @property
    def extra_earnings(self) -> float:
        return self.paid_extra + self.unpaid_extra

    @property
    def total_earnings(self) -> float:
        return self.paid_contract + self.unpaid_contract + self.paid_extra + self.unpaid_extra

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_shifts": self.total_shifts,
            "total_hours": self.total_hours,
            "contract_hours": self.contract_hours,
            "extra_hours": self.extra_hours,
            "paid_contract": self.paid_contract,
            "unpaid_contract": self.unpaid_contract,
            "paid_extra": self.paid_extra,
            "unpaid_extra": self.unpaid_extra,
            "contract_earnings": self.contract_earnings,
            "extra_earnings": self.extra_earnings,
            "total_earnings": self.total_earnings
        }


@dataclass
class MonthlySummary:
    year: int
    month: int
    summary: Summary

    @property
    def label(self) -> str:
        return f"{calendar.month_abbr[self.month]} {self.year}"


@dataclass
class MonthlyTrend:
    """Per-month summaries, oldest first, with change versus the previous month"""
    months: List[MonthlySummary]
    hours_change: int
    earnings_change: int

    @property
    def current(self) -> Optional[MonthlySummary]:
        return self.months[-1] if self.months else None


def percent_change(current: float, previous: float) -> int:
    """Whole-number percentage change, 0 when there is no previous value"""
    if previous == 0:
        return 0
    return math.floor((current - previous) / previous * 100 + 0.5)


def aggregate(shifts: Sequence[Shift], user_settings: UserWorkSettings,
              system_settings: SystemPaySettings, window: Optional[DateWindow] = None) -> Summary:
    """
    Summarise a user's shifts that fall inside window.

    shifts is the user's full history: weekly quota consumption is computed
    against all of it, so a shift early in a week still affects the type of
    a later in-window shift.
    """
    window = window or DateWindow.all()
    in_window = [s for s in shifts if window.contains(s.date)]
    summary = Summary(total_shifts=len(in_window))

    for entry in classify_and_price(in_window, shifts, user_settings, system_settings):
        summary.total_hours += entry.hours_worked
        if entry.shift_type == ShiftType.CONTRACT:
            summary.contract_hours += entry.hours_worked
            if entry.is_paid:
                summary.paid_contract += entry.earnings
            else:
                summary.unpaid_contract += entry.earnings
        else:
            summary.extra_hours += entry.hours_worked
            if entry.is_paid:
                summary.paid_extra += entry.earnings
            else:
                summary.unpaid_extra += entry.earnings
        summary.entries.append(entry)

    return summary


def monthly_trend(shifts: Sequence[Shift], user_settings: UserWorkSettings,
                  system_settings: SystemPaySettings, reference_date: date,
                  months: int = DEFAULT_TREND_MONTHS) -> MonthlyTrend:
    """Summaries for the trailing calendar months ending with reference_date's month"""
    if months < 1:
        raise ValueError("months must be at least 1")

    monthly = []
    for offset in range(months - 1, -1, -1):
        year, month = shift_month(reference_date.year, reference_date.month, -offset)
        summary = aggregate(shifts, user_settings, system_settings, DateWindow.month(year, month))
        monthly.append(MonthlySummary(year=year, month=month, summary=summary))

    hours_change = earnings_change = 0
    if len(monthly) >= 2:
        current, previous = monthly[-1].summary, monthly[-2].summary
        hours_change = percent_change(current.total_hours, previous.total_hours)
        earnings_change = percent_change(current.total_earnings, previous.total_earnings)

    return MonthlyTrend(months=monthly, hours_change=hours_change, earnings_change=earnings_change)


def weekly_progress(shifts: Sequence[Shift], user_settings: UserWorkSettings,
                    reference_date: date) -> Dict[str, float]:
    """Hours worked in the reference week against the weekly quota"""
    window = DateWindow.week(reference_date)
    hours = sum(compute_duration_hours(s.start_time, s.end_time)
                for s in shifts if window.contains(s.date))
    quota = user_settings.weekly_hours_quota
    progress = min(100.0, hours / quota * 100) if quota > 0 else 0.0
    return {"hours": hours, "quota": quota, "progress": progress}


def payment_status_counts(shifts: Sequence[Shift], window: Optional[DateWindow] = None) -> Dict[str, int]:
    """Count paid and pending shifts inside window"""
    window = window or DateWindow.all()
    counts = {ShiftStatus.PAID.value: 0, ShiftStatus.PENDING.value: 0}
    for shift in shifts:
        if window.contains(shift.date):
            counts[shift.status.value] += 1
    return counts


class ReportGenerator:
    """Renders summaries to files; never reclassifies or reprices shifts"""

    def __init__(self, currency_symbol: str = "€"):
        self.currency_symbol = currency_symbol
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        """Setup custom report styles"""
        self.styles.add(ParagraphStyle(
            name='CustomTitle',
            parent=self.styles['Heading1'],
            fontSize=18,
            spaceAfter=20,
            alignment=1  # Center alignment
        ))

        self.styles.add(ParagraphStyle(
            name='CustomHeading',
            parent=self.styles['Heading2'],
            fontSize=14,
            spaceAfter=12
        ))

    def _money(self, amount: float) -> str:
        return format_currency(amount, symbol=self.currency_symbol)

    def export_summary_pdf(self, summary: Summary, output_path: str, user_name: str,
                           period_label: str) -> bool:
        """Export a summary with its shift detail table to PDF"""
        try:
            doc = SimpleDocTemplate(
                output_path,
                pagesize=A4,
                rightMargin=0.5*inch,
                leftMargin=0.5*inch,
                topMargin=0.5*inch,
                bottomMargin=0.5*inch
            )

            story = [
                Paragraph(f"Timesheet - {user_name}", self.styles['CustomTitle']),
                Paragraph(period_label, self.styles['CustomHeading']),
                Spacer(1, 12),
                self._create_totals_table(summary),
                Spacer(1, 20),
                Paragraph("Shifts", self.styles['CustomHeading']),
                self._create_shift_table(summary)
            ]

            doc.build(story)
            return True

        except Exception as e:
            logger.error(f"Error creating PDF: {e}", exc_info=True)
            return False

    def _create_totals_table(self, summary: Summary) -> Table:
        data = [
            ['Total shifts', str(summary.total_shifts)],
            ['Total hours', format_duration(summary.total_hours)],
            ['Contract hours', format_duration(summary.contract_hours)],
            ['Extra hours', format_duration(summary.extra_hours)],
            ['Contract paid', self._money(summary.paid_contract)],
            ['Contract pending', self._money(summary.unpaid_contract)],
            ['Extra paid', self._money(summary.paid_extra)],
            ['Extra pending', self._money(summary.unpaid_extra)],
            ['Total earnings', self._money(summary.total_earnings)],
        ]
        table = Table(data, colWidths=[2.5*inch, 2*inch])
        table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
            ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
            ('BACKGROUND', (0, -1), (-1, -1), colors.lightblue),
        ]))
        return table

    def _create_shift_table(self, summary: Summary) -> Table:
        data = [['Date', 'Start', 'End', 'Hours', 'Type', 'Status', 'Earnings']]
        for entry in sorted(summary.entries, key=lambda e: (e.shift.date, e.shift.start_time)):
            data.append([
                entry.shift.date.strftime('%d/%m/%Y'),
                entry.shift.start_time,
                entry.shift.end_time,
                format_duration(entry.hours_worked),
                entry.shift_type.value.title(),
                entry.shift.status.value.title(),
                self._money(entry.earnings)
            ])
        table = Table(data, repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#366092')),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ]))
        return table

    def _create_shift_dataframe(self, summary: Summary) -> pd.DataFrame:
        """Detail rows for tabular exports"""
        data = []
        for entry in sorted(summary.entries, key=lambda e: (e.shift.date, e.shift.start_time)):
            data.append({
                'Date': entry.shift.date.isoformat(),
                'Start': entry.shift.start_time,
                'End': entry.shift.end_time,
                'Hours': round(entry.hours_worked, 2),
                'Type': entry.shift_type.value,
                'Status': entry.shift.status.value,
                'Earnings': round_currency(entry.earnings),
                'Notes': entry.shift.notes
            })
        return pd.DataFrame(data, columns=['Date', 'Start', 'End', 'Hours', 'Type',
                                           'Status', 'Earnings', 'Notes'])

    def _create_totals_dataframe(self, summary: Summary) -> pd.DataFrame:
        totals = summary.to_dict()
        return pd.DataFrame([
            {'Metric': key.replace('_', ' ').title(),
             'Value': round_currency(value) if isinstance(value, float) else value}
            for key, value in totals.items()
        ])

    def export_summary_excel(self, summary: Summary, output_path: str, period_label: str) -> bool:
        """Export a summary to an Excel workbook with Shifts and Totals sheets"""
        try:
            with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
                self._create_shift_dataframe(summary).to_excel(writer, sheet_name='Shifts', index=False)
                self._create_totals_dataframe(summary).to_excel(writer, sheet_name='Totals', index=False)
                writer.sheets['Totals'].cell(row=1, column=4, value=period_label)
                self._format_excel_worksheets(writer)
            return True

        except Exception as e:
            logger.error(f"Error exporting to Excel: {e}", exc_info=True)
            return False

    def _format_excel_worksheets(self, writer):
        """Header styling and column widths"""
        from openpyxl.styles import PatternFill, Font

        header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        header_font = Font(color="FFFFFF", bold=True)

        for worksheet in writer.sheets.values():
            for cell in worksheet[1]:
                if cell.value is not None:
                    cell.fill = header_fill
                    cell.font = header_font

            for column in worksheet.columns:
                max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
                worksheet.column_dimensions[column[0].column_letter].width = min(max_length + 2, 50)

    def export_summary_csv(self, summary: Summary, output_path: str) -> bool:
        """Export the shift detail rows to CSV"""
        try:
            self._create_shift_dataframe(summary).to_csv(output_path, index=False)
            return True

        except Exception as e:
            logger.error(f"Error exporting to CSV: {e}", exc_info=True)
            return False

    def create_text_summary(self, summary: Summary, period_label: str) -> str:
        """Plain-text summary for console display"""
        return f"""
TIMESHEET SUMMARY - {period_label}

Hours:
• Shifts: {summary.total_shifts}
• Total: {format_duration(summary.total_hours)}
• Contract: {format_duration(summary.contract_hours)}
• Extra: {format_duration(summary.extra_hours)}

Earnings:
• Contract paid: {self._money(summary.paid_contract)}
• Contract pending: {self._money(summary.unpaid_contract)}
• Extra paid: {self._money(summary.paid_extra)}
• Extra pending: {self._money(summary.unpaid_extra)}
• Total: {self._money(summary.total_earnings)}
        """.strip()


class ExportManager:
    """Manager class for handling all export operations"""

    FORMATS = ('pdf', 'excel', 'csv')

    def __init__(self, report_generator: Optional[ReportGenerator] = None):
        self.report_generator = report_generator or ReportGenerator()

    def export_summary(self, summary: Summary, format_type: str, output_path: str,
                       user_name: str = "", period_label: str = "") -> bool:
        """Export summary in specified format"""
        format_type = format_type.lower()
        if format_type == 'pdf':
            return self.report_generator.export_summary_pdf(summary, output_path, user_name, period_label)
        elif format_type == 'excel':
            return self.report_generator.export_summary_excel(summary, output_path, period_label)
        elif format_type == 'csv':
            return self.report_generator.export_summary_csv(summary, output_path)
        else:
            raise ValueError(f"Unsupported format: {format_type}")

    def get_default_filename(self, user_name: str, period_label: str, format_type: str) -> str:
        """Generate default filename for export"""
        extension = 'xlsx' if format_type.lower() == 'excel' else format_type.lower()
        slug = "_".join(f"{user_name} {period_label}".lower().split()) or "timesheet"
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return f"timesheet_{slug}_{timestamp}.{extension}"

    def batch_export(self, summary: Summary, output_dir: str, user_name: str = "",
                     period_label: str = "", formats: List[str] = None) -> Dict[str, bool]:
        """Export summary in multiple formats"""
        if formats is None:
            formats = list(self.FORMATS)

        results = {}
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        for format_type in formats:
            file_path = output_path / self.get_default_filename(user_name, period_label, format_type)
            try:
                results[format_type] = self.export_summary(
                    summary, format_type, str(file_path), user_name, period_label
                )
            except ValueError as e:
                logger.error(f"Error exporting {format_type}: {e}", exc_info=True)
                results[format_type] = False

        return results
