"""
Main Entry Point for Shift Ledger

Command-line access to summaries, trends, CSV import, calendar sync and
exports, with file and console logging.
"""

import sys
import logging
import argparse
from pathlib import Path
from datetime import date, datetime
from typing import List, Optional

from shift_ledger.csv_import import generate_sample_csv, parse_shifts_csv
from shift_ledger.data_manager import DataManager, DataManagerError
from shift_ledger.notifications import LogNotifier
from shift_ledger.reporting import DateWindow, ExportManager, ReportGenerator
from shift_ledger.services import ShiftLedgerService
from shift_ledger.sync import SessionContext, ShiftSynchronizer
from shift_ledger.time_utils import format_duration, format_currency, parse_iso_date


def setup_logging(log_dir: str = "logs", level: int = logging.INFO):
    """Setup application logging"""
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    log_file = log_path / f"shift_ledger_{datetime.now().strftime('%Y%m%d')}.log"

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    return logging.getLogger(__name__)


def handle_exception(exc_type, exc_value, exc_traceback):
    """Global exception handler"""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    logging.getLogger(__name__).error(
        "Uncaught exception",
        exc_info=(exc_type, exc_value, exc_traceback)
    )


def parse_month(value: str) -> DateWindow:
    """'all' or YYYY-MM"""
    if value == "all":
        return DateWindow.all()
    try:
        year, month = (int(part) for part in value.split('-'))
        return DateWindow.month(year, month)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM or 'all', got '{value}'")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Shift ledger: timesheets, contract/extra hours and earnings."
    )
    parser.add_argument(
        "--data-file",
        default="data/ledger_data.json",
        help="JSON data file (default: data/ledger_data.json next to the package).",
    )
    parser.add_argument("--log-dir", default="logs", help="Directory for log files.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    summary = subparsers.add_parser("summary", help="Hours and earnings for a user.")
    summary.add_argument("--user", required=True, help="User id.")
    summary.add_argument("--month", type=parse_month, default=DateWindow.all(),
                         help="YYYY-MM or 'all' (default).")

    trend = subparsers.add_parser("trend", help="Monthly trend for a user.")
    trend.add_argument("--user", required=True, help="User id.")
    trend.add_argument("--months", type=int, default=6)
    trend.add_argument("--reference", type=parse_iso_date, default=None,
                       help="Reference date YYYY-MM-DD (default: today).")

    import_csv = subparsers.add_parser("import-csv", help="Validate and optionally import a shift CSV.")
    import_csv.add_argument("csv_file", type=Path)
    import_csv.add_argument("--admin", required=True, help="Id of the importing administrator.")
    import_csv.add_argument("--commit", action="store_true",
                            help="Write matched rows; without it the file is only validated.")

    sync = subparsers.add_parser("sync", help="Reconcile personal and global calendars for a user.")
    sync.add_argument("--user", required=True)

    export = subparsers.add_parser("export", help="Export a user's summary.")
    export.add_argument("--user", required=True)
    export.add_argument("--month", type=parse_month, default=DateWindow.all())
    export.add_argument("--format", choices=ExportManager.FORMATS, default="pdf")
    export.add_argument("--output", type=Path, required=True)

    subparsers.add_parser("sample-csv", help="Print a CSV template.")
    return parser


class ShiftLedgerApp:
    """Main application class"""

    def __init__(self, data_file: str):
        self.logger = logging.getLogger(__name__)
        self.data_manager = DataManager(data_file)
        self.service = ShiftLedgerService(self.data_manager, LogNotifier())
        self.report_generator = ReportGenerator()
        self.export_manager = ExportManager(self.report_generator)

    def _user_label(self, user_id: str) -> str:
        user = self.data_manager.get_user(user_id)
        return user.display_name if user else user_id

    def show_summary(self, user_id: str, window: DateWindow) -> int:
        summary = self.service.user_summary(user_id, window)
        print(self.report_generator.create_text_summary(summary, f"{self._user_label(user_id)} - {window.label}"))
        return 0

    def show_trend(self, user_id: str, months: int, reference: Optional[date]) -> int:
        trend = self.service.user_trend(user_id, reference, months)
        for item in trend.months:
            print(f"{item.label:>9}  {format_duration(item.summary.total_hours):>8}  "
                  f"{format_currency(item.summary.total_earnings):>14}")
        print(f"Hours vs previous month: {trend.hours_change:+d}%")
        print(f"Earnings vs previous month: {trend.earnings_change:+d}%")
        return 0

    def import_csv(self, csv_file: Path, admin_id: str, commit: bool) -> int:
        result = parse_shifts_csv(csv_file.read_text(encoding='utf-8'), self.data_manager.get_users())
        print(f"Rows: {result.total_rows}  parsed: {len(result.shifts)}  "
              f"matched: {len(result.importable)}")
        for error in result.errors:
            print(f"  {error}")
        for row in result.unmatched:
            print(f"  {row.user_name} ({row.date}): {row.validation_error}")

        if commit:
            count = self.service.commit_import(admin_id, result)
            print(f"Imported {count} shifts")
        return 1 if result.errors else 0

    def sync(self, user_id: str) -> int:
        report = ShiftSynchronizer(self.data_manager).sync_session(SessionContext(user_id))
        print(f"Added to personal calendar: {report.added_to_private}")
        print(f"Added to global calendar: {report.added_to_shared}")
        for error in report.errors:
            print(f"  {error}")
        return 1 if report.errors else 0

    def export(self, user_id: str, window: DateWindow, format_type: str, output: Path) -> int:
        summary = self.service.user_summary(user_id, window)
        ok = self.export_manager.export_summary(
            summary, format_type, str(output), self._user_label(user_id), window.label
        )
        print(f"Exported to {output}" if ok else "Export failed, see log for details")
        return 0 if ok else 1


def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    args = build_parser().parse_args(argv)

    if args.command == "sample-csv":
        print(generate_sample_csv())
        sys.exit(0)

    sys.excepthook = handle_exception
    try:
        logger = setup_logging(args.log_dir)
    except OSError as exc:
        print(f"ERROR: cannot open log directory {args.log_dir}: {exc}", file=sys.stderr)
        sys.exit(1)
    logger.info(f"Running command: {args.command}")

    try:
        app = ShiftLedgerApp(args.data_file)
        if args.command == "summary":
            code = app.show_summary(args.user, args.month)
        elif args.command == "trend":
            code = app.show_trend(args.user, args.months, args.reference)
        elif args.command == "import-csv":
            code = app.import_csv(args.csv_file, args.admin, args.commit)
        elif args.command == "sync":
            code = app.sync(args.user)
        else:
            code = app.export(args.user, args.month, args.format, args.output)
    except (DataManagerError, OSError, ValueError) as exc:
        logger.error(f"Command {args.command} failed: {exc}", exc_info=True)
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
