"""
Command-line entry points for the inactive customers module.

    inactive-customers-export --days=365 --display
    inactive-customers-export --days=730 --shop=1 --format=json --out-name=emails.json
    inactive-customers-remove --days=365 --dry-run
    inactive-customers-remove --days=1095 --shop=1 --force

Both commands validate their options before touching the database, and turn
any unexpected failure into a one-line "ERROR: ..." and exit code 1.
"""
from __future__ import annotations

import argparse
import logging
import time
from collections.abc import Callable, Generator, Sequence
from contextlib import contextmanager
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask

from app.retention import create_app
from app.retention.config import load_config
from app.retention.db import dispose_engines, has_read_replica, missing_tables, open_session
from app.retention.models import SHOP_TABLES
from app.retention.modules.inactive_customers.exporters import render_for_console, write_emails
from app.retention.modules.inactive_customers.repository import InactiveCustomerRepository
from app.retention.modules.inactive_customers.service import (
    InactiveCustomerService,
    InactivityCriteria,
    ProgressEvent,
)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_export_args(args: argparse.Namespace) -> list[str]:
    errors = []
    if args.days < 1:
        errors.append("Days must be greater than 0.")
    if args.batch < 1:
        errors.append("Batch size must be greater than 0.")
    return errors


def below_safety_threshold(args: argparse.Namespace, min_removal_days: int) -> bool:
    return 0 < args.days < min_removal_days and not args.dry_run


def validate_remove_args(args: argparse.Namespace, min_removal_days: int) -> list[str]:
    errors = []
    if args.days < 1:
        errors.append("Days must be greater than 0.")
    elif below_safety_threshold(args, min_removal_days):
        errors.append(f"For safety reasons, minimum inactivity period is {min_removal_days} days.")
    if args.batch < 1:
        errors.append("Batch size must be greater than 0.")
    return errors


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------


def format_duration(seconds: int) -> str:
    """45 -> '45s', 125 -> '2m 5s', 7260 -> '2h 1m'."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {seconds}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


class ProgressPrinter:
    """
    Progress callback for removal runs.

    Prints when the whole percentage changes and lands on a multiple of 5,
    or on every 100th record when that also moves the percentage.
    """

    def __init__(
        self,
        write: Callable[[str], None] = print,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._write = write
        self._clock = clock
        self._started = clock()
        self._last_percent = -1

    def __call__(self, current: int, total: int, email: str) -> None:
        event = ProgressEvent(current=current, total=total, email=email)
        percent = event.current * 100 // event.total if event.total else 100
        if percent == self._last_percent:
            return
        if percent % 5 != 0 and event.current % 100 != 0:
            return
        self._write(self.format(event, percent))
        self._last_percent = percent

    def format(self, event: ProgressEvent, percent: int) -> str:
        elapsed = int(self._clock() - self._started)
        estimated_total = (elapsed / event.current) * event.total if event.current > 0 else 0
        remaining = max(0, int(estimated_total - elapsed))
        return (
            f"[{percent}%] {event.current}/{event.total} processed"
            f" | Elapsed: {format_duration(elapsed)}"
            f" | Remaining: ~{format_duration(remaining)}"
            f" | Current: {event.email[:30]}"
        )


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _setup_logging(config) -> None:
    logging.basicConfig(
        level=config.get("LOG_LEVEL") or "INFO",
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@contextmanager
def _service_scope(app: Flask, *, use_replica: bool) -> Generator[InactiveCustomerService, None, None]:
    missing = missing_tables(app.extensions["sqlalchemy_engine"], SHOP_TABLES)
    if missing:
        raise RuntimeError(f"Database is missing required tables: {', '.join(missing)}")

    s = open_session(app)
    rs = open_session(app, read=True) if use_replica and has_read_replica(app) else None
    try:
        repo = InactiveCustomerRepository(s, read_session=rs)
        yield InactiveCustomerService(repo, actor=app.config.get("AUDIT_ACTOR"))
    finally:
        if rs is not None:
            rs.close()
        s.close()


def _shop_id(value: int | None) -> int | None:
    return value or None


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------


def build_export_parser(config) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inactive-customers-export",
        description="Get emails of inactive customers.",
        epilog=f"By default, emails are saved to {config['EXPORT_DIR']}/",
    )
    parser.add_argument("--days", "-d", type=int, default=config["INACTIVE_DAYS_DEFAULT"], help="Number of days of inactivity")
    parser.add_argument("--shop", "-s", type=int, default=None, help="Shop ID (default: all shops)")
    parser.add_argument("--batch", "-b", type=int, default=config["EXPORT_BATCH_SIZE"], help="Batch size for memory optimization")
    parser.add_argument("--out-dir", default=config["EXPORT_DIR"], help="Output directory")
    parser.add_argument("--out-name", default=config["EXPORT_FILENAME"], help="Output filename (e.g. emails.csv)")
    parser.add_argument("--format", "-f", default="csv", choices=("csv", "json", "text", "txt"), help="Output format")
    parser.add_argument("--display", action="store_true", help="Display emails in console instead of saving to file")
    return parser


def run_export(app: Flask, args: argparse.Namespace) -> int:
    criteria = InactivityCriteria(inactive_days=args.days, shop_id=_shop_id(args.shop))

    print(f"Fetching inactive customers for {criteria.inactive_days} days...")
    with _service_scope(app, use_replica=True) as service:
        count = service.count_inactive_customers(criteria)
        print(f"Found {count} inactive customers.")
        if count == 0:
            print("No inactive customers found.")
            return EXIT_SUCCESS

        emails = service.export_emails(criteria, batch_size=args.batch)

    if args.display:
        print(render_for_console(emails, args.format))
    else:
        out_path = write_emails(emails, Path(args.out_dir) / args.out_name, args.format)
        print(f"Emails exported to: {out_path}")

    print(f"Total: {len(emails)} emails")
    return EXIT_SUCCESS


def export_main(argv: Sequence[str] | None = None, app: Flask | None = None) -> int:
    load_dotenv()
    try:
        config = app.config if app is not None else load_config()
    except RuntimeError as e:
        print(f"ERROR: {e}")
        return EXIT_FAILURE
    args = build_export_parser(config).parse_args(argv)
    _setup_logging(config)

    errors = validate_export_args(args)
    if errors:
        for msg in errors:
            print(f"ERROR: {msg}")
        return EXIT_FAILURE

    owns_app = app is None
    try:
        if owns_app:
            app = create_app()
        return run_export(app, args)
    except Exception as e:
        logger.debug("Export failed", exc_info=True)
        print(f"ERROR: {e}")
        return EXIT_FAILURE
    finally:
        if owns_app and app is not None:
            dispose_engines(app)


# ---------------------------------------------------------------------------
# remove
# ---------------------------------------------------------------------------


def build_remove_parser(config) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inactive-customers-remove",
        description="Remove inactive customers (GDPR compliance). Customers with orders are skipped.",
    )
    parser.add_argument("--days", "-d", type=int, default=config["INACTIVE_DAYS_DEFAULT"], help="Number of days of inactivity")
    parser.add_argument("--shop", "-s", type=int, default=None, help="Shop ID (default: all shops)")
    parser.add_argument("--batch", "-b", type=int, default=config["REMOVE_BATCH_SIZE"], help="Batch size for memory optimization")
    parser.add_argument("--dry-run", action="store_true", help="Simulate deletion without actually deleting")
    parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation prompt")
    return parser


def _confirm(count: int) -> bool:
    try:
        response = input(f"Are you sure you want to delete {count} inactive customers? (yes/no) [no]: ")
    except EOFError:
        return False
    return response.strip().lower() in ("y", "yes")


def run_remove(app: Flask, args: argparse.Namespace) -> int:
    criteria = InactivityCriteria(inactive_days=args.days, shop_id=_shop_id(args.shop))

    print(f"Checking inactive customers for {criteria.inactive_days} days...")
    # Live runs page against the primary: a lagging replica would keep
    # handing back customers that were just deleted.
    with _service_scope(app, use_replica=args.dry_run) as service:
        count = service.count_inactive_customers(criteria)
        if count == 0:
            print("No inactive customers found.")
            return EXIT_SUCCESS

        print(f"Found {count} inactive customers to delete.")
        if args.dry_run:
            print("DRY RUN MODE: No customers will be actually deleted.")

        if not args.force and not args.dry_run:
            if not _confirm(count):
                print("Operation cancelled.")
                return EXIT_SUCCESS

        print("Processing deletion...")
        result = service.remove_inactive_customers(
            criteria,
            batch_size=args.batch,
            dry_run=args.dry_run,
            on_progress=ProgressPrinter(),
        )

    if args.dry_run:
        print(f"Would delete: {result.deleted} customers")
    else:
        print(f"Deleted: {result.deleted} customers")

    if result.skipped > 0:
        print(f"Skipped: {result.skipped} customers (have orders)")

    if result.errors:
        print(f"Errors: {len(result.errors)}")
        for msg in result.errors:
            print(f"  - {msg}")

    print("Operation completed successfully.")
    return EXIT_SUCCESS


def remove_main(argv: Sequence[str] | None = None, app: Flask | None = None) -> int:
    load_dotenv()
    try:
        config = app.config if app is not None else load_config()
    except RuntimeError as e:
        print(f"ERROR: {e}")
        return EXIT_FAILURE
    args = build_remove_parser(config).parse_args(argv)
    _setup_logging(config)

    errors = validate_remove_args(args, config["MIN_REMOVAL_DAYS"])
    if errors:
        for msg in errors:
            print(f"ERROR: {msg}")
        if below_safety_threshold(args, config["MIN_REMOVAL_DAYS"]):
            print("Use --dry-run to test with fewer days.")
        return EXIT_FAILURE

    owns_app = app is None
    try:
        if owns_app:
            app = create_app()
        return run_remove(app, args)
    except Exception as e:
        logger.debug("Removal failed", exc_info=True)
        print(f"ERROR: {e}")
        return EXIT_FAILURE
    finally:
        if owns_app and app is not None:
            dispose_engines(app)
