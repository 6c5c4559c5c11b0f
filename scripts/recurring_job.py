#!/usr/bin/env python
"""
Recurring Transaction Job

Runs on a schedule (e.g. hourly from cron) to:
1. Post every recurring deposit/withdrawal occurrence that has fallen due
2. Optionally email reminders for recurring payments due soon

Usage:
    python scripts/recurring_job.py [--now "YYYY-MM-DD HH:MM"] [--reminders]

Options:
    --now: Treat this instant as the current time (default: now, UTC)
    --reminders: Also send payment reminders
    --days-ahead: Reminder window in days (default: PAYMENT_REMINDER_DAYS or 3)
"""
import sys
from pathlib import Path
from datetime import datetime
from argparse import ArgumentParser

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fintrack.db.core import get_db
from fintrack.logging_config import setup_logging, get_logger
from fintrack.services.recurring import process_recurring_transactions, send_payment_reminders
from fintrack.services.notifications import LogNotifier

logger = get_logger("jobs.recurring")


def run_recurring_job(now: datetime, reminders: bool = False, days_ahead: int = None):
    logger.info("=" * 60)
    logger.info(f"Running Recurring Transaction Job - {now}")
    logger.info("=" * 60)

    db = next(get_db())

    try:
        created = process_recurring_transactions(db, now=now)
        logger.info(f"Posted {len(created)} recurring occurrence(s)")

        if reminders:
            sent = send_payment_reminders(db, LogNotifier(), now=now, days_ahead=days_ahead)
            logger.info(f"Sent {sent} payment reminder(s)")

    except Exception as e:
        logger.error(f"FATAL ERROR: {str(e)}")
        raise
    finally:
        db.close()


def main():
    parser = ArgumentParser(description="Post due recurring transactions")

    parser.add_argument(
        '--now',
        type=str,
        help='Current time as "YYYY-MM-DD HH:MM", defaults to now (UTC)'
    )

    parser.add_argument(
        '--reminders',
        action='store_true',
        help='Also send reminders for upcoming recurring payments'
    )

    parser.add_argument(
        '--days-ahead',
        type=int,
        help='Reminder window in days'
    )

    args = parser.parse_args()
    setup_logging(job_name="recurring")

    if args.now:
        try:
            now = datetime.strptime(args.now, '%Y-%m-%d %H:%M')
        except ValueError:
            logger.error(f"Invalid time format: {args.now}. Use YYYY-MM-DD HH:MM")
            sys.exit(1)
    else:
        now = datetime.utcnow()

    run_recurring_job(now=now, reminders=args.reminders, days_ahead=args.days_ahead)


if __name__ == "__main__":
    main()
