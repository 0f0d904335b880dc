"""
Venue Payments — Payment Reminder Job
Meant to be run by cron (e.g. daily at 09:00) next to the API server.

Usage:
    python run_reminders.py
    python run_reminders.py --only overdue
"""
import argparse
import logging
import sys

from app.config import get_settings
from app.database import SessionLocal, init_db
from app.logging_config import configure_logging
from app.services.email_service import EmailService
from app.services.payment_reminder_service import PaymentReminderService
from app.services.template_engine import TemplateEngine

JOBS = {
    "upcoming": PaymentReminderService.send_upcoming_payment_reminders,
    "overdue": PaymentReminderService.send_overdue_payment_reminders,
    "booking-upcoming": PaymentReminderService.send_booking_payment_reminders,
    "booking-overdue": PaymentReminderService.send_booking_overdue_notices,
}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Send scheduled payment reminder emails")
    parser.add_argument("--only", choices=sorted(JOBS), help="Run a single reminder job")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)
    logger = logging.getLogger("run_reminders")

    init_db()
    email_service = EmailService(TemplateEngine(), settings)
    db = SessionLocal()
    try:
        if args.only:
            sent = JOBS[args.only](db, email_service)
            logger.info("Job %s sent %d reminders", args.only, sent)
            return 0
        results = PaymentReminderService.process_all(db, email_service)
    finally:
        db.close()

    failed = [name for name, count in results.items() if count is None]
    if failed:
        logger.error("Reminder jobs failed: %s", ", ".join(failed))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
