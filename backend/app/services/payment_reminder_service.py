"""
Payment Reminder Service — scheduled reminder emails for wedding payment
stages and split booking payments.

Nothing here schedules itself: an external cron calls ``process_all`` through
``run_reminders.py`` or the admin endpoint.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Dict

from sqlalchemy.orm import Session, joinedload

from app.config import get_settings
from app.errors import AppError, InvalidStateError
from app.models.customer import WeddingProposal
from app.models.payment import PaymentIntent, PaymentIntentStatus, PaymentStructure
from app.models.payment_plan import (
    PaymentPlan, PaymentStage, PaymentStageStatus, PaymentReminder, ReminderType,
)
from app.services.email_service import EmailService
from app.utils.formatting import format_currency, format_long_date

logger = logging.getLogger(__name__)


def _stage_query(db: Session):
    return db.query(PaymentStage).options(
        joinedload(PaymentStage.payment_plan)
        .joinedload(PaymentPlan.proposal)
        .joinedload(WeddingProposal.customer)
    )


class PaymentReminderService:

    # ─── Wedding payment stages ─────────────────────────────────────
    @staticmethod
    def get_upcoming_stages(db: Session, now: datetime, days_threshold: int) -> list[PaymentStage]:
        """PENDING stages due after now and no later than now + threshold."""
        return (
            _stage_query(db)
            .filter(
                PaymentStage.status == PaymentStageStatus.PENDING,
                PaymentStage.due_date <= now + timedelta(days=days_threshold),
                PaymentStage.due_date > now,
            )
            .order_by(PaymentStage.due_date.asc())
            .all()
        )

    @staticmethod
    def get_overdue_stages(db: Session, now: datetime) -> list[PaymentStage]:
        return (
            _stage_query(db)
            .filter(
                PaymentStage.status.in_([PaymentStageStatus.PENDING, PaymentStageStatus.PROCESSING]),
                PaymentStage.due_date < now,
            )
            .order_by(PaymentStage.due_date.asc())
            .all()
        )

    @staticmethod
    def _recently_reminded(db: Session, stage_id: str, reminder_type: str, since: datetime) -> bool:
        return (
            db.query(PaymentReminder)
            .filter(
                PaymentReminder.payment_stage_id == stage_id,
                PaymentReminder.type == reminder_type,
                PaymentReminder.sent_at > since,
            )
            .first()
            is not None
        )

    @staticmethod
    def _send_stage_reminders(
        db: Session,
        email_service: EmailService,
        stages: list[PaymentStage],
        reminder_type: str,
        now: datetime,
    ) -> int:
        settings = get_settings()
        cooldown_start = now - timedelta(hours=settings.REMINDER_COOLDOWN_HOURS)
        template_type = (
            "PAYMENT_REMINDER_UPCOMING" if reminder_type == ReminderType.UPCOMING
            else "PAYMENT_REMINDER_OVERDUE"
        )
        sent = 0

        for stage in stages:
            proposal = stage.payment_plan.proposal
            if not proposal or not proposal.customer:
                continue
            if PaymentReminderService._recently_reminded(db, stage.id, reminder_type, cooldown_start):
                logger.debug("Skipping %s reminder for stage %s (sent recently)", reminder_type, stage.id)
                continue

            customer = proposal.customer
            data = {
                "customerName": customer.guest_first_name,
                "proposalName": proposal.name,
                "paymentDescription": stage.description,
                "amount": format_currency(stage.amount, stage.payment_plan.currency),
                "dueDate": format_long_date(stage.due_date),
            }
            if reminder_type == ReminderType.UPCOMING:
                data["paymentLink"] = f"{settings.FRONTEND_URL.rstrip('/')}/payment/{stage.id}"
            else:
                data["daysOverdue"] = (now - stage.due_date).days
                data["paymentLink"] = stage.stripe_payment_url

            try:
                email_service.send_email(db, customer.guest_email, customer.full_name, template_type, data)
            except AppError as e:
                logger.error("%s reminder for stage %s failed: %s", reminder_type, stage.id, e.message)
                continue

            db.add(PaymentReminder(payment_stage_id=stage.id, type=reminder_type, sent_at=now))
            db.commit()
            sent += 1

        return sent

    @staticmethod
    def send_upcoming_payment_reminders(
        db: Session, email_service: EmailService, now: Optional[datetime] = None
    ) -> int:
        now = now or datetime.utcnow()
        stages = PaymentReminderService.get_upcoming_stages(db, now, get_settings().REMINDER_UPCOMING_DAYS)
        sent = PaymentReminderService._send_stage_reminders(db, email_service, stages, ReminderType.UPCOMING, now)
        logger.info("Sent %d upcoming payment reminders", sent)
        return sent

    @staticmethod
    def send_overdue_payment_reminders(
        db: Session, email_service: EmailService, now: Optional[datetime] = None
    ) -> int:
        now = now or datetime.utcnow()
        stages = PaymentReminderService.get_overdue_stages(db, now)
        sent = PaymentReminderService._send_stage_reminders(db, email_service, stages, ReminderType.OVERDUE, now)
        logger.info("Sent %d overdue payment reminders", sent)
        return sent

    # ─── Split booking payments ─────────────────────────────────────
    @staticmethod
    def _split_payment_query(db: Session):
        return db.query(PaymentIntent).filter(
            PaymentIntent.payment_structure == PaymentStructure.SPLIT_PAYMENT,
            PaymentIntent.remaining_amount > 0,
            PaymentIntent.status == PaymentIntentStatus.SUCCEEDED,
            PaymentIntent.remaining_due_date.isnot(None),
        )

    @staticmethod
    def _booking_template_data(intent: PaymentIntent, now: datetime, overdue: bool) -> Optional[dict]:
        customer = intent.customer
        items = intent.booking_items
        if not customer.get("email") or not items:
            return None

        booking = items[0]   # primary room
        settings = get_settings()
        data = {
            "customerName": customer.get("firstName", ""),
            "confirmationNumber": intent.confirmation_number,
            "roomName": (booking.get("roomDetails") or {}).get("name") or "Your Room",
            "checkInDate": format_long_date(booking.get("checkIn")),
            "checkOutDate": format_long_date(booking.get("checkOut")),
            "remainingAmount": format_currency(intent.remaining_amount, intent.currency),
            "paymentLink": f"{settings.FRONTEND_URL.rstrip('/')}/payment/{intent.id}/remaining",
        }
        if overdue:
            data["originalDueDate"] = format_long_date(intent.remaining_due_date)
            data["daysOverdue"] = (now - intent.remaining_due_date).days
        else:
            data["dueDate"] = format_long_date(intent.remaining_due_date)
            data["daysUntilDue"] = (intent.remaining_due_date - now).days
        return data

    @staticmethod
    def _send_booking_notices(
        db: Session, email_service: EmailService, intents: list[PaymentIntent], now: datetime, overdue: bool
    ) -> int:
        template_type = "BOOKING_PAYMENT_OVERDUE" if overdue else "BOOKING_PAYMENT_REMINDER"
        sent = 0
        for intent in intents:
            data = PaymentReminderService._booking_template_data(intent, now, overdue)
            if data is None:
                continue
            customer = intent.customer
            try:
                email_service.send_email(
                    db, customer["email"],
                    f"{customer.get('firstName', '')} {customer.get('lastName', '')}".strip(),
                    template_type, data,
                )
            except AppError as e:
                logger.error("%s for payment intent %s failed: %s", template_type, intent.id, e.message)
                continue
            sent += 1
        return sent

    @staticmethod
    def send_booking_payment_reminders(
        db: Session, email_service: EmailService, now: Optional[datetime] = None
    ) -> int:
        now = now or datetime.utcnow()
        threshold = now + timedelta(days=get_settings().REMINDER_UPCOMING_DAYS)
        intents = (
            PaymentReminderService._split_payment_query(db)
            .filter(PaymentIntent.remaining_due_date <= threshold, PaymentIntent.remaining_due_date > now)
            .all()
        )
        sent = PaymentReminderService._send_booking_notices(db, email_service, intents, now, overdue=False)
        logger.info("Sent %d booking payment reminders", sent)
        return sent

    @staticmethod
    def send_booking_overdue_notices(
        db: Session, email_service: EmailService, now: Optional[datetime] = None
    ) -> int:
        now = now or datetime.utcnow()
        intents = (
            PaymentReminderService._split_payment_query(db)
            .filter(PaymentIntent.remaining_due_date < now)
            .all()
        )
        sent = PaymentReminderService._send_booking_notices(db, email_service, intents, now, overdue=True)
        logger.info("Sent %d booking overdue notices", sent)
        return sent

    # ─── Second payment link ────────────────────────────────────────
    @staticmethod
    def send_second_payment_created_email(
        db: Session, email_service: EmailService, intent: PaymentIntent, payment_url: str
    ) -> bool:
        customer = intent.customer
        if not customer.get("email"):
            raise InvalidStateError("Payment intent has no customer email")

        if intent.bookings:
            confirmation_id = "BK-" + "-".join(sorted(b.id[-6:].upper() for b in intent.bookings))
        else:
            confirmation_id = intent.confirmation_number

        total = intent.total_amount or intent.amount or 0
        paid = intent.prepaid_amount if intent.prepaid_amount is not None else total - (intent.remaining_amount or 0)

        sent = email_service.send_email(
            db,
            customer["email"],
            f"{customer.get('firstName', '')} {customer.get('lastName', '')}".strip(),
            "SECOND_PAYMENT_CREATED",
            {
                "customerName": customer.get("firstName", ""),
                "confirmationId": confirmation_id,
                "paidAmount": format_currency(paid, intent.currency),
                "remainingAmount": format_currency(intent.remaining_amount, intent.currency),
                "totalAmount": format_currency(total, intent.currency),
                "paymentUrl": payment_url,
                "expiresAt": format_long_date(intent.second_payment_expires_at),
            },
        )
        logger.info("Second payment email for %s processed (delivered=%s)", intent.id, sent)
        return sent

    # ─── Cron entry point ───────────────────────────────────────────
    @staticmethod
    def process_all(db: Session, email_service: EmailService, now: Optional[datetime] = None) -> Dict[str, Optional[int]]:
        """Run every reminder job; a failing job is logged and reported as None."""
        now = now or datetime.utcnow()
        jobs = {
            "upcoming": PaymentReminderService.send_upcoming_payment_reminders,
            "overdue": PaymentReminderService.send_overdue_payment_reminders,
            "booking_upcoming": PaymentReminderService.send_booking_payment_reminders,
            "booking_overdue": PaymentReminderService.send_booking_overdue_notices,
        }
        logger.info("Starting payment reminder processing")
        results: Dict[str, Optional[int]] = {}
        for name, job in jobs.items():
            try:
                results[name] = job(db, email_service, now)
            except Exception:
                db.rollback()
                logger.exception("Payment reminder job %s failed", name)
                results[name] = None

        total = sum(v for v in results.values() if v)
        logger.info("Payment reminder processing complete, %d reminders sent", total)
        results["total"] = total
        return results
