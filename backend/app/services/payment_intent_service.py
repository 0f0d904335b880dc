"""
Payment Intent Service — status checks and the second ("split") payment link.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import AppError, ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.models.payment import PaymentIntent, PaymentIntentStatus, PaymentStructure
from app.services.audit_service import AuditService
from app.services.email_service import EmailService
from app.services.payment_reminder_service import PaymentReminderService
from app.services.stripe_gateway import StripeGateway
from app.utils.formatting import to_minor_units

logger = logging.getLogger(__name__)

TERMINAL_MESSAGES = {
    PaymentIntentStatus.EXPIRED: "Payment link is expired",
    PaymentIntentStatus.SUCCEEDED: "Payment has already been completed",
    PaymentIntentStatus.REFUNDED: "Payment has been refunded",
    PaymentIntentStatus.CANCELLED: "Payment has been cancelled",
}


def status_check_url(intent_id: str, second: bool = False) -> str:
    """Public URL of the check-status route that redirects to the live link."""
    settings = get_settings()
    route = "check-second-payment-status" if second else "check-status"
    return f"{settings.API_BASE_URL.rstrip('/')}{settings.API_PREFIX}/payment-intent/{intent_id}/{route}"


class PaymentIntentService:
    """Primary and second payment link lifecycle for booking payment intents."""

    @staticmethod
    def get(db: Session, intent_id: str, missing_status: int = 404) -> PaymentIntent:
        if not intent_id:
            raise ValidationError("Payment Intent id missing")
        intent = db.query(PaymentIntent).filter(PaymentIntent.id == intent_id).first()
        if not intent:
            raise NotFoundError("Payment Intent not found", status_code=missing_status)
        return intent

    # ─── Primary link ───────────────────────────────────────────────
    @staticmethod
    def check_status(db: Session, gateway: StripeGateway, intent_id: str, now: Optional[datetime] = None) -> str:
        """Return the live payment-link URL, or raise if the link can't be used.

        An intent past its expiry with a non-terminal status is flipped to
        EXPIRED and persisted before the error is raised.
        """
        now = now or datetime.utcnow()
        intent = PaymentIntentService.get(db, intent_id, missing_status=400)

        if (
            intent.expires_at
            and intent.expires_at < now
            and intent.status not in PaymentIntentStatus.TERMINAL
        ):
            intent.status = PaymentIntentStatus.EXPIRED
            AuditService.log(
                db, "PAYMENT_INTENT", intent.id, "STATUS_EXPIRED",
                payload={"expires_at": intent.expires_at.isoformat()},
                commit=False,
            )
            db.commit()
            logger.info("Payment intent %s expired at %s", intent.id, intent.expires_at)

        if intent.status in PaymentIntentStatus.TERMINAL:
            raise InvalidStateError(TERMINAL_MESSAGES[intent.status])

        if not intent.stripe_payment_link_id:
            raise InvalidStateError("No payment link found for this payment intent")

        return gateway.retrieve_payment_link_url(intent.stripe_payment_link_id)

    # ─── Second link ────────────────────────────────────────────────
    @staticmethod
    def _second_link_is_live(intent: PaymentIntent, now: datetime) -> bool:
        return bool(
            intent.second_payment_link_id
            and intent.second_payment_status not in PaymentIntentStatus.TERMINAL
            and intent.second_payment_expires_at
            and intent.second_payment_expires_at > now
        )

    @staticmethod
    def create_second_payment(
        db: Session,
        gateway: StripeGateway,
        email_service: EmailService,
        intent_id: str,
        expires_in_hours: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """Create (or return the still-live) payment link for the remaining amount.

        The link id is written only if nobody replaced the link we observed,
        so concurrent retries cannot overwrite each other.
        """
        settings = get_settings()
        now = now or datetime.utcnow()
        intent = PaymentIntentService.get(db, intent_id)

        if intent.payment_structure != PaymentStructure.SPLIT_PAYMENT:
            raise InvalidStateError("Second payment is only available for split payments")
        if not intent.remaining_amount or intent.remaining_amount <= 0:
            raise InvalidStateError("No remaining amount to collect for this payment intent")

        if expires_in_hours is None:
            expires_in_hours = settings.SECOND_PAYMENT_DEFAULT_EXPIRY_HOURS
        if expires_in_hours <= 0:
            raise ValidationError("expiresInHours must be a positive number of hours")

        if PaymentIntentService._second_link_is_live(intent, now):
            logger.info("Reusing live second payment link %s for %s", intent.second_payment_link_id, intent.id)
            return PaymentIntentService._second_payment_view(intent)

        observed_link_id = intent.second_payment_link_id
        metadata = {"paymentIntentId": intent.id, "paymentType": "second_payment"}

        price_id = gateway.create_price(
            name=f"Remaining balance - {intent.confirmation_number}",
            description="Second installment of your booking",
            unit_amount=to_minor_units(intent.remaining_amount),
            currency=intent.currency,
            metadata=metadata,
        )
        link = gateway.create_payment_link(
            price_id,
            metadata=metadata,
            redirect_url=status_check_url(intent.id, second=True),
        )

        expires_at = now + timedelta(hours=expires_in_hours)
        link_guard = (
            PaymentIntent.second_payment_link_id.is_(None)
            if observed_link_id is None
            else PaymentIntent.second_payment_link_id == observed_link_id
        )
        result = db.execute(
            update(PaymentIntent)
            .where(PaymentIntent.id == intent.id, link_guard)
            .values(
                second_payment_link_id=link.id,
                second_payment_url=link.url,
                second_payment_status=PaymentIntentStatus.CREATED,
                second_payment_expires_at=expires_at,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            logger.warning("Second payment link for %s changed concurrently, discarding %s", intent.id, link.id)
            gateway.deactivate_payment_link(link.id)
            raise ConflictError("A second payment link was created concurrently, please retry")

        AuditService.log(
            db, "PAYMENT_INTENT", intent.id, "SECOND_LINK_CREATED",
            payload={
                "payment_link_id": link.id,
                "amount": intent.remaining_amount,
                "expires_at": expires_at.isoformat(),
            },
            commit=False,
        )
        db.commit()
        db.refresh(intent)
        logger.info("Created second payment link %s for %s", link.id, intent.id)

        try:
            PaymentReminderService.send_second_payment_created_email(
                db, email_service, intent, status_check_url(intent.id, second=True)
            )
        except AppError as e:
            # The link stays valid; the customer can be re-notified via send-reminder.
            logger.error("Second payment email for %s failed: %s", intent.id, e.message)

        return PaymentIntentService._second_payment_view(intent)

    @staticmethod
    def _second_payment_view(intent: PaymentIntent) -> dict:
        return {
            "paymentLinkId": intent.second_payment_link_id,
            "paymentUrl": intent.second_payment_url,
            "expiresAt": intent.second_payment_expires_at,
            "status": intent.second_payment_status,
        }

    @staticmethod
    def check_second_payment_status(
        db: Session, gateway: StripeGateway, intent_id: str, now: Optional[datetime] = None
    ) -> str:
        """Same contract as ``check_status`` for the second installment."""
        now = now or datetime.utcnow()
        intent = PaymentIntentService.get(db, intent_id, missing_status=400)

        if not intent.second_payment_link_id:
            raise InvalidStateError("No second payment link found for this payment intent")

        if (
            intent.second_payment_expires_at
            and intent.second_payment_expires_at < now
            and intent.second_payment_status not in PaymentIntentStatus.TERMINAL
        ):
            intent.second_payment_status = PaymentIntentStatus.EXPIRED
            AuditService.log(
                db, "PAYMENT_INTENT", intent.id, "SECOND_LINK_EXPIRED",
                payload={"expires_at": intent.second_payment_expires_at.isoformat()},
                commit=False,
            )
            db.commit()
            logger.info("Second payment link of %s expired", intent.id)

        if intent.second_payment_status in PaymentIntentStatus.TERMINAL:
            raise InvalidStateError(TERMINAL_MESSAGES[intent.second_payment_status])

        return gateway.retrieve_payment_link_url(intent.second_payment_link_id)

    @staticmethod
    def send_second_payment_reminder(
        db: Session, email_service: EmailService, intent_id: str, now: Optional[datetime] = None
    ) -> None:
        """Re-send the second payment email for a still-usable link."""
        now = now or datetime.utcnow()
        intent = PaymentIntentService.get(db, intent_id)
        if not PaymentIntentService._second_link_is_live(intent, now):
            raise InvalidStateError("No active second payment link for this payment intent")

        PaymentReminderService.send_second_payment_created_email(
            db, email_service, intent, status_check_url(intent.id, second=True)
        )
