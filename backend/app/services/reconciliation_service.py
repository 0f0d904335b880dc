"""
Reconciliation Service — applies asynchronous settlement events from the
payment gateway (success, refund, expiry) to local records.

Request handlers never mark anything paid or refunded themselves; those
transitions only happen here.
"""
import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.payment import (
    Booking, BookingStatus, PaymentIntent, PaymentIntentStatus, WebhookEvent,
)
from app.models.payment_plan import PaymentStage, PaymentStageStatus
from app.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class SettlementKind:
    PAYMENT_SUCCEEDED = "PaymentSucceeded"
    PAYMENT_REFUNDED = "PaymentRefunded"
    PAYMENT_EXPIRED = "PaymentExpired"


class SettlementEvent(BaseModel):
    kind: str
    reference_id: str
    event_id: Optional[str] = None
    gateway_payment_intent_id: Optional[str] = None   # learned on success, needed for refunds
    booking_id: Optional[str] = None                   # set for single-room refunds
    amount: Optional[float] = None                     # refunded amount, major units


class ReconciliationService:

    @staticmethod
    def apply(db: Session, event: SettlementEvent, now: Optional[datetime] = None) -> str:
        """Apply one event. Returns a short outcome label for logging/tests."""
        now = now or datetime.utcnow()

        if event.event_id and db.get(WebhookEvent, event.event_id):
            logger.info("Settlement event %s already processed", event.event_id)
            return "duplicate"

        outcome = ReconciliationService._dispatch(db, event, now)

        if event.event_id:
            db.add(WebhookEvent(
                id=event.event_id, kind=event.kind, reference_id=event.reference_id, processed_at=now,
            ))
        db.commit()
        logger.info("Settlement %s for %s: %s", event.kind, event.reference_id, outcome)
        return outcome

    @staticmethod
    def _dispatch(db: Session, event: SettlementEvent, now: datetime) -> str:
        ref = event.reference_id

        stage = (
            db.query(PaymentStage)
            .filter(or_(PaymentStage.stripe_payment_intent_id == ref, PaymentStage.id == ref))
            .first()
        )
        if stage is not None:
            return ReconciliationService._apply_to_stage(db, stage, event, now)

        intent = (
            db.query(PaymentIntent)
            .filter(or_(
                PaymentIntent.second_payment_link_id == ref,
                PaymentIntent.second_payment_intent_id == ref,
            ))
            .first()
        )
        if intent is not None:
            return ReconciliationService._apply_to_second_payment(db, intent, event)

        intent = (
            db.query(PaymentIntent)
            .filter(or_(
                PaymentIntent.id == ref,
                PaymentIntent.stripe_payment_intent_id == ref,
                PaymentIntent.stripe_payment_link_id == ref,
            ))
            .first()
        )
        if intent is not None:
            return ReconciliationService._apply_to_intent(db, intent, event, now)

        logger.warning("No local record matches settlement reference %s", ref)
        return "unmatched"

    @staticmethod
    def _apply_to_stage(db: Session, stage: PaymentStage, event: SettlementEvent, now: datetime) -> str:
        if event.kind == SettlementKind.PAYMENT_SUCCEEDED:
            if stage.status == PaymentStageStatus.PAID:
                return "stage_already_paid"
            stage.status = PaymentStageStatus.PAID
            stage.paid_at = now
            outcome = "stage_paid"
        elif event.kind == SettlementKind.PAYMENT_EXPIRED:
            if stage.status != PaymentStageStatus.PROCESSING:
                return "stage_unchanged"
            # Abandoned checkout: the stage can be paid again
            stage.status = PaymentStageStatus.PENDING
            stage.stripe_payment_intent_id = None
            stage.stripe_payment_url = None
            outcome = "stage_reopened"
        else:
            logger.warning("Refund events are not tracked on payment stages (%s)", stage.id)
            return "stage_unchanged"

        AuditService.log(
            db, "PAYMENT_STAGE", stage.id, "SETTLEMENT_APPLIED",
            payload={"kind": event.kind, "event_id": event.event_id, "outcome": outcome},
            commit=False,
        )
        return outcome

    @staticmethod
    def _apply_to_second_payment(db: Session, intent: PaymentIntent, event: SettlementEvent) -> str:
        status = intent.second_payment_status
        if event.kind == SettlementKind.PAYMENT_SUCCEEDED:
            if event.gateway_payment_intent_id and not intent.second_payment_intent_id:
                intent.second_payment_intent_id = event.gateway_payment_intent_id
            if status == PaymentIntentStatus.SUCCEEDED:
                return "second_already_paid"
            intent.second_payment_status = PaymentIntentStatus.SUCCEEDED
            intent.prepaid_amount = intent.total_amount
            intent.remaining_amount = 0.0
            outcome = "second_paid"
        elif event.kind == SettlementKind.PAYMENT_EXPIRED:
            if status in PaymentIntentStatus.TERMINAL:
                return "second_unchanged"
            intent.second_payment_status = PaymentIntentStatus.EXPIRED
            outcome = "second_expired"
        elif event.booking_id:
            return ReconciliationService._apply_refund(db, intent, event)
        else:
            # The second charge alone was refunded; the first one still stands
            if status == PaymentIntentStatus.REFUNDED:
                return "second_already_refunded"
            intent.second_payment_status = PaymentIntentStatus.REFUNDED
            outcome = "second_refunded"

        AuditService.log(
            db, "PAYMENT_INTENT", intent.id, "SETTLEMENT_APPLIED",
            payload={"kind": event.kind, "event_id": event.event_id, "outcome": outcome},
            commit=False,
        )
        return outcome

    @staticmethod
    def _apply_to_intent(db: Session, intent: PaymentIntent, event: SettlementEvent, now: datetime) -> str:
        if event.kind == SettlementKind.PAYMENT_SUCCEEDED:
            if event.gateway_payment_intent_id and not intent.stripe_payment_intent_id:
                intent.stripe_payment_intent_id = event.gateway_payment_intent_id
            if intent.status == PaymentIntentStatus.SUCCEEDED:
                return "intent_already_paid"
            intent.status = PaymentIntentStatus.SUCCEEDED
            for booking in intent.bookings:
                if booking.status == BookingStatus.PENDING:
                    booking.status = BookingStatus.CONFIRMED
            outcome = "intent_paid"
        elif event.kind == SettlementKind.PAYMENT_EXPIRED:
            if intent.status in PaymentIntentStatus.TERMINAL:
                return "intent_unchanged"
            intent.status = PaymentIntentStatus.EXPIRED
            outcome = "intent_expired"
        else:
            return ReconciliationService._apply_refund(db, intent, event)

        AuditService.log(
            db, "PAYMENT_INTENT", intent.id, "SETTLEMENT_APPLIED",
            payload={"kind": event.kind, "event_id": event.event_id, "outcome": outcome},
            commit=False,
        )
        return outcome

    @staticmethod
    def _apply_refund(db: Session, intent: PaymentIntent, event: SettlementEvent) -> str:
        """Single-room refunds touch one booking; a full refund touches them all."""
        if event.booking_id:
            booking = (
                db.query(Booking)
                .filter(Booking.id == event.booking_id, Booking.payment_intent_id == intent.id)
                .first()
            )
            if booking is None:
                logger.warning("Refund for unknown booking %s on %s", event.booking_id, intent.id)
                return "unmatched"
            if booking.status == BookingStatus.REFUNDED:
                return "booking_already_refunded"
            targets = [booking]
        else:
            targets = [b for b in intent.bookings if b.status != BookingStatus.REFUNDED]

        for booking in targets:
            booking.status = BookingStatus.REFUNDED
            booking.refund_amount = (
                event.amount if event.booking_id and event.amount is not None else booking.total_amount
            )
            AuditService.log(
                db, "BOOKING", booking.id, "SETTLEMENT_APPLIED",
                payload={"kind": event.kind, "event_id": event.event_id, "amount": booking.refund_amount},
                commit=False,
            )

        if all(b.status == BookingStatus.REFUNDED for b in intent.bookings):
            intent.status = PaymentIntentStatus.REFUNDED
            AuditService.log(
                db, "PAYMENT_INTENT", intent.id, "SETTLEMENT_APPLIED",
                payload={"kind": event.kind, "event_id": event.event_id, "outcome": "intent_refunded"},
                commit=False,
            )
            return "intent_refunded"
        return "booking_refunded"

    # ─── Stripe event mapping ───────────────────────────────────────
    @staticmethod
    def from_stripe_event(event: dict) -> Optional[SettlementEvent]:
        """Translate a verified Stripe webhook payload, or None when it carries no settlement."""
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}
        metadata = obj.get("metadata") or {}
        event_id = event.get("id")

        if event_type == "checkout.session.completed":
            if obj.get("payment_status") not in ("paid", "no_payment_required"):
                return None
            if metadata.get("paymentStageId"):
                reference = metadata["paymentStageId"]
            elif obj.get("payment_link"):
                reference = obj["payment_link"]
            elif metadata.get("paymentIntentId"):
                reference = metadata["paymentIntentId"]
            else:
                return None
            return SettlementEvent(
                kind=SettlementKind.PAYMENT_SUCCEEDED,
                reference_id=reference,
                event_id=event_id,
                gateway_payment_intent_id=obj.get("payment_intent"),
            )

        if event_type == "checkout.session.expired":
            # Payment links open a new session per visit; only stage sessions map 1:1
            if not metadata.get("paymentStageId"):
                return None
            return SettlementEvent(
                kind=SettlementKind.PAYMENT_EXPIRED, reference_id=obj["id"], event_id=event_id,
            )

        if event_type == "charge.refunded":
            if not obj.get("refunded") or not obj.get("payment_intent"):
                return None
            return SettlementEvent(
                kind=SettlementKind.PAYMENT_REFUNDED, reference_id=obj["payment_intent"], event_id=event_id,
            )

        if event_type in ("refund.created", "refund.updated"):
            if obj.get("status") != "succeeded" or not metadata.get("bookingId"):
                return None
            if not obj.get("payment_intent"):
                logger.warning("Refund %s carries no payment intent", obj.get("id"))
                return None
            return SettlementEvent(
                kind=SettlementKind.PAYMENT_REFUNDED,
                reference_id=obj["payment_intent"],
                event_id=event_id,
                booking_id=metadata["bookingId"],
                amount=(obj.get("amount") or 0) / 100,
            )

        return None
