"""
Partial Refund Service — refunds one room of a (possibly multi-room) booking.

The refund request is only an acknowledgement: the booking is marked
REFUNDED when the gateway's refund event is reconciled.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from app.errors import InvalidStateError, NotFoundError, ValidationError
from app.models.payment import Booking, BookingStatus
from app.services.audit_service import AuditService
from app.services.stripe_gateway import StripeGateway
from app.utils.formatting import format_currency, to_minor_units

logger = logging.getLogger(__name__)


class PartialRefundService:

    @staticmethod
    def _booking(db: Session, booking_id: str) -> Booking:
        booking = (
            db.query(Booking)
            .options(joinedload(Booking.payment_intent))
            .filter(Booking.id == booking_id)
            .first()
        )
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    @staticmethod
    def process_partial_refund(
        db: Session,
        gateway: StripeGateway,
        booking_id: str,
        reason: Optional[str] = None,
        admin_user_id: Optional[str] = None,
    ) -> dict:
        """Refund a booking's full total against its captured payment."""
        booking = PartialRefundService._booking(db, booking_id)

        if booking.status == BookingStatus.REFUNDED:
            raise InvalidStateError(f"Booking {booking_id} is already refunded")
        if not booking.payment_intent:
            raise InvalidStateError(f"No payment intent found for booking {booking_id}")
        if not booking.payment_intent.stripe_payment_intent_id:
            raise InvalidStateError(f"No Stripe payment intent ID found for booking {booking_id}")
        if not booking.total_amount or booking.total_amount <= 0:
            raise ValidationError(f"No total amount found for booking {booking_id}")

        refund = gateway.create_refund(
            booking.payment_intent.stripe_payment_intent_id,
            amount=to_minor_units(booking.total_amount),
            metadata={
                "bookingId": booking.id,
                "roomName": booking.room_name,
                "refundReason": reason or "Partial booking cancellation",
                "adminUserId": admin_user_id or "system",
                "refundType": "partial_room_refund",
            },
            idempotency_key=f"partial-refund-{booking.id}",
        )

        AuditService.log(
            db, "BOOKING", booking.id, "REFUND_INITIATED",
            payload={"refund_id": refund.id, "amount": booking.total_amount, "reason": reason},
            actor=admin_user_id,
        )
        amount_text = format_currency(booking.total_amount, booking.payment_intent.currency)
        logger.info("Partial refund %s initiated for booking %s: %s", refund.id, booking.id, amount_text)

        return {
            "success": True,
            "refund_id": refund.id,
            "booking_id": booking.id,
            "refund_amount": booking.total_amount,
            "message": f"Partial refund of {amount_text} initiated for {booking.room_name}",
        }

    @staticmethod
    def get_booking_refund_info(db: Session, booking_id: str) -> Booking:
        return PartialRefundService._booking(db, booking_id)

    @staticmethod
    def get_payment_intent_bookings(db: Session, payment_intent_id: str) -> list[Booking]:
        """All bookings paid by one payment intent, oldest first."""
        return (
            db.query(Booking)
            .filter(Booking.payment_intent_id == payment_intent_id)
            .order_by(Booking.created_at.asc())
            .all()
        )
