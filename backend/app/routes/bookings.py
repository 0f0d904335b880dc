"""
Booking Routes — per-room refund information and partial refunds.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.schemas import BookingRefundInfo, PartialRefundRequest, PartialRefundResponse
from app.services.partial_refund_service import PartialRefundService
from app.services.stripe_gateway import StripeGateway, get_gateway
from app.utils.responses import respond

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("/{booking_id}/refund-info")
def get_refund_info(booking_id: str, db: Session = Depends(get_db)):
    booking = PartialRefundService.get_booking_refund_info(db, booking_id)
    return respond("Booking refund information retrieved", BookingRefundInfo.from_booking(booking))


@router.post("/{booking_id}/partial-refund")
def partial_refund(
    booking_id: str,
    payload: Optional[PartialRefundRequest] = None,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
):
    """Refund one room. The booking flips to REFUNDED once Stripe confirms."""
    payload = payload or PartialRefundRequest()
    result = PartialRefundService.process_partial_refund(
        db, gateway, booking_id, reason=payload.reason, admin_user_id=payload.admin_user_id
    )
    return respond(result["message"], PartialRefundResponse(**result))
