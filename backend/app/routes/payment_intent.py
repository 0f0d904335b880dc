"""
Payment Intent Routes — primary/second payment link status and the split
payment flow.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.schemas import BookingRefundInfo, SecondPaymentRequest, SecondPaymentResponse
from app.services.email_service import EmailService, get_email_service
from app.services.partial_refund_service import PartialRefundService
from app.services.payment_intent_service import PaymentIntentService
from app.services.stripe_gateway import StripeGateway, get_gateway
from app.utils.responses import respond

router = APIRouter(prefix="/payment-intent", tags=["Payment Intent"])


def _redirect_or_json(request: Request, url: str):
    """Browsers follow a 302; API clients asking for JSON get the URL back."""
    if "application/json" in request.headers.get("accept", ""):
        return respond("Redirect to payment link", {"redirect": True, "paymentUrl": url})
    return RedirectResponse(url=url, status_code=302)


@router.get("/{intent_id}/check-status")
def check_status(
    intent_id: str,
    request: Request,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
):
    """Redirect to the live payment link if the intent can still be paid."""
    url = PaymentIntentService.check_status(db, gateway, intent_id)
    return _redirect_or_json(request, url)


@router.post("/{intent_id}/create-second-payment")
def create_second_payment(
    intent_id: str,
    payload: Optional[SecondPaymentRequest] = None,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
    email_service: EmailService = Depends(get_email_service),
):
    """Create the payment link for a split booking's remaining amount."""
    result = PaymentIntentService.create_second_payment(
        db, gateway, email_service, intent_id, expires_in_hours=payload.expires_in_hours if payload else None,
    )
    return respond("Second payment link created successfully", SecondPaymentResponse(**result))


@router.get("/{intent_id}/check-second-payment-status")
def check_second_payment_status(
    intent_id: str,
    request: Request,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
):
    url = PaymentIntentService.check_second_payment_status(db, gateway, intent_id)
    return _redirect_or_json(request, url)


@router.post("/{intent_id}/send-reminder")
def send_reminder(
    intent_id: str,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Re-send the second payment email."""
    PaymentIntentService.send_second_payment_reminder(db, email_service, intent_id)
    return respond("Reminder sent successfully")


@router.get("/{intent_id}/bookings")
def list_bookings(intent_id: str, db: Session = Depends(get_db)):
    PaymentIntentService.get(db, intent_id)
    bookings = PartialRefundService.get_payment_intent_bookings(db, intent_id)
    return respond(
        "Bookings retrieved successfully", [BookingRefundInfo.from_booking(b) for b in bookings]
    )
