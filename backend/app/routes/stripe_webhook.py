"""
Stripe Webhook Route — signature-verified settlement events.
"""
import json
import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.reconciliation_service import ReconciliationService
from app.services.stripe_gateway import StripeGateway, get_gateway
from app.utils.responses import respond

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stripe", tags=["Stripe"])


async def raw_body(request: Request) -> bytes:
    """Signature checks need the payload exactly as sent."""
    return await request.body()


@router.post("/webhook")
def stripe_webhook(
    payload: bytes = Depends(raw_body),
    stripe_signature: str = Header(None, alias="stripe-signature"),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
):
    gateway.construct_event(payload, stripe_signature)

    event = json.loads(payload)
    settlement = ReconciliationService.from_stripe_event(event)
    if settlement is None:
        logger.info("Ignoring Stripe event %s (%s)", event.get("id"), event.get("type"))
        return respond("Event acknowledged", {"received": True})

    outcome = ReconciliationService.apply(db, settlement)
    return respond("Event processed", {"received": True, "outcome": outcome})
