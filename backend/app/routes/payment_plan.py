"""
Payment Plan Routes — admin plan editing and client stage checkout.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.schemas import (
    PaymentPlanOut, PaymentPlanRequest, PaymentStageDetailOut, PaymentStageOut,
    ProposalOut, ServiceChargeRequest, StageCheckoutResponse,
)
from app.services.payment_plan_service import PaymentPlanService
from app.services.stripe_gateway import StripeGateway, get_gateway
from app.utils.responses import respond

router = APIRouter(prefix="/payment-plans", tags=["Payment Plans"])


@router.post("/proposals/{proposal_id}/payment-plan")
def save_payment_plan(proposal_id: str, payload: PaymentPlanRequest, db: Session = Depends(get_db)):
    """Create or reconcile the plan; paid and processing stages are kept as they are."""
    plan = PaymentPlanService.replace_plan(
        db, proposal_id, payload.total_amount, payload.currency, payload.stages
    )
    return respond("Payment plan saved successfully", PaymentPlanOut.model_validate(plan))


@router.get("/proposals/{proposal_id}/payment-plan")
def get_payment_plan(proposal_id: str, db: Session = Depends(get_db)):
    plan = PaymentPlanService.get_plan(db, proposal_id)
    return respond("Payment plan retrieved successfully", PaymentPlanOut.model_validate(plan))


@router.post("/proposals/{proposal_id}/payment-plan/charges")
def add_service_charge(proposal_id: str, payload: ServiceChargeRequest, db: Session = Depends(get_db)):
    """Fold an accepted custom service charge into the plan."""
    plan = PaymentPlanService.apply_service_charge(db, proposal_id, payload.title, payload.amount)
    return respond("Service charge added to payment plan", PaymentPlanOut.model_validate(plan))


@router.post("/payment-stages/{stage_id}/create-intent")
def create_stage_checkout(
    stage_id: str,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
):
    """Open a checkout session for a single payment stage."""
    stage, url = PaymentPlanService.create_stage_checkout(db, gateway, stage_id)
    return respond(
        "Payment intent created successfully",
        StageCheckoutResponse(payment_stage=PaymentStageOut.model_validate(stage), payment_url=url),
    )


@router.delete("/payment-stages/{stage_id}")
def delete_stage(stage_id: str, db: Session = Depends(get_db)):
    PaymentPlanService.delete_stage(db, stage_id)
    return respond("Payment stage deleted successfully")


@router.get("/client/payment-stages/{stage_id}")
def get_client_stage(stage_id: str, db: Session = Depends(get_db)):
    """Stage with its plan and proposal, as shown on the client payment page."""
    stage = PaymentPlanService.get_stage(db, stage_id)
    plan = stage.payment_plan
    detail = PaymentStageDetailOut.model_validate(stage)
    detail.payment_plan = PaymentPlanOut.model_validate(plan)
    detail.proposal = ProposalOut.model_validate(plan.proposal)
    return respond("Payment stage retrieved successfully", detail)
