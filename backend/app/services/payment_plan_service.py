"""
Payment Plan Service — installment schedules for wedding proposals.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session, joinedload

from app.config import get_settings
from app.errors import InvalidStateError, NotFoundError, ValidationError
from app.models.customer import WeddingProposal
from app.models.payment_plan import PaymentPlan, PaymentStage, PaymentStageStatus
from app.schemas.schemas import PaymentStageInput
from app.services.audit_service import AuditService
from app.services.stripe_gateway import StripeGateway
from app.utils.formatting import to_minor_units

logger = logging.getLogger(__name__)


class PaymentPlanService:
    """Create, reconcile and pay payment plans and their stages."""

    @staticmethod
    def _proposal(db: Session, proposal_id: str) -> WeddingProposal:
        if not proposal_id:
            raise ValidationError("Proposal ID is required")
        proposal = db.query(WeddingProposal).filter(WeddingProposal.id == proposal_id).first()
        if not proposal:
            raise NotFoundError("Wedding proposal not found")
        return proposal

    @staticmethod
    def replace_plan(
        db: Session,
        proposal_id: str,
        total_amount: float,
        currency: str,
        stages: list[PaymentStageInput],
        actor: Optional[str] = None,
    ) -> PaymentPlan:
        """Reconcile a proposal's plan with the submitted stage list.

        Stages are matched by id. PENDING stages are updated in place or, when
        absent from the list, deleted. PROCESSING and PAID stages are never
        changed or deleted. Stages without an id are created as PENDING.
        """
        proposal = PaymentPlanService._proposal(db, proposal_id)
        plan = proposal.payment_plan
        created = updated = deleted = locked = 0

        try:
            if plan is None:
                plan = PaymentPlan(proposal_id=proposal.id, total_amount=total_amount, currency=currency)
                db.add(plan)
                db.flush()
            else:
                plan.total_amount = total_amount
                plan.currency = currency

            existing = {s.id: s for s in plan.stages}
            submitted_ids = set()

            for item in stages:
                if item.id is None:
                    plan.stages.append(PaymentStage(
                        description=item.description,
                        amount=item.amount,
                        due_date=item.due_date,
                        status=PaymentStageStatus.PENDING,
                    ))
                    created += 1
                    continue

                stage = existing.get(item.id)
                if stage is None:
                    raise ValidationError(f"Payment stage {item.id} does not belong to this plan")
                submitted_ids.add(item.id)

                if stage.status in PaymentStageStatus.LOCKED:
                    locked += 1
                    continue
                stage.description = item.description
                stage.amount = item.amount
                stage.due_date = item.due_date
                updated += 1

            for stage_id, stage in existing.items():
                if stage_id in submitted_ids:
                    continue
                if stage.status in PaymentStageStatus.LOCKED:
                    logger.warning("Keeping %s stage %s missing from plan update", stage.status, stage.id)
                    locked += 1
                    continue
                plan.stages.remove(stage)
                deleted += 1

            AuditService.log(
                db, "PAYMENT_PLAN", plan.id, "PLAN_REPLACED",
                payload={
                    "total_amount": total_amount, "currency": currency,
                    "created": created, "updated": updated, "deleted": deleted, "locked": locked,
                },
                actor=actor,
                commit=False,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(plan)
        logger.info(
            "Payment plan %s saved: %d created, %d updated, %d deleted, %d locked",
            plan.id, created, updated, deleted, locked,
        )
        return plan

    @staticmethod
    def get_plan(db: Session, proposal_id: str) -> PaymentPlan:
        if not proposal_id:
            raise ValidationError("Proposal ID is required")
        plan = (
            db.query(PaymentPlan)
            .options(joinedload(PaymentPlan.stages))
            .filter(PaymentPlan.proposal_id == proposal_id)
            .first()
        )
        if not plan:
            raise NotFoundError("Payment plan not found for this proposal")
        return plan

    @staticmethod
    def get_stage(db: Session, stage_id: str) -> PaymentStage:
        if not stage_id:
            raise ValidationError("Payment stage ID is required")
        stage = (
            db.query(PaymentStage)
            .options(
                joinedload(PaymentStage.payment_plan)
                .joinedload(PaymentPlan.proposal)
                .joinedload(WeddingProposal.customer)
            )
            .filter(PaymentStage.id == stage_id)
            .first()
        )
        if not stage:
            raise NotFoundError("Payment stage not found")
        return stage

    @staticmethod
    def create_stage_checkout(
        db: Session, gateway: StripeGateway, stage_id: str, now: Optional[datetime] = None
    ) -> Tuple[PaymentStage, str]:
        """Open a Stripe checkout session for one stage; the stage becomes PROCESSING."""
        settings = get_settings()
        now = now or datetime.utcnow()
        stage = PaymentPlanService.get_stage(db, stage_id)

        if stage.status == PaymentStageStatus.PAID:
            raise InvalidStateError("This payment stage has already been paid")

        plan = stage.payment_plan
        proposal = plan.proposal
        customer = proposal.customer

        if not customer.stripe_customer_id:
            customer.stripe_customer_id = gateway.create_customer(
                email=customer.guest_email,
                name=customer.full_name,
                metadata={"customerId": customer.id},
            )
            db.commit()
            logger.info("Created Stripe customer %s for %s", customer.stripe_customer_id, customer.id)

        price_id = gateway.create_price(
            name=f"{stage.description} - {proposal.name}",
            description=f"Wedding payment for {proposal.name}",
            unit_amount=to_minor_units(stage.amount),
            currency=plan.currency,
            metadata={"paymentStageId": stage.id, "bookingIndex": str(int(now.timestamp() * 1000))},
        )

        urls = gateway.checkout_urls()
        metadata = {
            "paymentStageId": stage.id,
            "proposalId": plan.proposal_id,
            "description": stage.description,
        }
        session = gateway.create_checkout_session(
            price_id,
            success_url=f"{urls['success_url']}&stageId={stage.id}",
            cancel_url=f"{urls['cancel_url']}?stageId={stage.id}",
            metadata=metadata,
            expires_at=now + timedelta(minutes=settings.STAGE_CHECKOUT_EXPIRY_MINUTES),
            customer_id=customer.stripe_customer_id,
        )

        stage.stripe_payment_intent_id = session.id
        stage.stripe_payment_url = session.url
        stage.status = PaymentStageStatus.PROCESSING
        AuditService.log(
            db, "PAYMENT_STAGE", stage.id, "STAGE_CHECKOUT_CREATED",
            payload={"session_id": session.id, "amount": stage.amount},
            commit=False,
        )
        db.commit()
        db.refresh(stage)
        logger.info("Checkout session %s created for stage %s", session.id, stage.id)
        return stage, session.url

    @staticmethod
    def delete_stage(db: Session, stage_id: str, actor: Optional[str] = None) -> None:
        if not stage_id:
            raise ValidationError("Payment stage ID is required")
        stage = db.query(PaymentStage).filter(PaymentStage.id == stage_id).first()
        if not stage:
            raise NotFoundError("Payment stage not found")
        if stage.status in PaymentStageStatus.LOCKED:
            raise InvalidStateError("Cannot delete a paid or processing payment stage")

        AuditService.log(
            db, "PAYMENT_STAGE", stage.id, "STAGE_DELETED",
            payload={"description": stage.description, "amount": stage.amount},
            actor=actor,
            commit=False,
        )
        db.delete(stage)
        db.commit()
        logger.info("Deleted payment stage %s", stage_id)

    @staticmethod
    def apply_service_charge(
        db: Session, proposal_id: str, title: str, amount: float, now: Optional[datetime] = None
    ) -> PaymentPlan:
        """Add an accepted service charge to the plan.

        The plan total grows by ``amount``; so does the latest-due PENDING
        stage, or a new PENDING stage is created when none is left.
        """
        now = now or datetime.utcnow()
        PaymentPlanService._proposal(db, proposal_id)
        plan = PaymentPlanService.get_plan(db, proposal_id)

        try:
            plan.total_amount = PaymentPlan.total_amount + amount
            pending = [s for s in plan.stages if s.status == PaymentStageStatus.PENDING]
            if pending:
                target = max(pending, key=lambda s: s.due_date)
                target.amount = PaymentStage.amount + amount
            else:
                due_days = get_settings().SERVICE_CHARGE_STAGE_DUE_DAYS
                plan.stages.append(PaymentStage(
                    description=f"Payment for custom service: {title}",
                    amount=amount,
                    due_date=now + timedelta(days=due_days),
                    status=PaymentStageStatus.PENDING,
                ))
            AuditService.log(
                db, "PAYMENT_PLAN", plan.id, "SERVICE_CHARGE_ADDED",
                payload={"title": title, "amount": amount},
                commit=False,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(plan)
        logger.info("Added service charge %.2f (%s) to plan %s", amount, title, plan.id)
        return plan
