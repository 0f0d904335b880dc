"""
Payment Plan Models — installment schedules for wedding proposals.
"""
from datetime import datetime

from sqlalchemy import Column, String, Float, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.customer import new_id


class PaymentStageStatus:
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PAID = "PAID"

    LOCKED = (PROCESSING, PAID)


class ReminderType:
    UPCOMING = "UPCOMING"
    OVERDUE = "OVERDUE"


class PaymentPlan(Base):
    __tablename__ = "payment_plans"

    id = Column(String(36), primary_key=True, default=new_id)
    proposal_id = Column(String(36), ForeignKey("wedding_proposals.id"), nullable=False, unique=True)
    total_amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="eur")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    proposal = relationship("WeddingProposal", back_populates="payment_plan")
    stages = relationship(
        "PaymentStage",
        back_populates="payment_plan",
        order_by="PaymentStage.due_date",
        cascade="all, delete-orphan",
    )


class PaymentStage(Base):
    __tablename__ = "payment_stages"

    id = Column(String(36), primary_key=True, default=new_id)
    payment_plan_id = Column(String(36), ForeignKey("payment_plans.id"), nullable=False, index=True)

    description = Column(String(256), nullable=False)
    amount = Column(Float, nullable=False)
    due_date = Column(DateTime, nullable=False, index=True)
    status = Column(String(16), nullable=False, default=PaymentStageStatus.PENDING)
    # PENDING → PROCESSING (checkout created) → PAID (webhook)

    stripe_payment_intent_id = Column(String(128))   # holds the checkout session id
    stripe_payment_url = Column(String(512))
    paid_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    payment_plan = relationship("PaymentPlan", back_populates="stages")
    reminders = relationship("PaymentReminder", back_populates="payment_stage", cascade="all, delete-orphan")


class PaymentReminder(Base):
    __tablename__ = "payment_reminders"

    id = Column(String(36), primary_key=True, default=new_id)
    payment_stage_id = Column(String(36), ForeignKey("payment_stages.id"), nullable=False, index=True)
    type = Column(String(16), nullable=False)   # UPCOMING | OVERDUE
    sent_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    payment_stage = relationship("PaymentStage", back_populates="reminders")
