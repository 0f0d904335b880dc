"""
Customer & Wedding Proposal Models — the people and events payments belong to.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=new_id)
    guest_first_name = Column(String(64), nullable=False)
    guest_last_name = Column(String(64), nullable=False)
    guest_email = Column(String(128), nullable=False, index=True)

    stripe_customer_id = Column(String(64))   # set on first checkout

    created_at = Column(DateTime, default=datetime.utcnow)

    proposals = relationship("WeddingProposal", back_populates="customer")

    @property
    def full_name(self) -> str:
        return f"{self.guest_first_name} {self.guest_last_name}"


class WeddingProposal(Base):
    __tablename__ = "wedding_proposals"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(128), nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    status = Column(String(16), default="DRAFT")   # DRAFT | SENT | ACCEPTED | CONFIRMED

    created_at = Column(DateTime, default=datetime.utcnow)

    customer = relationship("Customer", back_populates="proposals")
    payment_plan = relationship("PaymentPlan", back_populates="proposal", uselist=False)
