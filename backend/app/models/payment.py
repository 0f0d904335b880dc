"""
Payment Intent Model — one booking checkout and its optional second installment.
"""
import json
from datetime import datetime

from sqlalchemy import Column, String, Float, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.customer import new_id


class PaymentIntentStatus:
    CREATED = "CREATED"
    SUCCEEDED = "SUCCEEDED"
    REFUNDED = "REFUNDED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"

    TERMINAL = (SUCCEEDED, REFUNDED, CANCELLED, EXPIRED)


class PaymentStructure:
    FULL = "FULL"
    SPLIT_PAYMENT = "SPLIT_PAYMENT"


class BookingStatus:
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentIntent(Base):
    __tablename__ = "payment_intents"

    id = Column(String(36), primary_key=True, default=new_id)

    amount = Column(Float, nullable=False, default=0.0)    # first charge, major units
    total_amount = Column(Float)
    prepaid_amount = Column(Float)
    remaining_amount = Column(Float, default=0.0)
    currency = Column(String(3), nullable=False, default="eur")

    status = Column(String(16), nullable=False, default=PaymentIntentStatus.CREATED)
    payment_structure = Column(String(16), nullable=False, default=PaymentStructure.FULL)

    # Gateway references for the primary payment
    stripe_payment_intent_id = Column(String(64), index=True)
    stripe_payment_link_id = Column(String(64), index=True)
    stripe_session_id = Column(String(128))
    expires_at = Column(DateTime)
    remaining_due_date = Column(DateTime)

    # Second ("split") payment
    second_payment_link_id = Column(String(64), index=True)
    second_payment_intent_id = Column(String(64), index=True)   # captured charge, needed for refunds
    second_payment_url = Column(String(512))
    second_payment_status = Column(String(16))
    second_payment_expires_at = Column(DateTime)

    customer_data = Column(Text)    # JSON: {firstName, lastName, email, ...}
    booking_data = Column(Text)     # JSON list of requested rooms

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bookings = relationship("Booking", back_populates="payment_intent", order_by="Booking.created_at")

    @property
    def customer(self) -> dict:
        return json.loads(self.customer_data) if self.customer_data else {}

    @property
    def booking_items(self) -> list:
        return json.loads(self.booking_data) if self.booking_data else []

    @property
    def confirmation_number(self) -> str:
        return f"BK-{self.id[-6:].upper()}"


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=new_id)
    payment_intent_id = Column(String(36), ForeignKey("payment_intents.id"), index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), index=True)

    room_name = Column(String(128), nullable=False)
    check_in = Column(DateTime, nullable=False)
    check_out = Column(DateTime, nullable=False)

    total_amount = Column(Float)
    refund_amount = Column(Float)
    status = Column(String(16), nullable=False, default=BookingStatus.PENDING)

    created_at = Column(DateTime, default=datetime.utcnow)

    payment_intent = relationship("PaymentIntent", back_populates="bookings")
    customer = relationship("Customer")

    @property
    def can_refund(self) -> bool:
        return self.status != BookingStatus.REFUNDED and bool(self.total_amount and self.total_amount > 0)


class WebhookEvent(Base):
    """Gateway events already applied; makes redelivery a no-op."""
    __tablename__ = "webhook_events"

    id = Column(String(128), primary_key=True)
    kind = Column(String(32), nullable=False)
    reference_id = Column(String(128))
    processed_at = Column(DateTime, default=datetime.utcnow)
