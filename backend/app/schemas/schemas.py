"""
Pydantic Schemas — Request & Response models for API validation.
JSON fields are camelCase to match the dashboard; Python attributes stay snake_case.
"""
from datetime import datetime, timezone
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ──────────────── Payment Intent ────────────────

class SecondPaymentRequest(CamelModel):
    expires_in_hours: Optional[int] = Field(None, description="Link lifetime in hours (default 48)")


class SecondPaymentResponse(CamelModel):
    payment_link_id: str
    payment_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    status: Optional[str] = None


# ──────────────── Payment Plan ────────────────

class PaymentStageInput(CamelModel):
    id: Optional[str] = Field(None, description="Existing stage id to update in place")
    description: str = Field(..., min_length=1, max_length=256)
    amount: float = Field(..., gt=0)
    due_date: datetime

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, v: datetime) -> datetime:
        return _naive_utc(v)


class PaymentPlanRequest(CamelModel):
    total_amount: float = Field(..., ge=0)
    currency: str = Field("eur", min_length=3, max_length=3)
    stages: List[PaymentStageInput]

    @field_validator("currency")
    @classmethod
    def lower_currency(cls, v: str) -> str:
        return v.lower()


class ServiceChargeRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., gt=0)


class PaymentStageOut(CamelModel):
    id: str
    payment_plan_id: str
    description: str
    amount: float
    due_date: datetime
    status: str
    stripe_payment_intent_id: Optional[str] = None
    stripe_payment_url: Optional[str] = None
    paid_at: Optional[datetime] = None


class ProposalOut(CamelModel):
    id: str
    name: str
    customer_id: str
    status: Optional[str] = None


class PaymentPlanOut(CamelModel):
    id: str
    proposal_id: str
    total_amount: float
    currency: str
    stages: List[PaymentStageOut] = []


class PaymentStageDetailOut(PaymentStageOut):
    payment_plan: Optional[PaymentPlanOut] = None
    proposal: Optional[ProposalOut] = None


class StageCheckoutResponse(CamelModel):
    payment_stage: PaymentStageOut
    payment_url: Optional[str] = None


# ──────────────── Refunds ────────────────

class PartialRefundRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)
    admin_user_id: Optional[str] = None


class PartialRefundResponse(CamelModel):
    success: bool = True
    refund_id: str
    booking_id: str
    refund_amount: float
    message: str


class BookingRefundInfo(CamelModel):
    booking_id: str
    room_name: str
    total_amount: Optional[float] = None
    refund_amount: Optional[float] = None
    status: str
    can_refund: bool
    check_in: datetime
    check_out: datetime

    @classmethod
    def from_booking(cls, booking) -> "BookingRefundInfo":
        return cls(
            booking_id=booking.id,
            room_name=booking.room_name,
            total_amount=booking.total_amount,
            refund_amount=booking.refund_amount,
            status=booking.status,
            can_refund=booking.can_refund,
            check_in=booking.check_in,
            check_out=booking.check_out,
        )


# ──────────────── Admin / Audit ────────────────

class AuditLogEntry(CamelModel):
    id: int
    entity_type: str
    entity_id: str
    action: str
    actor: Optional[str] = None
    payload_hash: Optional[str] = None
    timestamp: datetime
    log_metadata: Optional[dict] = None


class ReminderRunResponse(CamelModel):
    upcoming: Optional[int] = None
    overdue: Optional[int] = None
    booking_upcoming: Optional[int] = None
    booking_overdue: Optional[int] = None
    total: int = 0
