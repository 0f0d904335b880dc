from app.models.customer import Customer, WeddingProposal
from app.models.payment import (
    PaymentIntent, Booking, WebhookEvent, PaymentIntentStatus, PaymentStructure, BookingStatus,
)
from app.models.payment_plan import (
    PaymentPlan, PaymentStage, PaymentReminder, PaymentStageStatus, ReminderType,
)
from app.models.email_template import EmailTemplate
from app.models.audit import AuditLog

__all__ = [
    "Customer", "WeddingProposal",
    "PaymentIntent", "Booking", "WebhookEvent",
    "PaymentIntentStatus", "PaymentStructure", "BookingStatus",
    "PaymentPlan", "PaymentStage", "PaymentReminder",
    "PaymentStageStatus", "ReminderType",
    "EmailTemplate", "AuditLog",
]
