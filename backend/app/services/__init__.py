from app.services.audit_service import AuditService
from app.services.payment_intent_service import PaymentIntentService
from app.services.payment_plan_service import PaymentPlanService
from app.services.payment_reminder_service import PaymentReminderService
from app.services.partial_refund_service import PartialRefundService
from app.services.reconciliation_service import ReconciliationService

__all__ = [
    "AuditService", "PaymentIntentService", "PaymentPlanService",
    "PaymentReminderService", "PartialRefundService", "ReconciliationService",
]
