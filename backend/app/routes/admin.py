"""
Admin Routes — reminder runs, template cache, and audit trail access.
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.config import reload_settings
from app.database import get_db
from app.errors import NotFoundError
from app.schemas.schemas import AuditLogEntry, ReminderRunResponse
from app.services.audit_service import AuditService
from app.services.email_service import EmailService, get_email_service
from app.services.payment_reminder_service import PaymentReminderService
from app.utils.responses import respond

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/payment-reminders/run")
def run_payment_reminders(
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Run every reminder job once, as the scheduled job would."""
    results = PaymentReminderService.process_all(db, email_service)
    return respond("Payment reminders processed", ReminderRunResponse(**results))


@router.post("/email-templates/clear-cache")
def clear_template_cache(request: Request):
    """Drop compiled templates and re-read settings from the environment."""
    request.app.state.template_engine.clear_cache()
    reload_settings()
    logger.info("Email template cache cleared")
    return respond("Email template cache cleared")


@router.get("/audit/{entity_type}/{entity_id}")
def get_audit_trail(entity_type: str, entity_id: str, db: Session = Depends(get_db)):
    """Get the full audit trail for one entity."""
    logs = AuditService.get_trail(db, entity_type.upper(), entity_id)
    if not logs:
        raise NotFoundError("No audit logs found for this entity")
    return respond("Audit trail retrieved", [AuditLogEntry.model_validate(log) for log in logs])


@router.get("/audit/{entity_type}/{entity_id}/verify")
def verify_audit_trail(entity_type: str, entity_id: str, db: Session = Depends(get_db)):
    result = AuditService.verify_chain(db, entity_type.upper(), entity_id)
    return respond("Audit chain verified" if result["valid"] else "Audit chain broken", result)
