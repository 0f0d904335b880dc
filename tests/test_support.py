from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
import requests

from app.config import get_settings
from app.errors import NotFoundError, UpstreamError
from app.models import AuditLog, EmailTemplate
from app.services.audit_service import AuditService
from app.services.email_service import EmailService
from app.services.template_engine import TemplateEngine
from app.utils.formatting import format_currency, format_long_date, to_minor_units


# ─── Formatting ──────────────────────────────────────────────────────

@pytest.mark.parametrize("amount,expected", [(150.0, 15000), (19.99, 1999), (10.005, 1001), (0.1 + 0.2, 30)])
def test_to_minor_units(amount, expected):
    assert to_minor_units(amount) == expected


def test_format_currency():
    assert format_currency(1500, "eur") == "€1,500.00"
    assert format_currency(99.5, "USD") == "$99.50"
    assert format_currency(10, "sek") == "SEK 10.00"


def test_format_long_date():
    assert format_long_date(datetime(2025, 3, 3)) == "Monday, March 3, 2025"
    assert format_long_date("2026-06-01T14:00:00") == "Monday, June 1, 2026"
    assert format_long_date(None) == ""


# ─── Template engine ─────────────────────────────────────────────────

def test_render_uses_newest_active_version(db):
    db.add_all([
        EmailTemplate(type="PAYMENT_REMINDER_UPCOMING", subject="Old", html="old", version=1, is_active=True),
        EmailTemplate(type="PAYMENT_REMINDER_UPCOMING", subject="Hi {{ customerName }}",
                      html="<p>{{ amount }}</p>", version=2, is_active=True),
        EmailTemplate(type="PAYMENT_REMINDER_UPCOMING", subject="Draft", html="draft", version=3, is_active=False),
    ])
    db.commit()

    rendered = TemplateEngine().render(db, "PAYMENT_REMINDER_UPCOMING", {"customerName": "Giulia", "amount": "€10.00"})

    assert rendered == {"subject": "Hi Giulia", "html": "<p>€10.00</p>"}


def test_render_escapes_html(db, seed_templates):
    seed_templates("PAYMENT_REMINDER_OVERDUE")

    rendered = TemplateEngine().render(db, "PAYMENT_REMINDER_OVERDUE", {"customerName": "<script>x</script>"})

    assert "<script>" not in rendered["html"]
    assert "&lt;script&gt;" in rendered["html"]


def test_render_filters(db, seed_templates):
    seed_templates("BOOKING_PAYMENT_REMINDER", html="{{ total | format_currency('eur') }} by {{ due | format_date }}")

    rendered = TemplateEngine().render(
        db, "BOOKING_PAYMENT_REMINDER", {"total": 1234.5, "due": datetime(2025, 3, 3)}
    )

    assert rendered["html"] == "€1,234.50 by Monday, March 3, 2025"


def test_cache_survives_template_edits_until_cleared(db, seed_templates):
    seed_templates("SECOND_PAYMENT_CREATED", subject="First")
    engine = TemplateEngine()
    assert engine.render(db, "SECOND_PAYMENT_CREATED", {})["subject"] == "First"

    db.add(EmailTemplate(type="SECOND_PAYMENT_CREATED", subject="Second", html="x", version=2, is_active=True))
    db.commit()
    assert engine.render(db, "SECOND_PAYMENT_CREATED", {})["subject"] == "First"

    engine.clear_cache()
    assert engine.render(db, "SECOND_PAYMENT_CREATED", {})["subject"] == "Second"


def test_missing_template(db):
    with pytest.raises(NotFoundError, match="No active template found for type: NOPE"):
        TemplateEngine().render(db, "NOPE", {})


# ─── Email service ───────────────────────────────────────────────────

@pytest.fixture
def templates():
    engine = MagicMock(spec=TemplateEngine)
    engine.render.return_value = {"subject": "Your payment", "html": "<p>Hello</p>"}
    return engine


def test_email_disabled_without_api_key(db, templates):
    service = EmailService(templates, get_settings().model_copy(update={"BREVO_API_KEY": ""}))

    with patch("app.services.email_service.requests.post") as post:
        assert service.send_email(db, "a@example.com", "A", "PAYMENT_REMINDER_UPCOMING", {}) is False

    post.assert_not_called()
    templates.render.assert_called_once()


def test_email_posts_to_brevo(db, templates):
    settings = get_settings().model_copy(update={"BREVO_API_KEY": "xkeysib-test"})
    service = EmailService(templates, settings)

    with patch("app.services.email_service.requests.post") as post:
        assert service.send_email(db, "a@example.com", "Ann", "PAYMENT_REMINDER_UPCOMING", {}) is True

    url = post.call_args.args[0]
    kwargs = post.call_args.kwargs
    assert url == settings.BREVO_API_URL
    assert kwargs["headers"]["api-key"] == "xkeysib-test"
    assert kwargs["json"]["to"] == [{"email": "a@example.com", "name": "Ann"}]
    assert kwargs["json"]["subject"] == "Your payment"
    assert kwargs["json"]["htmlContent"] == "<p>Hello</p>"


def test_email_provider_failure(db, templates):
    service = EmailService(templates, get_settings().model_copy(update={"BREVO_API_KEY": "xkeysib-test"}))

    with patch("app.services.email_service.requests.post", side_effect=requests.ConnectionError("down")):
        with pytest.raises(UpstreamError, match="Failed to send email"):
            service.send_email(db, "a@example.com", "Ann", "PAYMENT_REMINDER_UPCOMING", {})


# ─── Audit trail ─────────────────────────────────────────────────────

def test_audit_chain_verifies(db):
    for action in ("SECOND_LINK_CREATED", "SECOND_LINK_EXPIRED", "SETTLEMENT_APPLIED"):
        AuditService.log(db, "PAYMENT_INTENT", "pi-1", action, payload={"action": action, "amount": 10.5})
    AuditService.log(db, "PAYMENT_INTENT", "pi-2", "STATUS_EXPIRED")

    trail = AuditService.get_trail(db, "PAYMENT_INTENT", "pi-1")
    assert [e.previous_hash for e in trail[1:]] == [e.payload_hash for e in trail[:-1]]
    assert AuditService.verify_chain(db, "PAYMENT_INTENT", "pi-1") == {
        "valid": True, "total_entries": 3, "broken_at": None,
    }


def test_audit_chain_detects_tampering(db):
    for amount in (1, 2, 3):
        AuditService.log(db, "BOOKING", "b-1", "REFUND_INITIATED", payload={"amount": amount})
    middle = AuditService.get_trail(db, "BOOKING", "b-1")[1]
    middle.log_metadata = {"amount": 2000}
    db.commit()

    result = AuditService.verify_chain(db, "BOOKING", "b-1")

    assert result["valid"] is False
    assert result["broken_at"] == middle.id


# ─── Admin routes ────────────────────────────────────────────────────

def test_admin_audit_trail(client, db):
    AuditService.log(db, "PAYMENT_STAGE", "s-1", "STAGE_DELETED", payload={"amount": 100.0}, actor="admin-1")

    res = client.get("/api/v1/admin/audit/payment_stage/s-1")

    assert res.status_code == 200
    [entry] = res.json()["data"]
    assert entry["action"] == "STAGE_DELETED"
    assert entry["actor"] == "admin-1"

    verify = client.get("/api/v1/admin/audit/PAYMENT_STAGE/s-1/verify")
    assert verify.json()["data"]["valid"] is True


def test_admin_audit_trail_missing(client, db):
    res = client.get("/api/v1/admin/audit/BOOKING/nothing")
    assert res.status_code == 404


def test_admin_clear_template_cache(client):
    engine = client.app.state.template_engine
    engine._cache["SECOND_PAYMENT_CREATED"] = ("subject", "html")

    res = client.post("/api/v1/admin/email-templates/clear-cache")

    assert res.status_code == 200
    assert engine._cache == {}


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"


def test_unknown_route_uses_envelope(client):
    res = client.get("/api/v1/nowhere")
    assert res.status_code == 404
    assert res.json() == {"success": False, "message": "Not Found", "data": None}


def test_audit_entries_are_stored_per_entity(db):
    AuditService.log(db, "PAYMENT_PLAN", "plan-1", "PLAN_REPLACED", payload={"created": 2})
    assert db.query(AuditLog).filter(AuditLog.entity_type == "PAYMENT_PLAN").count() == 1
