import json
import os
import tempfile
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

# Settings are read once; point them at throwaway resources before the app is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="venue-payments-logs-")
os.environ["ENVIRONMENT"] = "test"
os.environ["API_BASE_URL"] = "http://api.test"
os.environ["FRONTEND_URL"] = "http://app.test"
os.environ["BREVO_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db, init_db
from app.main import app
from app.models import (
    Booking, BookingStatus, Customer, EmailTemplate, PaymentIntent, PaymentIntentStatus,
    PaymentPlan, PaymentStage, PaymentStageStatus, PaymentStructure, WeddingProposal,
)
from app.services.email_service import EmailService, get_email_service
from app.services.stripe_gateway import StripeGateway, get_gateway

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    init_db(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway():
    gw = MagicMock(spec=StripeGateway)
    gw.create_price.return_value = "price_123"
    gw.create_customer.return_value = "cus_123"
    gw.create_checkout_session.return_value = SimpleNamespace(
        id="cs_test_1", url="https://checkout.stripe.test/cs_test_1"
    )
    gw.checkout_urls.return_value = {
        "success_url": "http://app.test/payment-confirmation?session_id={CHECKOUT_SESSION_ID}",
        "cancel_url": "http://app.test/payment-cancelled",
    }
    gw.create_payment_link.return_value = SimpleNamespace(id="plink_2", url="https://buy.stripe.test/plink_2")
    gw.retrieve_payment_link_url.return_value = "https://buy.stripe.test/plink_1"
    gw.create_refund.return_value = SimpleNamespace(id="re_123")
    gw.construct_event.side_effect = lambda payload, signature: json.loads(payload)
    return gw


@pytest.fixture
def email_service():
    service = MagicMock(spec=EmailService)
    service.send_email.return_value = True
    return service


@pytest.fixture
def client(db, gateway, email_service):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_email_service] = lambda: email_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ─── Factories ───────────────────────────────────────────────────────

@pytest.fixture
def make_customer(db):
    def _make(**overrides):
        values = dict(guest_first_name="Giulia", guest_last_name="Rossi", guest_email="giulia@example.com")
        values.update(overrides)
        customer = Customer(**values)
        db.add(customer)
        db.commit()
        return customer
    return _make


@pytest.fixture
def make_intent(db):
    def _make(**overrides):
        now = datetime.utcnow()
        values = dict(
            amount=300.0,
            total_amount=1000.0,
            prepaid_amount=300.0,
            remaining_amount=700.0,
            currency="eur",
            status=PaymentIntentStatus.CREATED,
            payment_structure=PaymentStructure.SPLIT_PAYMENT,
            stripe_payment_intent_id="pi_123",
            stripe_payment_link_id="plink_1",
            expires_at=now + timedelta(days=1),
            remaining_due_date=now + timedelta(days=3),
            customer_data=json.dumps({"firstName": "Giulia", "lastName": "Rossi", "email": "giulia@example.com"}),
            booking_data=json.dumps([{
                "roomDetails": {"name": "Torre Suite"},
                "checkIn": "2026-06-01T14:00:00",
                "checkOut": "2026-06-03T10:00:00",
            }]),
        )
        values.update(overrides)
        intent = PaymentIntent(**values)
        db.add(intent)
        db.commit()
        return intent
    return _make


@pytest.fixture
def make_booking(db, make_customer):
    def _make(intent, **overrides):
        values = dict(
            payment_intent_id=intent.id,
            customer_id=make_customer().id,
            room_name="Torre Suite",
            check_in=datetime(2026, 6, 1, 14),
            check_out=datetime(2026, 6, 3, 10),
            total_amount=150.0,
            status=BookingStatus.CONFIRMED,
        )
        values.update(overrides)
        booking = Booking(**values)
        db.add(booking)
        db.commit()
        return booking
    return _make


@pytest.fixture
def make_proposal(db, make_customer):
    def _make(**overrides):
        values = dict(name="Rossi & Bianchi Wedding", customer_id=make_customer().id, status="ACCEPTED")
        values.update(overrides)
        proposal = WeddingProposal(**values)
        db.add(proposal)
        db.commit()
        return proposal
    return _make


@pytest.fixture
def make_plan(db, make_proposal):
    """Plan with one stage per (amount, due_date, status) tuple."""
    def _make(stages, total_amount=None, currency="eur"):
        proposal = make_proposal()
        plan = PaymentPlan(
            proposal_id=proposal.id,
            total_amount=total_amount if total_amount is not None else sum(s[0] for s in stages),
            currency=currency,
        )
        for i, (amount, due_date, status) in enumerate(stages):
            plan.stages.append(PaymentStage(
                description=f"Installment {i + 1}", amount=amount, due_date=due_date, status=status,
            ))
        db.add(plan)
        db.commit()
        return plan
    return _make


@pytest.fixture
def pending_stage(make_plan):
    plan = make_plan([(2500.0, datetime.utcnow() + timedelta(days=30), PaymentStageStatus.PENDING)])
    return plan.stages[0]


@pytest.fixture
def seed_templates(db):
    def _seed(*types, **overrides):
        for template_type in types:
            db.add(EmailTemplate(
                type=template_type,
                subject=overrides.get("subject", "Payment for {{ proposalName }}"),
                html=overrides.get("html", "<p>Dear {{ customerName }}, {{ amount }} is due {{ dueDate }}.</p>"),
                version=1,
                is_active=True,
            ))
        db.commit()
    return _seed
