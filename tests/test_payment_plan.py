from datetime import datetime, timedelta

import pytest

from app.errors import InvalidStateError, NotFoundError
from app.models import PaymentStage, PaymentStageStatus
from app.schemas.schemas import PaymentStageInput
from app.services.payment_plan_service import PaymentPlanService


def _due(days):
    return (datetime.utcnow() + timedelta(days=days)).replace(microsecond=0)


def _stage_json(description, amount, days, stage_id=None):
    body = {"description": description, "amount": amount, "dueDate": _due(days).isoformat()}
    if stage_id:
        body["id"] = stage_id
    return body


# ─── Save / replace ──────────────────────────────────────────────────

def test_create_plan_for_proposal(client, make_proposal):
    proposal = make_proposal()

    res = client.post(
        f"/api/v1/payment-plans/proposals/{proposal.id}/payment-plan",
        json={
            "totalAmount": 6000,
            "currency": "EUR",
            "stages": [_stage_json("Deposit", 2000, 10), _stage_json("Balance", 4000, 60)],
        },
    )

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["proposalId"] == proposal.id
    assert data["currency"] == "eur"
    assert [s["description"] for s in data["stages"]] == ["Deposit", "Balance"]
    assert all(s["status"] == PaymentStageStatus.PENDING for s in data["stages"])


@pytest.mark.parametrize("existing,submitted", [(3, 2), (1, 4), (2, 0)])
def test_replace_with_new_stages_keeps_exactly_those(client, db, make_plan, existing, submitted):
    plan = make_plan([(100.0, _due(i + 1), PaymentStageStatus.PENDING) for i in range(existing)])

    res = client.post(
        f"/api/v1/payment-plans/proposals/{plan.proposal_id}/payment-plan",
        json={
            "totalAmount": 100 * submitted,
            "stages": [_stage_json(f"New {i}", 100, i + 5) for i in range(submitted)],
        },
    )

    assert res.status_code == 200
    assert db.query(PaymentStage).filter(PaymentStage.payment_plan_id == plan.id).count() == submitted


def test_replace_never_drops_paid_or_processing_stages(db, make_plan):
    plan = make_plan([
        (1000.0, _due(-10), PaymentStageStatus.PAID),
        (1000.0, _due(5), PaymentStageStatus.PROCESSING),
        (1000.0, _due(30), PaymentStageStatus.PENDING),
    ])
    paid_id, processing_id, _ = [s.id for s in plan.stages]

    PaymentPlanService.replace_plan(
        db, plan.proposal_id, 3500.0, "eur",
        [
            PaymentStageInput(id=processing_id, description="Changed", amount=1.0, due_date=_due(1)),
            PaymentStageInput(description="Final balance", amount=1500.0, due_date=_due(40)),
        ],
    )

    stages = {s.id: s for s in db.query(PaymentStage).filter(PaymentStage.payment_plan_id == plan.id)}
    assert paid_id in stages and processing_id in stages
    assert len(stages) == 3
    assert stages[processing_id].amount == 1000.0
    assert stages[processing_id].description == "Installment 2"


def test_replace_updates_pending_stage_in_place(client, db, make_plan):
    plan = make_plan([(500.0, _due(10), PaymentStageStatus.PENDING)])
    stage_id = plan.stages[0].id

    res = client.post(
        f"/api/v1/payment-plans/proposals/{plan.proposal_id}/payment-plan",
        json={"totalAmount": 750, "stages": [_stage_json("Deposit (revised)", 750, 12, stage_id=stage_id)]},
    )

    assert res.status_code == 200
    stage = db.get(PaymentStage, stage_id)
    db.refresh(stage)
    assert stage.amount == 750.0
    assert stage.description == "Deposit (revised)"


def test_replace_rejects_foreign_stage_id(client, make_plan):
    plan = make_plan([(500.0, _due(10), PaymentStageStatus.PENDING)])

    res = client.post(
        f"/api/v1/payment-plans/proposals/{plan.proposal_id}/payment-plan",
        json={"totalAmount": 500, "stages": [_stage_json("Deposit", 500, 10, stage_id="not-a-stage")]},
    )

    assert res.status_code == 400


def test_replace_validates_stage_amount(client, make_proposal):
    proposal = make_proposal()

    res = client.post(
        f"/api/v1/payment-plans/proposals/{proposal.id}/payment-plan",
        json={"totalAmount": 500, "stages": [_stage_json("Deposit", 0, 10)]},
    )

    assert res.status_code == 400
    assert res.json()["success"] is False


def test_replace_unknown_proposal(client, db):
    res = client.post(
        "/api/v1/payment-plans/proposals/missing/payment-plan",
        json={"totalAmount": 0, "stages": []},
    )
    assert res.status_code == 404


def test_get_plan_missing(client, make_proposal):
    proposal = make_proposal()
    res = client.get(f"/api/v1/payment-plans/proposals/{proposal.id}/payment-plan")
    assert res.status_code == 404
    assert res.json()["message"] == "Payment plan not found for this proposal"


def test_get_plan_orders_stages_by_due_date(client, make_plan):
    plan = make_plan([
        (300.0, _due(60), PaymentStageStatus.PENDING),
        (100.0, _due(5), PaymentStageStatus.PENDING),
    ])

    res = client.get(f"/api/v1/payment-plans/proposals/{plan.proposal_id}/payment-plan")

    assert [s["amount"] for s in res.json()["data"]["stages"]] == [100.0, 300.0]


# ─── Delete ──────────────────────────────────────────────────────────

@pytest.mark.parametrize("status", [PaymentStageStatus.PAID, PaymentStageStatus.PROCESSING])
def test_delete_locked_stage_rejected(client, db, make_plan, status):
    plan = make_plan([(100.0, _due(5), status)])
    stage_id = plan.stages[0].id

    res = client.delete(f"/api/v1/payment-plans/payment-stages/{stage_id}")

    assert res.status_code == 400
    assert res.json()["message"] == "Cannot delete a paid or processing payment stage"
    assert db.get(PaymentStage, stage_id) is not None


def test_delete_pending_stage(client, db, pending_stage):
    stage_id = pending_stage.id

    res = client.delete(f"/api/v1/payment-plans/payment-stages/{stage_id}")

    assert res.status_code == 200
    db.expire_all()
    assert db.get(PaymentStage, stage_id) is None


def test_delete_missing_stage(client, db):
    res = client.delete("/api/v1/payment-plans/payment-stages/missing")
    assert res.status_code == 404


# ─── Stage checkout ──────────────────────────────────────────────────

def test_create_stage_checkout(client, db, gateway, pending_stage):
    stage_id = pending_stage.id

    res = client.post(f"/api/v1/payment-plans/payment-stages/{stage_id}/create-intent")

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["paymentUrl"] == "https://checkout.stripe.test/cs_test_1"
    assert data["paymentStage"]["status"] == PaymentStageStatus.PROCESSING
    assert data["paymentStage"]["stripePaymentIntentId"] == "cs_test_1"

    gateway.create_customer.assert_called_once()
    assert gateway.create_price.call_args.kwargs["unit_amount"] == 250000
    session_kwargs = gateway.create_checkout_session.call_args.kwargs
    assert session_kwargs["success_url"].endswith(f"&stageId={stage_id}")
    assert session_kwargs["cancel_url"].endswith(f"?stageId={stage_id}")
    assert session_kwargs["customer_id"] == "cus_123"
    assert session_kwargs["metadata"]["paymentStageId"] == stage_id


def test_create_stage_checkout_reuses_stripe_customer(db, gateway, pending_stage):
    customer = pending_stage.payment_plan.proposal.customer
    customer.stripe_customer_id = "cus_existing"
    db.commit()

    PaymentPlanService.create_stage_checkout(db, gateway, pending_stage.id)

    gateway.create_customer.assert_not_called()
    assert gateway.create_checkout_session.call_args.kwargs["customer_id"] == "cus_existing"


def test_create_stage_checkout_for_paid_stage(client, gateway, make_plan):
    plan = make_plan([(100.0, _due(-5), PaymentStageStatus.PAID)])

    res = client.post(f"/api/v1/payment-plans/payment-stages/{plan.stages[0].id}/create-intent")

    assert res.status_code == 400
    assert res.json()["message"] == "This payment stage has already been paid"
    gateway.create_checkout_session.assert_not_called()


def test_client_stage_view(client, pending_stage):
    res = client.get(f"/api/v1/payment-plans/client/payment-stages/{pending_stage.id}")

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["id"] == pending_stage.id
    assert data["paymentPlan"]["id"] == pending_stage.payment_plan_id
    assert data["proposal"]["name"] == "Rossi & Bianchi Wedding"


def test_client_stage_view_missing(client, db):
    res = client.get("/api/v1/payment-plans/client/payment-stages/missing")
    assert res.status_code == 404
    assert res.json()["message"] == "Payment stage not found"


# ─── Service charges ─────────────────────────────────────────────────

def test_service_charge_increments_latest_pending_stage(client, db, make_plan):
    plan = make_plan([
        (1000.0, _due(-5), PaymentStageStatus.PAID),
        (1000.0, _due(20), PaymentStageStatus.PENDING),
        (2000.0, _due(50), PaymentStageStatus.PENDING),
    ])

    res = client.post(
        f"/api/v1/payment-plans/proposals/{plan.proposal_id}/payment-plan/charges",
        json={"title": "Fireworks", "amount": 350},
    )

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["totalAmount"] == 4350.0
    assert [s["amount"] for s in data["stages"]] == [1000.0, 1000.0, 2350.0]


def test_service_charge_creates_stage_when_nothing_pending(db, make_plan):
    plan = make_plan([(1000.0, _due(-5), PaymentStageStatus.PAID)])
    now = datetime(2026, 5, 1, 12, 0)

    updated = PaymentPlanService.apply_service_charge(db, plan.proposal_id, "Late checkout", 120.0, now=now)

    assert updated.total_amount == 1120.0
    new_stage = [s for s in updated.stages if s.status == PaymentStageStatus.PENDING][0]
    assert new_stage.description == "Payment for custom service: Late checkout"
    assert new_stage.amount == 120.0
    assert new_stage.due_date == now + timedelta(days=7)


def test_service_charge_requires_plan(db, make_proposal):
    proposal = make_proposal()
    with pytest.raises(NotFoundError):
        PaymentPlanService.apply_service_charge(db, proposal.id, "Extra", 10.0)


def test_delete_stage_service_raises_invalid_state(db, make_plan):
    plan = make_plan([(100.0, _due(5), PaymentStageStatus.PAID)])
    with pytest.raises(InvalidStateError):
        PaymentPlanService.delete_stage(db, plan.stages[0].id)
