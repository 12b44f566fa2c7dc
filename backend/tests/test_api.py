"""HTTP-level tests for the FieldLedger API."""
from decimal import Decimal

from conftest import auth, make_payment, make_profile
from fieldledger.models.company import CompanyOwner

LABOR = {"description": "Labor", "quantity": 2, "unit_price": 50, "tax_rate": 8}


def _create_invoice(client, owner, customer, lines=None):
    response = client.post(
        "/api/invoices",
        json={"customer_id": customer.id, "lines": lines or [LABOR]},
        headers=auth(owner),
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_healthcheck(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_missing_profile_header_is_unauthorized(client, customer):
    response = client.get("/api/invoices/1")
    assert response.status_code == 401


def test_invoice_lifecycle(client, owner, customer):
    created = _create_invoice(client, owner, customer)
    assert created["invoice_number"] == "INV-10001"
    assert Decimal(created["summary"]["total"]) == Decimal("108.00")

    invoice_id = created["invoice_id"]
    detail = client.get(f"/api/invoices/{invoice_id}", headers=auth(owner))
    assert detail.status_code == 200, detail.text
    body = detail.json()
    assert body["invoice"]["status"] == "draft"
    assert body["invoice"]["version"] == 1
    assert Decimal(body["balance_due"]) == Decimal("108.00")

    edited = client.put(
        f"/api/invoices/{invoice_id}",
        json={"lines": [{"description": "Labor", "quantity": 1, "unit_price": 90}], "expected_version": 1},
        headers=auth(owner),
    )
    assert edited.status_code == 200, edited.text
    outcome = edited.json()
    assert outcome["applied"] is True
    assert outcome["approval"]["status"] == "applied"
    assert Decimal(outcome["result"]["summary"]["total"]) == Decimal("90.00")

    stale = client.put(
        f"/api/invoices/{invoice_id}",
        json={"lines": [LABOR], "expected_version": 1},
        headers=auth(owner),
    )
    assert stale.status_code == 409
    assert stale.json()["code"] == "conflict"

    issued = client.post(f"/api/invoices/{invoice_id}/issue", json={"due_date": "2026-12-01"}, headers=auth(owner))
    assert issued.status_code == 200, issued.text
    assert issued.json()["invoice"]["status"] == "issued"

    audit = client.get(f"/api/invoices/{invoice_id}/audit", headers=auth(owner))
    assert audit.status_code == 200
    assert [row["action"] for row in audit.json()] == ["create", "edit", "issue"]

    deleted = client.delete(f"/api/invoices/{invoice_id}", headers=auth(owner))
    assert deleted.status_code == 200
    assert deleted.json() == {"success": True}
    assert client.get(f"/api/invoices/{invoice_id}", headers=auth(owner)).status_code == 404


def test_service_errors_carry_codes(client, db, owner, customer):
    payment = make_payment(db, customer, owner, "20.00")
    db.commit()

    response = client.post(
        "/api/invoices",
        json={
            "customer_id": customer.id,
            "lines": [
                LABOR,
                {
                    "description": "Deposit Applied",
                    "quantity": 1,
                    "unit_price": -50,
                    "line_type": "deposit_applied",
                    "applied_payment_id": payment.id,
                },
            ],
        },
        headers=auth(owner),
    )
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "deposit_exceeds_balance"
    assert body["data"]["available"] == "20.00"

    empty = client.post("/api/invoices", json={"customer_id": customer.id, "lines": []}, headers=auth(owner))
    assert empty.status_code == 422
    assert empty.json()["code"] == "validation_error"


def test_payments_and_idempotent_application(client, owner, customer):
    created = _create_invoice(client, owner, customer)

    payment = client.post(
        "/api/payments",
        json={"customer_id": customer.id, "amount": "50.00", "method": "cash", "is_deposit": True, "deposit_type": "general"},
        headers=auth(owner),
    )
    assert payment.status_code == 201, payment.text
    payment_id = payment.json()["id"]

    unapplied = client.get(f"/api/customers/{customer.id}/unapplied-payments", headers=auth(owner))
    assert unapplied.status_code == 200
    assert [(row["id"], Decimal(row["unapplied_amount"])) for row in unapplied.json()] == [(payment_id, Decimal("50.00"))]

    body = {"invoice_id": created["invoice_id"], "payment_id": payment_id, "amount": "40.00"}
    headers = {**auth(owner), "Idempotency-Key": "apply-1"}
    first = client.post("/api/payment-applications", json=body, headers=headers)
    assert first.status_code == 201, first.text
    assert Decimal(first.json()["remaining_balance"]) == Decimal("68.00")

    replay = client.post("/api/payment-applications", json=body, headers=headers)
    assert replay.status_code == 201
    assert replay.json()["payment_application_id"] == first.json()["payment_application_id"]

    mismatch = client.post("/api/payment-applications", json={**body, "amount": "5.00"}, headers=headers)
    assert mismatch.status_code == 409

    remaining = client.get(f"/api/customers/{customer.id}/unapplied-payments", headers=auth(owner))
    assert [Decimal(row["unapplied_amount"]) for row in remaining.json()] == [Decimal("10.00")]


def test_approvals_endpoints(client, db, owner, company, employee):
    partner = make_profile(db, "Bea Partner")
    db.add(CompanyOwner(company_id=company.id, profile_id=partner.id))
    db.commit()

    requested = client.post(
        "/api/approvals/pay-change",
        json={"employee_id": employee.id, "hourly_rate": "31.00"},
        headers=auth(owner),
    )
    assert requested.status_code == 200, requested.text
    approval = requested.json()["approval"]
    assert approval["status"] == "pending"

    own = client.post(f"/api/approvals/{approval['id']}/approve", headers=auth(owner))
    assert own.status_code == 403
    assert own.json()["code"] == "cannot_approve_own_request"

    approved = client.post(
        f"/api/approvals/{approval['id']}/approve",
        json={"note": "ok"},
        headers=auth(partner),
    )
    assert approved.status_code == 200, approved.text
    assert approved.json()["status"] == "applied"
    assert approved.json()["decisions"][0]["note"] == "ok"

    listed = client.get("/api/approvals", params={"status": "applied"}, headers=auth(partner))
    assert listed.status_code == 200
    assert [row["id"] for row in listed.json()] == [approval["id"]]


def test_owner_endpoints(client, db, owner, company):
    newcomer = make_profile(db, "Nia Newcomer", email="nia@example.com")
    db.commit()

    created = client.post(
        "/api/owners/requests",
        json={"action": "add_owner", "target_email": "nia@example.com"},
        headers=auth(owner),
    )
    assert created.status_code == 201, created.text
    assert created.json()["status"] == "executed"

    owners = client.get("/api/owners", headers=auth(owner))
    assert owners.status_code == 200
    assert {row["profile_id"] for row in owners.json()} == {owner.id, newcomer.id}

    removal = client.post(
        "/api/owners/requests",
        json={"action": "remove_owner", "target_profile_id": newcomer.id},
        headers=auth(owner),
    )
    assert removal.status_code == 201
    request_id = removal.json()["id"]

    early = client.post(f"/api/owners/requests/{request_id}/finalize", headers=auth(owner))
    assert early.status_code == 400
    assert early.json()["code"] == "illegal_state_transition"

    requests = client.get("/api/owners/requests", headers=auth(newcomer))
    assert [row["id"] for row in requests.json()] == [request_id, created.json()["id"]]

    foreign = client.get("/api/owners", params={"company_id": company.id + 100}, headers=auth(owner))
    assert foreign.status_code == 403
