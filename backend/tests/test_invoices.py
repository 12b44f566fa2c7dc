"""Tests for the invoice engine (create, edit, issue, delete, deposits)."""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from conftest import make_customer, make_payment
from fieldledger.core.errors import (
    Conflict,
    DepositExceedsBalance,
    IllegalStateTransition,
    NotFoundOrUnauthorized,
    ValidationError,
)
from fieldledger.models.enums import InvoiceAuditAction, InvoiceLineType, InvoiceStatus
from fieldledger.models.invoice import Invoice, InvoiceLine
from fieldledger.models.payment import PaymentApplication
from fieldledger.schemas.invoice import InvoiceCreate, InvoiceUpdate
from fieldledger.services import invoices as invoice_service
from fieldledger.services.ledger import get_unapplied_amount

LABOR = {"description": "Labor", "quantity": 2, "unit_price": 50, "tax_rate": 8}


def _deposit(payment_id, amount):
    return {
        "description": "Deposit Applied",
        "quantity": 1,
        "unit_price": -amount,
        "line_type": InvoiceLineType.DEPOSIT_APPLIED.value,
        "applied_payment_id": payment_id,
    }


def _create(db, owner, customer, lines, **extra):
    return invoice_service.create_invoice(
        db,
        company_ids=[customer.company_id],
        actor_id=owner.id,
        payload=InvoiceCreate(customer_id=customer.id, lines=lines, **extra),
    )


def _update(db, owner, invoice_id, company_id, lines, **extra):
    return invoice_service.update_invoice(
        db,
        invoice_id=invoice_id,
        company_ids=[company_id],
        actor_id=owner.id,
        payload=InvoiceUpdate(lines=lines, **extra),
    )


def test_create_numbers_and_totals(db, owner, customer):
    first = _create(db, owner, customer, [LABOR])
    second = _create(db, owner, customer, [{"description": "Trip charge", "quantity": 1, "unit_price": 35}])
    db.commit()

    assert first["invoice_number"] == "INV-10001"
    assert second["invoice_number"] == "INV-10002"
    assert first["summary"] == {
        "subtotal": Decimal("100.00"),
        "tax": Decimal("8.00"),
        "total": Decimal("108.00"),
        "balance": Decimal("108.00"),
    }

    invoice = db.get(Invoice, first["invoice_id"])
    assert invoice.status == InvoiceStatus.DRAFT
    assert invoice.version == 1
    assert invoice.total_amount == Decimal("108.00")
    assert invoice.lines[0].tax_rate == Decimal("0.0800")


def test_deposit_line_on_edit_draws_down_payment(db, owner, customer):
    payment = make_payment(db, customer, owner, "100.00")
    created = _create(db, owner, customer, [LABOR])

    result = _update(db, owner, created["invoice_id"], customer.company_id, [LABOR, _deposit(payment.id, 30)])
    db.commit()

    assert result["summary"] == {
        "subtotal": Decimal("100.00"),
        "tax": Decimal("8.00"),
        "total": Decimal("108.00"),
        "balance": Decimal("78.00"),
    }
    assert get_unapplied_amount(db, payment.id) == Decimal("70.00")

    deposit_line = db.scalar(
        select(InvoiceLine).where(InvoiceLine.line_type == InvoiceLineType.DEPOSIT_APPLIED)
    )
    assert deposit_line.quantity == Decimal("1.00")
    assert deposit_line.unit_price == Decimal("-30.00")
    assert deposit_line.taxable is False
    application = db.scalar(select(PaymentApplication).where(PaymentApplication.payment_id == payment.id))
    assert application.invoice_line_id == deposit_line.id
    assert application.applied_amount == Decimal("30.00")


def test_deposit_cannot_exceed_unapplied_on_another_invoice(db, owner, customer):
    payment = make_payment(db, customer, owner, "100.00")
    created = _create(db, owner, customer, [LABOR])
    _update(db, owner, created["invoice_id"], customer.company_id, [LABOR, _deposit(payment.id, 30)])
    db.commit()

    with pytest.raises(DepositExceedsBalance):
        _create(db, owner, customer, [LABOR, _deposit(payment.id, 80)])
    db.rollback()

    assert get_unapplied_amount(db, payment.id) == Decimal("70.00")


def test_edit_may_reuse_what_the_invoice_already_holds(db, owner, customer):
    payment = make_payment(db, customer, owner, "100.00")
    created = _create(db, owner, customer, [LABOR, _deposit(payment.id, 60)])
    db.commit()
    assert get_unapplied_amount(db, payment.id) == Decimal("40.00")

    result = _update(db, owner, created["invoice_id"], customer.company_id, [LABOR, _deposit(payment.id, 100)])
    db.commit()

    assert result["summary"]["balance"] == Decimal("8.00")
    assert get_unapplied_amount(db, payment.id) == Decimal("0.00")


def test_deposit_from_another_customer_is_rejected(db, owner, company, customer):
    stranger = make_customer(db, company, name="Other Customer")
    payment = make_payment(db, stranger, owner, "50.00")
    db.commit()

    with pytest.raises(ValidationError):
        _create(db, owner, customer, [LABOR, _deposit(payment.id, 10)])


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("0.004")])
def test_zero_deposit_line_is_rejected_on_create(db, owner, customer, amount):
    payment = make_payment(db, customer, owner, "100.00")
    db.commit()

    with pytest.raises(ValidationError):
        _create(db, owner, customer, [LABOR, _deposit(payment.id, amount)])
    db.rollback()

    assert db.scalars(select(Invoice)).all() == []
    assert db.scalars(select(PaymentApplication)).all() == []
    assert get_unapplied_amount(db, payment.id) == Decimal("100.00")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("0.004")])
def test_zero_deposit_line_is_rejected_on_edit(db, owner, customer, amount):
    payment = make_payment(db, customer, owner, "100.00")
    created = _create(db, owner, customer, [LABOR, _deposit(payment.id, 30)])
    db.commit()

    with pytest.raises(ValidationError):
        _update(db, owner, created["invoice_id"], customer.company_id, [LABOR, _deposit(payment.id, amount)])
    db.rollback()

    invoice = db.get(Invoice, created["invoice_id"])
    db.refresh(invoice)
    assert len(invoice.lines) == 2
    applications = db.scalars(select(PaymentApplication)).all()
    assert [application.applied_amount for application in applications] == [Decimal("30.00")]
    assert get_unapplied_amount(db, payment.id) == Decimal("70.00")


def test_edit_without_lines_keeps_existing_rows(db, owner, customer):
    payment = make_payment(db, customer, owner, "100.00")
    created = _create(db, owner, customer, [LABOR, _deposit(payment.id, 30)])
    db.commit()

    with pytest.raises(ValidationError):
        _update(db, owner, created["invoice_id"], customer.company_id, [])
    db.rollback()

    invoice = db.get(Invoice, created["invoice_id"])
    db.refresh(invoice)
    assert len(invoice.lines) == 2
    assert get_unapplied_amount(db, payment.id) == Decimal("70.00")


def test_stale_expected_version_is_a_conflict(db, owner, customer):
    created = _create(db, owner, customer, [LABOR])
    _update(db, owner, created["invoice_id"], customer.company_id, [LABOR], expected_version=1)
    db.commit()
    assert db.get(Invoice, created["invoice_id"]).version == 2

    with pytest.raises(Conflict):
        _update(db, owner, created["invoice_id"], customer.company_id, [LABOR], expected_version=1)


def test_edit_applies_scalar_fields_and_audits(db, owner, customer):
    created = _create(db, owner, customer, [LABOR], terms="Net 30")
    _update(
        db,
        owner,
        created["invoice_id"],
        customer.company_id,
        [{"description": "Labor", "quantity": 1, "unit_price": 75}],
        notes="Updated after walkthrough",
        due_date=date(2026, 11, 30),
    )
    db.commit()

    invoice = db.get(Invoice, created["invoice_id"])
    assert invoice.notes == "Updated after walkthrough"
    assert invoice.due_date == date(2026, 11, 30)
    assert invoice.terms == "Net 30"
    assert invoice.subtotal == Decimal("75.00")

    logs = invoice_service.list_invoice_audit_logs(db, invoice_id=invoice.id, company_ids=[customer.company_id])
    assert [log.action for log in logs] == [InvoiceAuditAction.CREATE, InvoiceAuditAction.EDIT]
    edit = logs[1].diff_json
    assert edit["before"]["total_amount"] == "108.00"
    assert edit["after"]["total_amount"] == "75.00"
    assert edit["after"]["lines"][0]["description"] == "Labor"


def test_delete_releases_deposits_and_keeps_audit_trail(db, owner, customer):
    payment = make_payment(db, customer, owner, "100.00")
    created = _create(db, owner, customer, [LABOR, _deposit(payment.id, 30)])
    db.commit()

    assert invoice_service.delete_invoice(
        db, invoice_id=created["invoice_id"], company_ids=[customer.company_id], actor_id=owner.id
    ) == {"success": True}
    db.commit()

    assert db.get(Invoice, created["invoice_id"]) is None
    assert get_unapplied_amount(db, payment.id) == Decimal("100.00")
    logs = invoice_service.list_invoice_audit_logs(
        db, invoice_id=created["invoice_id"], company_ids=[customer.company_id]
    )
    assert [log.action for log in logs] == [InvoiceAuditAction.CREATE, InvoiceAuditAction.DELETE]
    assert "after" not in logs[1].diff_json


def test_issue_moves_draft_once(db, owner, customer):
    created = _create(db, owner, customer, [LABOR])
    invoice = invoice_service.issue_invoice(
        db,
        invoice_id=created["invoice_id"],
        company_ids=[customer.company_id],
        actor_id=owner.id,
        due_date=date(2026, 12, 1),
        terms="Net 15",
    )
    db.commit()

    assert invoice.status == InvoiceStatus.ISSUED
    assert invoice.issued_at is not None
    assert invoice.terms == "Net 15"

    with pytest.raises(IllegalStateTransition):
        invoice_service.issue_invoice(
            db,
            invoice_id=invoice.id,
            company_ids=[customer.company_id],
            actor_id=owner.id,
            due_date=date(2026, 12, 1),
        )


def test_create_draws_down_requested_deposits_up_to_total(db, owner, customer):
    big = make_payment(db, customer, owner, "100.00")
    small = make_payment(db, customer, owner, "20.00")
    db.commit()

    result = _create(
        db,
        owner,
        customer,
        [{"description": "Parts", "quantity": 1, "unit_price": 110}],
        deposit_ids=[big.id, small.id],
    )
    db.commit()

    assert result["summary"]["total"] == Decimal("110.00")
    assert result["summary"]["balance"] == Decimal("0.00")
    assert get_unapplied_amount(db, big.id) == Decimal("0.00")
    assert get_unapplied_amount(db, small.id) == Decimal("10.00")


def test_create_rejects_non_deposit_payment_in_deposit_ids(db, owner, customer):
    payment = make_payment(db, customer, owner, "50.00", is_deposit=False)
    db.commit()

    with pytest.raises(ValidationError):
        _create(db, owner, customer, [LABOR], deposit_ids=[payment.id])


def test_invoice_outside_company_is_not_found(db, owner, customer):
    created = _create(db, owner, customer, [LABOR])
    db.commit()

    with pytest.raises(NotFoundOrUnauthorized):
        invoice_service.get_invoice(db, invoice_id=created["invoice_id"], company_ids=[customer.company_id + 1])
