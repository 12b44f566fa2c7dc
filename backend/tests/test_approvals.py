"""Tests for the owner approval engine."""
from decimal import Decimal

import pytest
from sqlalchemy import select

from conftest import make_payment, make_profile
from fieldledger.core.errors import CannotApproveOwnRequest, DepositExceedsBalance, Forbidden, ValidationError
from fieldledger.models.approval import ApprovalRequest
from fieldledger.models.audit import ActivityLog
from fieldledger.models.company import CompanyOwner
from fieldledger.models.enums import ApprovalAction, ApprovalStatus, InvoiceLineType, JobStatus
from fieldledger.models.invoice import Invoice
from fieldledger.schemas.approval import JobUpdatePayload
from fieldledger.schemas.invoice import InvoiceCreate, InvoiceUpdate
from fieldledger.services import approvals
from fieldledger.services.invoices import create_invoice
from fieldledger.services.ledger import get_unapplied_amount


@pytest.fixture()
def partners(db, company):
    """Two more owners, making three in total."""
    added = []
    for name in ("Bea Partner", "Cal Partner"):
        profile = make_profile(db, name)
        db.add(CompanyOwner(company_id=company.id, profile_id=profile.id))
        added.append(profile)
    db.commit()
    return added


def _invoice(db, owner, customer):
    result = create_invoice(
        db,
        company_ids=[customer.company_id],
        actor_id=owner.id,
        payload=InvoiceCreate(
            customer_id=customer.id,
            lines=[{"description": "Labor", "quantity": 2, "unit_price": 50, "tax_rate": 8}],
        ),
    )
    db.commit()
    return db.get(Invoice, result["invoice_id"])


def test_quorum_rule():
    assert approvals.required_approvals_for(1) == 0
    assert approvals.required_approvals_for(2) == 1
    assert approvals.required_approvals_for(5) == 1


def test_single_owner_pay_change_applies_immediately(db, owner, employee):
    outcome = approvals.request_employee_pay_change(
        db, profile_id=owner.id, employee_id=employee.id, hourly_rate=Decimal("30")
    )
    db.commit()

    request = outcome["approval"]
    assert outcome["applied"] is True
    assert request.status == ApprovalStatus.APPLIED
    assert request.required_approvals == 0
    assert request.payload == {"hourly_rate": "30.00"}
    assert request.summary == "Pay change: $25.00 → $30.00"
    assert employee.hourly_rate == Decimal("30.00")

    types = db.scalars(select(ActivityLog.type).order_by(ActivityLog.id)).all()
    assert types == ["APPROVAL_APPROVED", "EMPLOYEE_PAY_CHANGED", "APPROVAL_APPLIED"]


def test_unchanged_pay_rate_creates_nothing(db, owner, employee):
    outcome = approvals.request_employee_pay_change(
        db, profile_id=owner.id, employee_id=employee.id, hourly_rate=Decimal("25.00")
    )
    assert outcome == {"approval": None, "applied": False, "result": None}
    assert db.scalars(select(ApprovalRequest)).all() == []


def test_non_owner_cannot_request(db, employee):
    outsider = make_profile(db, "Otto Outsider")
    with pytest.raises(Forbidden):
        approvals.request_employee_pay_change(
            db, profile_id=outsider.id, employee_id=employee.id, hourly_rate=Decimal("40")
        )


def test_multi_owner_request_waits_for_another_owner(db, owner, partners, employee):
    bea, cal = partners
    outcome = approvals.request_employee_pay_change(
        db, profile_id=owner.id, employee_id=employee.id, hourly_rate=Decimal("32.50")
    )
    db.commit()
    request = outcome["approval"]
    assert outcome["applied"] is False
    assert request.status == ApprovalStatus.PENDING
    assert request.required_approvals == 1

    with pytest.raises(CannotApproveOwnRequest):
        approvals.approve(db, request_id=request.id, profile_id=owner.id)

    approvals.approve(db, request_id=request.id, profile_id=bea.id, note="Fine by me")
    db.commit()
    assert request.status == ApprovalStatus.APPLIED
    assert request.applied_by == bea.id
    assert employee.hourly_rate == Decimal("32.50")

    # A second vote on a settled request changes nothing.
    again = approvals.approve(db, request_id=request.id, profile_id=cal.id)
    assert again.status == ApprovalStatus.APPLIED
    assert len(request.decisions) == 1


def test_reject_and_cancel_rules(db, owner, partners, employee):
    bea, cal = partners
    first = approvals.request_employee_pay_change(
        db, profile_id=owner.id, employee_id=employee.id, hourly_rate=Decimal("28")
    )["approval"]
    db.commit()

    with pytest.raises(Forbidden):
        approvals.reject(db, request_id=first.id, profile_id=owner.id)
    approvals.reject(db, request_id=first.id, profile_id=cal.id, note="Too early")
    db.commit()
    assert first.status == ApprovalStatus.REJECTED
    assert first.rejected_at is not None
    assert employee.hourly_rate == Decimal("25.00")

    second = approvals.request_employee_pay_change(
        db, profile_id=owner.id, employee_id=employee.id, hourly_rate=Decimal("29")
    )["approval"]
    db.commit()
    with pytest.raises(Forbidden):
        approvals.cancel(db, request_id=second.id, profile_id=bea.id)
    approvals.cancel(db, request_id=second.id, profile_id=owner.id)
    db.commit()
    assert second.status == ApprovalStatus.CANCELLED

    pending = approvals.list_approval_requests(
        db, profile_id=bea.id, company_id=employee.company_id, status=ApprovalStatus.PENDING
    )
    assert pending == []
    everything = approvals.list_approval_requests(db, profile_id=bea.id, company_id=employee.company_id)
    assert {row.id for row in everything} == {first.id, second.id}


def test_job_update_marks_completion(db, owner, job):
    outcome = approvals.request_job_update(
        db,
        profile_id=owner.id,
        job_id=job.id,
        updates=JobUpdatePayload(title="Replace tank and valve", status=JobStatus.DONE),
    )
    db.commit()

    assert outcome["approval"].action == ApprovalAction.JOB_UPDATE
    assert outcome["approval"].status == ApprovalStatus.APPLIED
    assert "completed_at" in outcome["approval"].payload
    assert job.title == "Replace tank and valve"
    assert job.status == JobStatus.DONE
    assert job.completed_at is not None


def test_job_update_cannot_clear_required_fields(db, owner, job):
    with pytest.raises(ValidationError):
        approvals.request_job_update(db, profile_id=owner.id, job_id=job.id, updates=JobUpdatePayload(title=None))


def test_empty_job_update_is_a_no_op(db, owner, job):
    outcome = approvals.request_job_update(db, profile_id=owner.id, job_id=job.id, updates=JobUpdatePayload())
    assert outcome["approval"] is None


def test_invoice_update_goes_through_approval(db, owner, partners, customer):
    bea, _ = partners
    invoice = _invoice(db, owner, customer)
    payload = InvoiceUpdate(lines=[{"description": "Labor", "quantity": 3, "unit_price": 50, "tax_rate": 8}])

    outcome = approvals.request_invoice_update(db, profile_id=owner.id, invoice_id=invoice.id, payload=payload)
    db.commit()
    request = outcome["approval"]
    assert request.status == ApprovalStatus.PENDING
    assert request.entity_label == invoice.invoice_number
    assert invoice.total_amount == Decimal("108.00")

    approvals.approve(db, request_id=request.id, profile_id=bea.id)
    db.commit()
    db.refresh(invoice)
    assert request.status == ApprovalStatus.APPLIED
    assert invoice.total_amount == Decimal("162.00")


def test_failed_apply_is_recorded(db, owner, customer):
    payment = make_payment(db, customer, owner, "20.00")
    invoice = _invoice(db, owner, customer)
    payload = InvoiceUpdate(
        lines=[
            {"description": "Labor", "quantity": 2, "unit_price": 50, "tax_rate": 8},
            {
                "description": "Deposit Applied",
                "quantity": 1,
                "unit_price": -50,
                "line_type": InvoiceLineType.DEPOSIT_APPLIED.value,
                "applied_payment_id": payment.id,
            },
        ]
    )

    with pytest.raises(DepositExceedsBalance):
        approvals.request_invoice_update(db, profile_id=owner.id, invoice_id=invoice.id, payload=payload)

    request = db.scalars(select(ApprovalRequest)).one()
    assert request.status == ApprovalStatus.FAILED
    assert request.failure_reason == "Deposit amount exceeds available balance"
    assert request.applied_by == owner.id
    db.refresh(invoice)
    assert len(invoice.lines) == 1
    assert get_unapplied_amount(db, payment.id) == Decimal("20.00")
    activity = db.scalars(
        select(ActivityLog).where(ActivityLog.entity_table == "approval_requests", ActivityLog.entity_id == request.id)
    ).all()
    failed = [row for row in activity if row.type == "APPROVAL_FAILED"]
    assert len(failed) == 1
    assert failed[0].actor_profile_id == owner.id
