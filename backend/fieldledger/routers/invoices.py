from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from fieldledger.core.deps import get_company_ids, get_current_profile
from fieldledger.db.session import get_db
from fieldledger.models.company import Profile
from fieldledger.schemas.approval import ApprovalOutcome, ApprovalRequestRead
from fieldledger.schemas.invoice import (
    InvoiceAuditLogRead,
    InvoiceCreate,
    InvoiceDetail,
    InvoiceIssuePayload,
    InvoiceRead,
    InvoiceUpdate,
    InvoiceUpdateResult,
)
from fieldledger.services import approvals as approval_service
from fieldledger.services import invoices as invoice_service

router = APIRouter(prefix="/api/invoices", tags=["invoices"])


def _detail(invoice, totals) -> InvoiceDetail:
    return InvoiceDetail(
        invoice=InvoiceRead.model_validate(invoice),
        deposits_applied=totals.deposits_applied,
        amount_paid=totals.amount_paid,
        balance_due=totals.balance_due,
        derived_status=totals.invoice_status,
    )


@router.post("", response_model=InvoiceUpdateResult, status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: InvoiceCreate,
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
    company_ids: List[int] = Depends(get_company_ids),
) -> InvoiceUpdateResult:
    result = invoice_service.create_invoice(db, company_ids=company_ids, actor_id=current_profile.id, payload=payload)
    db.commit()
    return InvoiceUpdateResult.model_validate(result)


@router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    company_ids: List[int] = Depends(get_company_ids),
) -> InvoiceDetail:
    invoice, totals = invoice_service.get_invoice_detail(db, invoice_id=invoice_id, company_ids=company_ids)
    return _detail(invoice, totals)


@router.put("/{invoice_id}", response_model=ApprovalOutcome)
def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdate,
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
) -> ApprovalOutcome:
    outcome = approval_service.request_invoice_update(
        db,
        profile_id=current_profile.id,
        invoice_id=invoice_id,
        payload=payload,
    )
    db.commit()
    return ApprovalOutcome(
        approval=ApprovalRequestRead.model_validate(outcome["approval"]),
        applied=outcome["applied"],
        result=outcome["result"],
    )


@router.delete("/{invoice_id}", response_model=dict)
def delete_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
    company_ids: List[int] = Depends(get_company_ids),
) -> dict:
    result = invoice_service.delete_invoice(db, invoice_id=invoice_id, company_ids=company_ids, actor_id=current_profile.id)
    db.commit()
    return result


@router.post("/{invoice_id}/issue", response_model=InvoiceDetail)
def issue_invoice(
    invoice_id: int,
    payload: InvoiceIssuePayload,
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
    company_ids: List[int] = Depends(get_company_ids),
) -> InvoiceDetail:
    invoice = invoice_service.issue_invoice(
        db,
        invoice_id=invoice_id,
        company_ids=company_ids,
        actor_id=current_profile.id,
        due_date=payload.due_date,
        terms=payload.terms,
    )
    db.commit()
    invoice, totals = invoice_service.get_invoice_detail(db, invoice_id=invoice.id, company_ids=company_ids)
    return _detail(invoice, totals)


@router.get("/{invoice_id}/audit", response_model=List[InvoiceAuditLogRead])
def list_invoice_audit(
    invoice_id: int,
    db: Session = Depends(get_db),
    company_ids: List[int] = Depends(get_company_ids),
) -> List[InvoiceAuditLogRead]:
    rows = invoice_service.list_invoice_audit_logs(db, invoice_id=invoice_id, company_ids=company_ids)
    return [InvoiceAuditLogRead.model_validate(row) for row in rows]
