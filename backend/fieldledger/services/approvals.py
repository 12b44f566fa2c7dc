from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import pydantic
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fieldledger.core import rbac
from fieldledger.core.errors import (
    CannotApproveOwnRequest,
    Forbidden,
    MissingField,
    NotFoundOrUnauthorized,
    UnsupportedAction,
    ValidationError,
)
from fieldledger.core.observability import approval_transitions_total
from fieldledger.db.base import utcnow
from fieldledger.models.approval import ApprovalDecision, ApprovalRequest
from fieldledger.models.company import CompanyEmployee
from fieldledger.models.customer import Job
from fieldledger.models.enums import ApprovalAction, ApprovalStatus, Decision, JobStatus
from fieldledger.models.invoice import Invoice
from fieldledger.schemas.approval import JobUpdatePayload
from fieldledger.schemas.invoice import InvoiceUpdate
from fieldledger.services.activity import log_activity
from fieldledger.services.invoices import update_invoice

logger = logging.getLogger(__name__)

ApprovalHandler = Callable[[Session, ApprovalRequest, int], Any]

# Job columns that cannot be cleared through an edit request.
REQUIRED_JOB_FIELDS = {"title", "status"}

SUMMARY_PREFIXES: dict[ApprovalAction, str] = {
    ApprovalAction.EMPLOYEE_PAY_CHANGE: "Pay change",
    ApprovalAction.JOB_UPDATE: "Job edit",
    ApprovalAction.INVOICE_UPDATE: "Invoice update",
}


def required_approvals_for(owner_count: int) -> int:
    return 1 if owner_count > 1 else 0


def _build_summary(action: ApprovalAction, details: str) -> str:
    prefix = SUMMARY_PREFIXES.get(action)
    return f"{prefix}: {details}" if prefix else details


def _apply_employee_pay_change(db: Session, request: ApprovalRequest, actor_id: int) -> None:
    payload = request.payload or {}
    if "hourly_rate" not in payload:
        raise MissingField("Missing hourly rate in approval payload")
    employee = db.get(CompanyEmployee, request.entity_id)
    if not employee or employee.company_id != request.company_id:
        raise NotFoundOrUnauthorized("Employee not found")
    rate = payload["hourly_rate"]
    employee.hourly_rate = Decimal(str(rate)) if rate is not None else None
    db.add(employee)
    log_activity(
        db,
        company_id=request.company_id,
        actor_profile_id=actor_id,
        activity_type="EMPLOYEE_PAY_CHANGED",
        entity_table="company_employees",
        entity_id=employee.id,
        message="Hourly rate changed via approval",
        payload={"approval_id": request.id, "hourly_rate": rate},
    )


def _apply_job_update(db: Session, request: ApprovalRequest, actor_id: int) -> None:
    job = db.get(Job, request.entity_id)
    if not job or job.company_id != request.company_id:
        raise NotFoundOrUnauthorized("Job not found")
    payload = dict(request.payload or {})
    completed_at = payload.pop("completed_at", None)
    known = {key: value for key, value in payload.items() if key in JobUpdatePayload.model_fields}
    try:
        updates = JobUpdatePayload.model_validate(known)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid job update payload: {exc.errors()[0]['msg']}") from exc

    for field in updates.model_fields_set:
        setattr(job, field, getattr(updates, field))
    if completed_at:
        job.completed_at = datetime.fromisoformat(completed_at)
    db.add(job)
    log_activity(
        db,
        company_id=request.company_id,
        actor_profile_id=actor_id,
        activity_type="JOB_UPDATED",
        entity_table="jobs",
        entity_id=job.id,
        message="Job updated via approval",
        payload={"approval_id": request.id, "fields": sorted(updates.model_fields_set)},
    )


def _apply_invoice_update(db: Session, request: ApprovalRequest, actor_id: int) -> dict:
    try:
        payload = InvoiceUpdate.model_validate(request.payload or {})
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid invoice update payload: {exc.errors()[0]['msg']}") from exc
    return update_invoice(
        db,
        invoice_id=request.entity_id,
        company_ids=[request.company_id],
        actor_id=actor_id,
        payload=payload,
    )


APPROVAL_HANDLERS: dict[ApprovalAction, ApprovalHandler] = {
    ApprovalAction.EMPLOYEE_PAY_CHANGE: _apply_employee_pay_change,
    ApprovalAction.JOB_UPDATE: _apply_job_update,
    ApprovalAction.INVOICE_UPDATE: _apply_invoice_update,
}

_unhandled = set(ApprovalAction) - set(APPROVAL_HANDLERS)
if _unhandled:
    raise RuntimeError(f"Approval actions without a handler: {sorted(a.value for a in _unhandled)}")


def apply_approval_request(db: Session, request: ApprovalRequest, actor_id: int) -> Any:
    handler = APPROVAL_HANDLERS.get(request.action)
    if handler is None:
        raise UnsupportedAction("Unsupported approval action")
    return handler(db, request, actor_id)


def _record_transition(db: Session, request: ApprovalRequest, actor_id: int, *, message: str) -> None:
    approval_transitions_total.labels(action=request.action.value, status=request.status.value).inc()
    log_activity(
        db,
        company_id=request.company_id,
        actor_profile_id=actor_id,
        activity_type=f"APPROVAL_{request.status.value.upper()}",
        entity_table="approval_requests",
        entity_id=request.id,
        message=message,
        payload={"action": request.action.value, "entity_table": request.entity_table, "entity_id": request.entity_id},
    )
    logger.info(
        message,
        extra={"approval_id": request.id, "company_id": request.company_id, "profile_id": actor_id},
    )


def _apply_and_record(db: Session, request: ApprovalRequest, actor_id: int) -> Any:
    """Run the mutation for an approved request and move it to applied.

    A failed mutation is rolled back, the request is committed as ``failed``
    and the original error propagates to the caller.
    """
    now = utcnow()
    try:
        with db.begin_nested():
            result = apply_approval_request(db, request, actor_id)
    except Exception as exc:
        request.status = ApprovalStatus.FAILED
        request.applied_at = now
        request.applied_by = actor_id
        request.failure_reason = str(exc)[:2000]
        db.add(request)
        db.flush()
        _record_transition(db, request, actor_id, message=f"Approval {request.id} failed")
        logger.warning(
            "approval apply failed",
            extra={"approval_id": request.id, "company_id": request.company_id, "error_code": getattr(exc, "code", None)},
        )
        db.commit()
        raise

    request.status = ApprovalStatus.APPLIED
    request.applied_at = now
    request.applied_by = actor_id
    db.add(request)
    db.flush()
    _record_transition(db, request, actor_id, message=f"Approval {request.id} applied")
    return result


def create_approval_request(
    db: Session,
    *,
    company_id: int,
    requested_by: int,
    action: ApprovalAction,
    entity_table: str,
    entity_id: int,
    payload: dict,
    entity_label: Optional[str] = None,
    summary: Optional[str] = None,
) -> dict:
    required = required_approvals_for(rbac.owner_count(db, company_id))
    now = utcnow()
    request = ApprovalRequest(
        company_id=company_id,
        action=action,
        entity_table=entity_table,
        entity_id=entity_id,
        entity_label=entity_label,
        summary=summary,
        payload=payload,
        requested_by=requested_by,
        required_approvals=required,
        status=ApprovalStatus.APPROVED if required == 0 else ApprovalStatus.PENDING,
        approved_at=now if required == 0 else None,
    )
    db.add(request)
    db.flush()
    _record_transition(db, request, requested_by, message=f"Approval {request.id} requested")

    if request.status == ApprovalStatus.APPROVED:
        result = _apply_and_record(db, request, requested_by)
        return {"approval": request, "applied": True, "result": result}
    return {"approval": request, "applied": False, "result": None}


def request_employee_pay_change(
    db: Session,
    *,
    profile_id: int,
    employee_id: int,
    hourly_rate: Optional[Decimal],
) -> dict:
    employee = db.get(CompanyEmployee, employee_id)
    if not employee:
        raise NotFoundOrUnauthorized("Employee not found")
    rbac.assert_owner_access(db, profile_id, employee.company_id)

    current = Decimal(employee.hourly_rate) if employee.hourly_rate is not None else None
    new = Decimal(hourly_rate).quantize(Decimal("0.01")) if hourly_rate is not None else None
    if current == new:
        return {"approval": None, "applied": False, "result": None}

    profile = employee.profile
    label = (profile.full_name or profile.email) if profile else None
    summary = _build_summary(
        ApprovalAction.EMPLOYEE_PAY_CHANGE,
        f"${current or Decimal('0'):.2f} → ${new or Decimal('0'):.2f}",
    )
    return create_approval_request(
        db,
        company_id=employee.company_id,
        requested_by=profile_id,
        action=ApprovalAction.EMPLOYEE_PAY_CHANGE,
        entity_table="company_employees",
        entity_id=employee.id,
        entity_label=label,
        summary=summary,
        payload={"hourly_rate": str(new) if new is not None else None},
    )


def request_job_update(db: Session, *, profile_id: int, job_id: int, updates: JobUpdatePayload) -> dict:
    job = db.get(Job, job_id)
    if not job:
        raise NotFoundOrUnauthorized("Job not found")
    rbac.assert_owner_access(db, profile_id, job.company_id)

    payload = updates.model_dump(mode="json", exclude_unset=True)
    for field in REQUIRED_JOB_FIELDS:
        if field in payload and payload[field] is None:
            raise ValidationError(f"{field} cannot be cleared")
    if updates.status == JobStatus.DONE and job.status != JobStatus.DONE:
        payload["completed_at"] = utcnow().isoformat()

    if not payload:
        return {"approval": None, "applied": False, "result": None}

    changed = [field for field in payload if field != "completed_at"]
    return create_approval_request(
        db,
        company_id=job.company_id,
        requested_by=profile_id,
        action=ApprovalAction.JOB_UPDATE,
        entity_table="jobs",
        entity_id=job.id,
        entity_label=job.title,
        summary=_build_summary(ApprovalAction.JOB_UPDATE, ", ".join(changed) or "updates"),
        payload=payload,
    )


def request_invoice_update(db: Session, *, profile_id: int, invoice_id: int, payload: InvoiceUpdate) -> dict:
    invoice = db.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundOrUnauthorized("Invoice not found")
    rbac.assert_owner_access(db, profile_id, invoice.company_id)

    return create_approval_request(
        db,
        company_id=invoice.company_id,
        requested_by=profile_id,
        action=ApprovalAction.INVOICE_UPDATE,
        entity_table="invoices",
        entity_id=invoice.id,
        entity_label=invoice.invoice_number,
        summary=_build_summary(
            ApprovalAction.INVOICE_UPDATE,
            f"{invoice.invoice_number} · {len(payload.lines)} lines",
        ),
        payload=payload.model_dump(mode="json", exclude_unset=True),
    )


def _get_request(db: Session, request_id: int, profile_id: int) -> ApprovalRequest:
    request = db.get(ApprovalRequest, request_id)
    if not request:
        raise NotFoundOrUnauthorized("Approval request not found")
    rbac.assert_owner_access(db, profile_id, request.company_id)
    return request


def _record_decision(
    db: Session,
    request: ApprovalRequest,
    *,
    profile_id: int,
    decision: Decision,
    note: Optional[str] = None,
) -> bool:
    """Insert a vote; False when this approver already voted."""
    existing = db.execute(
        select(ApprovalDecision.id).where(
            ApprovalDecision.approval_request_id == request.id,
            ApprovalDecision.approver_profile_id == profile_id,
        )
    ).first()
    if existing:
        return False
    try:
        with db.begin_nested():
            db.add(
                ApprovalDecision(
                    approval_request_id=request.id,
                    approver_profile_id=profile_id,
                    decision=decision,
                    note=note,
                )
            )
    except IntegrityError:
        # A concurrent vote from the same approver won the unique constraint.
        return False
    db.expire(request, ["decisions"])
    return True


def approve(db: Session, *, request_id: int, profile_id: int, note: Optional[str] = None) -> ApprovalRequest:
    request = _get_request(db, request_id, profile_id)
    if request.status != ApprovalStatus.PENDING:
        return request
    if request.requested_by == profile_id:
        raise CannotApproveOwnRequest("Requesters cannot approve their own requests")

    if not _record_decision(db, request, profile_id=profile_id, decision=Decision.APPROVE, note=note):
        return request

    approvals = sum(1 for d in request.decisions if d.decision == Decision.APPROVE)
    rejections = sum(1 for d in request.decisions if d.decision == Decision.REJECT)

    if rejections > 0:
        request.status = ApprovalStatus.REJECTED
        request.rejected_at = utcnow()
        db.add(request)
        db.flush()
        _record_transition(db, request, profile_id, message=f"Approval {request.id} rejected")
        return request

    if approvals >= request.required_approvals:
        request.status = ApprovalStatus.APPROVED
        request.approved_at = utcnow()
        db.add(request)
        db.flush()
        _record_transition(db, request, profile_id, message=f"Approval {request.id} approved")
        _apply_and_record(db, request, profile_id)
    return request


def reject(db: Session, *, request_id: int, profile_id: int, note: Optional[str] = None) -> ApprovalRequest:
    request = _get_request(db, request_id, profile_id)
    if request.status != ApprovalStatus.PENDING:
        return request
    if request.requested_by == profile_id:
        raise Forbidden("Requesters cannot reject their own requests")

    if not _record_decision(db, request, profile_id=profile_id, decision=Decision.REJECT, note=note):
        return request

    request.status = ApprovalStatus.REJECTED
    request.rejected_at = utcnow()
    db.add(request)
    db.flush()
    _record_transition(db, request, profile_id, message=f"Approval {request.id} rejected")
    return request


def cancel(db: Session, *, request_id: int, profile_id: int) -> ApprovalRequest:
    request = _get_request(db, request_id, profile_id)
    if request.requested_by != profile_id:
        raise Forbidden("Only the requester can cancel this approval")
    if request.status != ApprovalStatus.PENDING:
        return request

    request.status = ApprovalStatus.CANCELLED
    request.cancelled_at = utcnow()
    db.add(request)
    db.flush()
    _record_transition(db, request, profile_id, message=f"Approval {request.id} cancelled")
    return request


def list_approval_requests(
    db: Session,
    *,
    profile_id: int,
    company_id: int,
    status: Optional[ApprovalStatus] = None,
) -> list[ApprovalRequest]:
    rbac.assert_owner_access(db, profile_id, company_id)
    stmt = (
        select(ApprovalRequest)
        .where(ApprovalRequest.company_id == company_id)
        .order_by(ApprovalRequest.created_at.desc(), ApprovalRequest.id.desc())
    )
    if status is not None:
        stmt = stmt.where(ApprovalRequest.status == status)
    return list(db.scalars(stmt))
