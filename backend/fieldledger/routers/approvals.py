from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from fieldledger.core.deps import get_company_ids, get_current_profile, resolve_company_id
from fieldledger.db.session import get_db
from fieldledger.models.company import Profile
from fieldledger.models.enums import ApprovalStatus
from fieldledger.schemas.approval import (
    ApprovalDecisionPayload,
    ApprovalOutcome,
    ApprovalRequestRead,
    JobUpdateRequest,
    PayChangeRequest,
)
from fieldledger.services import approvals as approval_service

router = APIRouter(prefix="/api/approvals", tags=["approvals"])


def _outcome(outcome: dict) -> ApprovalOutcome:
    approval = outcome["approval"]
    return ApprovalOutcome(
        approval=ApprovalRequestRead.model_validate(approval) if approval is not None else None,
        applied=outcome["applied"],
        result=outcome["result"],
    )


@router.get("", response_model=List[ApprovalRequestRead])
def list_approvals(
    company_id: Optional[int] = Query(None),
    status_filter: Optional[ApprovalStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
    company_ids: List[int] = Depends(get_company_ids),
) -> List[ApprovalRequestRead]:
    """List approval requests for one of the caller's companies, newest first."""
    rows = approval_service.list_approval_requests(
        db,
        profile_id=current_profile.id,
        company_id=resolve_company_id(company_ids, company_id),
        status=status_filter,
    )
    return [ApprovalRequestRead.model_validate(row) for row in rows]


@router.post("/pay-change", response_model=ApprovalOutcome)
def request_pay_change(
    payload: PayChangeRequest,
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
) -> ApprovalOutcome:
    outcome = approval_service.request_employee_pay_change(
        db,
        profile_id=current_profile.id,
        employee_id=payload.employee_id,
        hourly_rate=payload.hourly_rate,
    )
    db.commit()
    return _outcome(outcome)


@router.post("/job-update", response_model=ApprovalOutcome)
def request_job_update(
    payload: JobUpdateRequest,
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
) -> ApprovalOutcome:
    outcome = approval_service.request_job_update(
        db,
        profile_id=current_profile.id,
        job_id=payload.job_id,
        updates=payload.updates,
    )
    db.commit()
    return _outcome(outcome)


@router.post("/{request_id}/approve", response_model=ApprovalRequestRead)
def approve_request(
    request_id: int,
    payload: Optional[ApprovalDecisionPayload] = Body(None),
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
) -> ApprovalRequestRead:
    request = approval_service.approve(
        db,
        request_id=request_id,
        profile_id=current_profile.id,
        note=payload.note if payload else None,
    )
    db.commit()
    return ApprovalRequestRead.model_validate(request)


@router.post("/{request_id}/reject", response_model=ApprovalRequestRead)
def reject_request(
    request_id: int,
    payload: Optional[ApprovalDecisionPayload] = Body(None),
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
) -> ApprovalRequestRead:
    request = approval_service.reject(
        db,
        request_id=request_id,
        profile_id=current_profile.id,
        note=payload.note if payload else None,
    )
    db.commit()
    return ApprovalRequestRead.model_validate(request)


@router.post("/{request_id}/cancel", response_model=ApprovalRequestRead)
def cancel_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
) -> ApprovalRequestRead:
    request = approval_service.cancel(db, request_id=request_id, profile_id=current_profile.id)
    db.commit()
    return ApprovalRequestRead.model_validate(request)
