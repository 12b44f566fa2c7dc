"""
Owner-change workflow.

Adding or removing a company owner goes through a request that the other
owners vote on. Quorum is ``ceil((owners - 1) / 2)``. A removal proposed by
someone other than the target also needs the target's own approval, and only
becomes executable after a cooldown (``finalize_owner_removal``). A company is
never left without an owner.

    pending --approve--> approved --finalize--> executed   (remove_owner)
    pending --approve--> approved -> executed              (add_owner)
    pending --reject---> rejected
    pending|approved --cancel--> cancelled
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fieldledger.core import rbac
from fieldledger.core.errors import (
    CannotRemoveLastOwner,
    Conflict,
    CooldownNotElapsed,
    Forbidden,
    IllegalStateTransition,
    NotFoundOrUnauthorized,
    ValidationError,
)
from fieldledger.core.observability import owner_change_transitions_total
from fieldledger.core.settings import settings
from fieldledger.db.base import utcnow
from fieldledger.models.company import CompanyOwner, Profile
from fieldledger.models.enums import Decision, OwnerChangeAction, OwnerChangeStatus
from fieldledger.models.owner_change import OwnerChangeApproval, OwnerChangeRequest
from fieldledger.services.activity import log_activity

logger = logging.getLogger(__name__)


def compute_required_approvals(owner_count: int) -> int:
    if owner_count <= 1:
        return 0
    return math.ceil((owner_count - 1) / 2)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _record_transition(db: Session, request: OwnerChangeRequest, actor_id: int) -> None:
    owner_change_transitions_total.labels(action=request.action.value, status=request.status.value).inc()
    log_activity(
        db,
        company_id=request.company_id,
        actor_profile_id=actor_id,
        activity_type=f"OWNER_CHANGE_{request.status.value.upper()}",
        entity_table="owner_change_requests",
        entity_id=request.id,
        message=f"Owner change {request.id} ({request.action.value}) {request.status.value}",
        payload={"target_profile_id": request.target_profile_id},
    )
    logger.info(
        "owner change %s",
        request.status.value,
        extra={"owner_change_id": request.id, "company_id": request.company_id, "profile_id": actor_id},
    )


def _insert_owner(db: Session, company_id: int, profile_id: int) -> None:
    existing = db.execute(
        select(CompanyOwner.id).where(
            CompanyOwner.company_id == company_id,
            CompanyOwner.profile_id == profile_id,
        )
    ).first()
    if existing:
        return
    db.add(CompanyOwner(company_id=company_id, profile_id=profile_id, is_primary_owner=False))
    db.flush()


def _mark_executed(db: Session, request: OwnerChangeRequest, actor_id: int) -> OwnerChangeRequest:
    request.status = OwnerChangeStatus.EXECUTED
    request.executed_at = utcnow()
    db.add(request)
    db.flush()
    _record_transition(db, request, actor_id)
    return request


def create_owner_change_request(
    db: Session,
    *,
    profile_id: int,
    company_id: int,
    action: OwnerChangeAction,
    target_profile_id: int,
) -> OwnerChangeRequest:
    rbac.assert_owner_access(db, profile_id, company_id)
    if not db.get(Profile, target_profile_id):
        raise NotFoundOrUnauthorized("Target profile not found")

    owners = rbac.list_company_owners(db, company_id)
    target_is_owner = any(owner.profile_id == target_profile_id for owner in owners)
    if action == OwnerChangeAction.ADD_OWNER and target_is_owner:
        raise ValidationError("Target user is already an owner")
    if action == OwnerChangeAction.REMOVE_OWNER and not target_is_owner:
        raise ValidationError("Target user is not an owner")
    if action == OwnerChangeAction.REMOVE_OWNER and len(owners) <= 1:
        raise CannotRemoveLastOwner("Cannot remove the last remaining owner")

    duplicate = db.execute(
        select(OwnerChangeRequest.id).where(
            OwnerChangeRequest.company_id == company_id,
            OwnerChangeRequest.action == action,
            OwnerChangeRequest.target_profile_id == target_profile_id,
            OwnerChangeRequest.status == OwnerChangeStatus.PENDING,
        )
    ).first()
    if duplicate:
        raise Conflict("A pending request already exists for this owner change")

    required = compute_required_approvals(len(owners))
    auto_approve = action == OwnerChangeAction.ADD_OWNER and required == 0
    request = OwnerChangeRequest(
        company_id=company_id,
        action=action,
        target_profile_id=target_profile_id,
        created_by=profile_id,
        status=OwnerChangeStatus.APPROVED if auto_approve else OwnerChangeStatus.PENDING,
        required_approvals=required,
        cooldown_hours=settings.owner_removal_cooldown_hours if action == OwnerChangeAction.REMOVE_OWNER else 0,
        approved_at=utcnow() if auto_approve else None,
    )
    db.add(request)
    db.flush()
    _record_transition(db, request, profile_id)

    if auto_approve:
        _insert_owner(db, company_id, target_profile_id)
        return _mark_executed(db, request, profile_id)
    return request


def create_owner_change_request_by_email(
    db: Session,
    *,
    profile_id: int,
    company_id: int,
    action: OwnerChangeAction,
    target_email: str,
) -> OwnerChangeRequest:
    profile = db.scalar(select(Profile).where(func.lower(Profile.email) == target_email.strip().lower()))
    if not profile:
        raise NotFoundOrUnauthorized("No user found with that email")
    return create_owner_change_request(
        db,
        profile_id=profile_id,
        company_id=company_id,
        action=action,
        target_profile_id=profile.id,
    )


def _get_request(db: Session, request_id: int, profile_id: int) -> OwnerChangeRequest:
    request = db.get(OwnerChangeRequest, request_id)
    if not request:
        raise NotFoundOrUnauthorized("Owner change request not found")
    rbac.assert_owner_access(db, profile_id, request.company_id)
    return request


def _record_vote(db: Session, request: OwnerChangeRequest, *, profile_id: int, decision: Decision) -> bool:
    existing = db.execute(
        select(OwnerChangeApproval.id).where(
            OwnerChangeApproval.request_id == request.id,
            OwnerChangeApproval.approver_profile_id == profile_id,
        )
    ).first()
    if existing:
        return False
    try:
        with db.begin_nested():
            db.add(OwnerChangeApproval(request_id=request.id, approver_profile_id=profile_id, decision=decision))
    except IntegrityError:
        return False
    db.expire(request, ["approvals"])
    return True


def evaluate_owner_change_request(db: Session, request: OwnerChangeRequest, actor_id: int) -> OwnerChangeRequest:
    if request.status != OwnerChangeStatus.PENDING:
        return request

    # The creator never counts toward quorum, even when removing themselves.
    approvals = [
        a for a in request.approvals if a.decision == Decision.APPROVE and a.approver_profile_id != request.created_by
    ]
    if any(a.decision == Decision.REJECT for a in request.approvals):
        request.status = OwnerChangeStatus.REJECTED
        request.rejected_at = utcnow()
        db.add(request)
        db.flush()
        _record_transition(db, request, actor_id)
        return request

    target_approval_required = (
        request.action == OwnerChangeAction.REMOVE_OWNER and request.target_profile_id != request.created_by
    )
    has_target_approval = any(a.approver_profile_id == request.target_profile_id for a in approvals)
    if len(approvals) < request.required_approvals or (target_approval_required and not has_target_approval):
        return request

    approved_at = utcnow()
    request.status = OwnerChangeStatus.APPROVED
    request.approved_at = approved_at
    if request.action == OwnerChangeAction.ADD_OWNER:
        db.add(request)
        db.flush()
        _record_transition(db, request, actor_id)
        _insert_owner(db, request.company_id, request.target_profile_id)
        return _mark_executed(db, request, actor_id)

    request.effective_at = approved_at + timedelta(hours=request.cooldown_hours or 0)
    db.add(request)
    db.flush()
    _record_transition(db, request, actor_id)
    return request


def approve_owner_change_request(db: Session, *, profile_id: int, request_id: int) -> OwnerChangeRequest:
    request = _get_request(db, request_id, profile_id)
    if request.status != OwnerChangeStatus.PENDING:
        return request
    if request.created_by == profile_id:
        raise Forbidden("Request creator cannot approve their own request")
    if not _record_vote(db, request, profile_id=profile_id, decision=Decision.APPROVE):
        return request
    return evaluate_owner_change_request(db, request, profile_id)


def reject_owner_change_request(db: Session, *, profile_id: int, request_id: int) -> OwnerChangeRequest:
    request = _get_request(db, request_id, profile_id)
    if request.status != OwnerChangeStatus.PENDING:
        return request
    if request.created_by == profile_id:
        raise Forbidden("Request creator cannot reject their own request")
    if not _record_vote(db, request, profile_id=profile_id, decision=Decision.REJECT):
        return request

    request.status = OwnerChangeStatus.REJECTED
    request.rejected_at = utcnow()
    db.add(request)
    db.flush()
    _record_transition(db, request, profile_id)
    return request


def cancel_owner_change_request(db: Session, *, profile_id: int, request_id: int) -> OwnerChangeRequest:
    request = _get_request(db, request_id, profile_id)
    if request.created_by != profile_id:
        raise Forbidden("Only the request creator can cancel this request")
    if request.status not in (OwnerChangeStatus.PENDING, OwnerChangeStatus.APPROVED):
        raise IllegalStateTransition("Only pending or approved requests can be cancelled")

    request.status = OwnerChangeStatus.CANCELLED
    request.cancelled_at = utcnow()
    db.add(request)
    db.flush()
    _record_transition(db, request, profile_id)
    return request


def finalize_owner_removal(
    db: Session,
    *,
    profile_id: int,
    request_id: int,
    now: Optional[datetime] = None,
) -> OwnerChangeRequest:
    request = _get_request(db, request_id, profile_id)
    if request.action != OwnerChangeAction.REMOVE_OWNER:
        raise IllegalStateTransition("Only removal requests can be finalized here")
    if request.status != OwnerChangeStatus.APPROVED:
        raise IllegalStateTransition("Only approved requests can be finalized")

    now = now or utcnow()
    if request.effective_at and _aware(request.effective_at) > now:
        raise CooldownNotElapsed(
            "Cooldown period has not completed yet",
            data={"effective_at": _aware(request.effective_at).isoformat()},
        )
    if rbac.owner_count(db, request.company_id) <= 1:
        raise CannotRemoveLastOwner("Cannot remove the last remaining owner")

    owner = db.scalar(
        select(CompanyOwner).where(
            CompanyOwner.company_id == request.company_id,
            CompanyOwner.profile_id == request.target_profile_id,
        )
    )
    if owner:
        db.delete(owner)
        db.flush()
    return _mark_executed(db, request, profile_id)


def list_owners(db: Session, *, profile_id: int, company_id: int) -> List[CompanyOwner]:
    rbac.assert_owner_access(db, profile_id, company_id)
    return rbac.list_company_owners(db, company_id)


def list_owner_change_requests(db: Session, *, profile_id: int, company_id: int) -> List[OwnerChangeRequest]:
    rbac.assert_owner_access(db, profile_id, company_id)
    return list(
        db.scalars(
            select(OwnerChangeRequest)
            .where(OwnerChangeRequest.company_id == company_id)
            .order_by(OwnerChangeRequest.created_at.desc(), OwnerChangeRequest.id.desc())
        )
    )
