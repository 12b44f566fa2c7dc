from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from fieldledger.core.deps import get_company_ids, get_current_profile, resolve_company_id
from fieldledger.db.session import get_db
from fieldledger.models.company import Profile
from fieldledger.schemas.owner import OwnerChangeCreate, OwnerChangeRequestRead, OwnerRead
from fieldledger.services import owners as owner_service

router = APIRouter(prefix="/api/owners", tags=["owners"])


@router.get("", response_model=List[OwnerRead])
def list_owners(
    company_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
    company_ids: List[int] = Depends(get_company_ids),
) -> List[OwnerRead]:
    owners = owner_service.list_owners(
        db,
        profile_id=current_profile.id,
        company_id=resolve_company_id(company_ids, company_id),
    )
    return [OwnerRead.model_validate(owner) for owner in owners]


@router.get("/requests", response_model=List[OwnerChangeRequestRead])
def list_requests(
    company_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
    company_ids: List[int] = Depends(get_company_ids),
) -> List[OwnerChangeRequestRead]:
    rows = owner_service.list_owner_change_requests(
        db,
        profile_id=current_profile.id,
        company_id=resolve_company_id(company_ids, company_id),
    )
    return [OwnerChangeRequestRead.model_validate(row) for row in rows]


@router.post("/requests", response_model=OwnerChangeRequestRead, status_code=status.HTTP_201_CREATED)
def create_request(
    payload: OwnerChangeCreate,
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
    company_ids: List[int] = Depends(get_company_ids),
) -> OwnerChangeRequestRead:
    company_id = resolve_company_id(company_ids, payload.company_id)
    if payload.target_profile_id is not None:
        request = owner_service.create_owner_change_request(
            db,
            profile_id=current_profile.id,
            company_id=company_id,
            action=payload.action,
            target_profile_id=payload.target_profile_id,
        )
    else:
        request = owner_service.create_owner_change_request_by_email(
            db,
            profile_id=current_profile.id,
            company_id=company_id,
            action=payload.action,
            target_email=payload.target_email,
        )
    db.commit()
    return OwnerChangeRequestRead.model_validate(request)


@router.post("/requests/{request_id}/approve", response_model=OwnerChangeRequestRead)
def approve_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
) -> OwnerChangeRequestRead:
    request = owner_service.approve_owner_change_request(db, profile_id=current_profile.id, request_id=request_id)
    db.commit()
    return OwnerChangeRequestRead.model_validate(request)


@router.post("/requests/{request_id}/reject", response_model=OwnerChangeRequestRead)
def reject_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
) -> OwnerChangeRequestRead:
    request = owner_service.reject_owner_change_request(db, profile_id=current_profile.id, request_id=request_id)
    db.commit()
    return OwnerChangeRequestRead.model_validate(request)


@router.post("/requests/{request_id}/cancel", response_model=OwnerChangeRequestRead)
def cancel_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
) -> OwnerChangeRequestRead:
    request = owner_service.cancel_owner_change_request(db, profile_id=current_profile.id, request_id=request_id)
    db.commit()
    return OwnerChangeRequestRead.model_validate(request)


@router.post("/requests/{request_id}/finalize", response_model=OwnerChangeRequestRead)
def finalize_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
) -> OwnerChangeRequestRead:
    request = owner_service.finalize_owner_removal(db, profile_id=current_profile.id, request_id=request_id)
    db.commit()
    return OwnerChangeRequestRead.model_validate(request)
