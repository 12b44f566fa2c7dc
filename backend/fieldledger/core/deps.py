from __future__ import annotations

from typing import List, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from fieldledger.core import rbac
from fieldledger.db.session import get_db
from fieldledger.models.company import Profile


def get_current_profile(
    x_profile_id: Optional[int] = Header(None, alias="X-Profile-Id"),
    db: Session = Depends(get_db),
) -> Profile:
    """Resolve the caller. Authentication happens upstream; we only trust the forwarded id."""
    if x_profile_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    profile = db.get(Profile, x_profile_id)
    if not profile:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return profile


def get_company_ids(
    db: Session = Depends(get_db),
    current_profile: Profile = Depends(get_current_profile),
) -> List[int]:
    return rbac.owned_company_ids(db, current_profile.id)


def resolve_company_id(company_ids: List[int], requested: Optional[int]) -> int:
    if not company_ids:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No company found")
    company_id = requested if requested is not None else company_ids[0]
    if company_id not in company_ids:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized company access")
    return company_id
