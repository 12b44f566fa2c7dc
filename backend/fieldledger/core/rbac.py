from __future__ import annotations

from typing import List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fieldledger.core.errors import Forbidden
from fieldledger.models.company import CompanyOwner


def owned_company_ids(db: Session, profile_id: int) -> List[int]:
    rows = db.execute(
        select(CompanyOwner.company_id)
        .where(CompanyOwner.profile_id == profile_id)
        .order_by(CompanyOwner.company_id.asc())
    )
    return [row[0] for row in rows]


def is_owner(db: Session, profile_id: int, company_id: int) -> bool:
    owner = db.execute(
        select(CompanyOwner.id).where(
            CompanyOwner.profile_id == profile_id,
            CompanyOwner.company_id == company_id,
        )
    ).first()
    return owner is not None


def assert_owner_access(db: Session, profile_id: int, company_id: int) -> None:
    if not is_owner(db, profile_id, company_id):
        raise Forbidden("Unauthorized: not an owner for this company")


def owner_count(db: Session, company_id: int) -> int:
    return db.scalar(
        select(func.count(CompanyOwner.id)).where(CompanyOwner.company_id == company_id)
    ) or 0


def list_company_owners(db: Session, company_id: int) -> List[CompanyOwner]:
    return list(
        db.scalars(
            select(CompanyOwner)
            .where(CompanyOwner.company_id == company_id)
            .order_by(CompanyOwner.created_at.asc(), CompanyOwner.id.asc())
        )
    )
