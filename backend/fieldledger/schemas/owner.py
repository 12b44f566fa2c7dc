from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, model_validator

from fieldledger.models.enums import Decision, OwnerChangeAction, OwnerChangeStatus
from fieldledger.schemas.base import ORMModel


class OwnerRead(ORMModel):
    id: int
    company_id: int
    profile_id: int
    is_primary_owner: bool
    ownership_percentage: Optional[Decimal] = None
    created_at: datetime


class OwnerChangeCreate(ORMModel):
    action: OwnerChangeAction
    company_id: Optional[int] = None
    target_profile_id: Optional[int] = None
    target_email: Optional[str] = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _has_target(self) -> "OwnerChangeCreate":
        if self.target_profile_id is None and not self.target_email:
            raise ValueError("Provide target_profile_id or target_email")
        return self


class OwnerChangeApprovalRead(ORMModel):
    id: int
    approver_profile_id: int
    decision: Decision
    created_at: datetime


class OwnerChangeRequestRead(ORMModel):
    id: int
    company_id: int
    action: OwnerChangeAction
    target_profile_id: int
    created_by: int
    status: OwnerChangeStatus
    required_approvals: int
    cooldown_hours: int
    approved_at: Optional[datetime] = None
    effective_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    approvals: List[OwnerChangeApprovalRead] = Field(default_factory=list)
