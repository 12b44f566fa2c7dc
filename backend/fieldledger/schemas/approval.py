from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import Field

from fieldledger.models.enums import ApprovalAction, ApprovalStatus, Decision, JobStatus
from fieldledger.schemas.base import ORMModel


class ApprovalDecisionRead(ORMModel):
    id: int
    approver_profile_id: int
    decision: Decision
    note: Optional[str] = None
    created_at: datetime


class ApprovalRequestRead(ORMModel):
    id: int
    company_id: int
    action: ApprovalAction
    entity_table: str
    entity_id: int
    entity_label: Optional[str] = None
    summary: Optional[str] = None
    payload: dict
    status: ApprovalStatus
    required_approvals: int
    requested_by: int
    approved_at: Optional[datetime] = None
    applied_at: Optional[datetime] = None
    applied_by: Optional[int] = None
    rejected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    decisions: List[ApprovalDecisionRead] = Field(default_factory=list)


class ApprovalOutcome(ORMModel):
    approval: Optional[ApprovalRequestRead] = None
    applied: bool
    result: Optional[Any] = None


class PayChangeRequest(ORMModel):
    employee_id: int
    hourly_rate: Optional[Decimal] = Field(default=None, ge=Decimal("0"))


class JobUpdatePayload(ORMModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    summary: Optional[str] = None
    service_address: Optional[str] = None
    service_address_line_2: Optional[str] = None
    service_city: Optional[str] = None
    service_state: Optional[str] = None
    service_zipcode: Optional[str] = None
    service_country: Optional[str] = None
    tasks_to_complete: Optional[str] = None
    status: Optional[JobStatus] = None
    planned_end_date: Optional[date] = None
    estimated_amount: Optional[Decimal] = None
    arrival_window_start_time: Optional[time] = None
    arrival_window_end_time: Optional[time] = None


class JobUpdateRequest(ORMModel):
    job_id: int
    updates: JobUpdatePayload


class ApprovalDecisionPayload(ORMModel):
    note: Optional[str] = Field(default=None, max_length=1000)
