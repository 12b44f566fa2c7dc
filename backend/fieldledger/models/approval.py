from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldledger.db.base import Base, IDMixin, TimestampMixin, version_column
from fieldledger.models.enums import ApprovalAction, ApprovalStatus, Decision, enum_values


class ApprovalRequest(IDMixin, TimestampMixin, Base):
    __tablename__ = "approval_requests"

    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    action: Mapped[ApprovalAction] = mapped_column(
        Enum(ApprovalAction, name="approval_action", values_callable=enum_values),
        nullable=False,
        index=True,
    )
    entity_table: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    entity_label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    status: Mapped[ApprovalStatus] = mapped_column(
        Enum(ApprovalStatus, name="approval_status", values_callable=enum_values),
        default=ApprovalStatus.PENDING,
        nullable=False,
        index=True,
    )
    required_approvals: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    requested_by: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)

    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_by: Mapped[Optional[int]] = mapped_column(ForeignKey("profiles.id"), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    version: Mapped[int] = version_column()

    decisions: Mapped[List["ApprovalDecision"]] = relationship(
        back_populates="request",
        cascade="all, delete-orphan",
        order_by=lambda: ApprovalDecision.created_at.asc(),
    )

    __mapper_args__ = {"version_id_col": version}


class ApprovalDecision(IDMixin, TimestampMixin, Base):
    __tablename__ = "approval_decisions"
    __table_args__ = (
        UniqueConstraint("approval_request_id", "approver_profile_id", name="uq_approval_decisions_request_approver"),
    )

    approval_request_id: Mapped[int] = mapped_column(
        ForeignKey("approval_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    approver_profile_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)
    decision: Mapped[Decision] = mapped_column(
        Enum(Decision, name="approval_decision", values_callable=enum_values),
        nullable=False,
    )
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    request: Mapped[ApprovalRequest] = relationship(back_populates="decisions")
