from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldledger.db.base import Base, IDMixin, TimestampMixin, version_column
from fieldledger.models.enums import Decision, OwnerChangeAction, OwnerChangeStatus, enum_values


class OwnerChangeRequest(IDMixin, TimestampMixin, Base):
    __tablename__ = "owner_change_requests"

    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    action: Mapped[OwnerChangeAction] = mapped_column(
        Enum(OwnerChangeAction, name="owner_change_action", values_callable=enum_values),
        nullable=False,
    )
    target_profile_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)
    created_by: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)
    status: Mapped[OwnerChangeStatus] = mapped_column(
        Enum(OwnerChangeStatus, name="owner_change_status", values_callable=enum_values),
        default=OwnerChangeStatus.PENDING,
        nullable=False,
        index=True,
    )
    required_approvals: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cooldown_hours: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    effective_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = version_column()

    approvals: Mapped[List["OwnerChangeApproval"]] = relationship(
        back_populates="request",
        cascade="all, delete-orphan",
        order_by=lambda: OwnerChangeApproval.created_at.asc(),
    )

    __mapper_args__ = {"version_id_col": version}


class OwnerChangeApproval(IDMixin, TimestampMixin, Base):
    __tablename__ = "owner_change_approvals"
    __table_args__ = (
        UniqueConstraint("request_id", "approver_profile_id", name="uq_owner_change_approvals_request_approver"),
    )

    request_id: Mapped[int] = mapped_column(
        ForeignKey("owner_change_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    approver_profile_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)
    decision: Mapped[Decision] = mapped_column(
        Enum(Decision, name="owner_change_decision", values_callable=enum_values),
        nullable=False,
    )

    request: Mapped[OwnerChangeRequest] = relationship(back_populates="approvals")
