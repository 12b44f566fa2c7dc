from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldledger.db.base import Base, IDMixin, TimestampMixin


class Profile(IDMixin, TimestampMixin, Base):
    __tablename__ = "profiles"

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True, index=True)

    ownerships: Mapped[List["CompanyOwner"]] = relationship(back_populates="profile")


class Company(IDMixin, TimestampMixin, Base):
    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    owners: Mapped[List["CompanyOwner"]] = relationship(back_populates="company", cascade="all, delete-orphan")
    employees: Mapped[List["CompanyEmployee"]] = relationship(back_populates="company", cascade="all, delete-orphan")


class CompanyOwner(IDMixin, TimestampMixin, Base):
    __tablename__ = "company_owners"
    __table_args__ = (
        UniqueConstraint("company_id", "profile_id", name="uq_company_owners_company_profile"),
    )

    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    profile_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    is_primary_owner: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ownership_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)

    company: Mapped[Company] = relationship(back_populates="owners")
    profile: Mapped[Profile] = relationship(back_populates="ownerships")


class CompanyEmployee(IDMixin, TimestampMixin, Base):
    __tablename__ = "company_employees"

    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    profile_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)
    job_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    company: Mapped[Company] = relationship(back_populates="employees")
    profile: Mapped[Profile] = relationship()
