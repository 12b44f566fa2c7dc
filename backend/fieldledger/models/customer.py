from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, Enum, ForeignKey, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldledger.db.base import Base, IDMixin, Money, TimestampMixin
from fieldledger.models.enums import JobStatus, enum_values


class Customer(IDMixin, TimestampMixin, Base):
    __tablename__ = "customers"

    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class Job(IDMixin, TimestampMixin, Base):
    __tablename__ = "jobs"

    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("customers.id"), nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    service_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    service_address_line_2: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    service_city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    service_state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    service_zipcode: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    service_country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tasks_to_complete: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="job_status", values_callable=enum_values),
        default=JobStatus.UPCOMING,
        nullable=False,
        index=True,
    )
    planned_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    estimated_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    arrival_window_start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    arrival_window_end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    customer: Mapped[Optional[Customer]] = relationship()
