from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldledger.db.base import Base, IDMixin, Money, TimestampMixin, utcnow
from fieldledger.models.enums import DepositType, PaymentMethod, enum_values


class Payment(IDMixin, TimestampMixin, Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
    )

    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), nullable=False, index=True)
    job_id: Mapped[Optional[int]] = mapped_column(ForeignKey("jobs.id"), nullable=True, index=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod, name="payment_method", values_callable=enum_values),
        default=PaymentMethod.OTHER,
        nullable=False,
    )
    is_deposit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    deposit_type: Mapped[Optional[DepositType]] = mapped_column(
        Enum(DepositType, name="deposit_type", values_callable=enum_values),
        nullable=True,
    )
    memo: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False, default=lambda: utcnow().date())
    created_by: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)

    applications: Mapped[List["PaymentApplication"]] = relationship(back_populates="payment")


class PaymentApplication(IDMixin, TimestampMixin, Base):
    __tablename__ = "payment_applications"
    __table_args__ = (
        CheckConstraint("applied_amount > 0", name="applied_amount_positive"),
    )

    payment_id: Mapped[int] = mapped_column(ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    # Set when the application backs a deposit_applied line on the invoice.
    invoice_line_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("invoice_lines.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    applied_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    applied_by: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)

    payment: Mapped[Payment] = relationship(back_populates="applications")
    invoice: Mapped["Invoice"] = relationship(back_populates="applications")
