from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Boolean, Date, DateTime, Enum, ForeignKey, Integer, JSON, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldledger.db.base import Base, IDMixin, Money, TimestampMixin, version_column
from fieldledger.models.enums import InvoiceAuditAction, InvoiceLineType, InvoiceStatus, enum_values


class Invoice(IDMixin, TimestampMixin, Base):
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("company_id", "invoice_number", name="uq_invoices_company_number"),
    )

    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), nullable=False, index=True)
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus, name="invoice_status", values_callable=enum_values),
        default=InvoiceStatus.DRAFT,
        nullable=False,
        index=True,
    )
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    terms: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Denormalized from the summary projection on every line rewrite.
    subtotal: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"), nullable=False)

    issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)
    version: Mapped[int] = version_column()

    lines: Mapped[List["InvoiceLine"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by=lambda: InvoiceLine.line_number.asc(),
    )
    applications: Mapped[List["PaymentApplication"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}


class InvoiceLine(IDMixin, TimestampMixin, Base):
    __tablename__ = "invoice_lines"

    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    line_type: Mapped[InvoiceLineType] = mapped_column(
        Enum(InvoiceLineType, name="invoice_line_type", values_callable=enum_values),
        default=InvoiceLineType.SERVICE,
        nullable=False,
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("1.00"), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"), nullable=False)
    taxable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), default=Decimal("0"), nullable=False)
    job_id: Mapped[Optional[int]] = mapped_column(ForeignKey("jobs.id"), nullable=True, index=True)
    applied_payment_id: Mapped[Optional[int]] = mapped_column(ForeignKey("payments.id"), nullable=True, index=True)

    invoice: Mapped[Invoice] = relationship(back_populates="lines")


class InvoiceAuditLog(IDMixin, TimestampMixin, Base):
    __tablename__ = "invoice_audit_logs"

    # Plain column: audit rows outlive the invoice they describe.
    invoice_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    actor_profile_id: Mapped[Optional[int]] = mapped_column(ForeignKey("profiles.id"), nullable=True, index=True)
    action: Mapped[InvoiceAuditAction] = mapped_column(
        Enum(InvoiceAuditAction, name="invoice_audit_action", values_callable=enum_values),
        nullable=False,
        index=True,
    )
    diff_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)


class InvoiceCounter(IDMixin, TimestampMixin, Base):
    __tablename__ = "company_invoice_counters"

    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    last_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
