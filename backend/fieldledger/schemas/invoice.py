from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, model_validator

from fieldledger.models.enums import InvoiceAuditAction, InvoiceLineType, InvoiceStatus
from fieldledger.schemas.base import ORMModel


class InvoiceLineInput(ORMModel):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., gt=Decimal("0"))
    # Negative values are allowed; deposit lines are normalized to negative anyway.
    unit_price: Decimal
    tax_rate: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), le=Decimal("100"), description="Percent, 0-100")
    line_type: InvoiceLineType = InvoiceLineType.SERVICE
    job_id: Optional[int] = None
    applied_payment_id: Optional[int] = None

    @model_validator(mode="after")
    def _deposit_needs_payment(self) -> "InvoiceLineInput":
        if self.line_type == InvoiceLineType.DEPOSIT_APPLIED and self.applied_payment_id is None:
            raise ValueError("deposit_applied lines require applied_payment_id")
        return self


class InvoiceUpdate(ORMModel):
    """Full replacement body for an invoice edit."""

    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    terms: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[InvoiceStatus] = None
    expected_version: Optional[int] = None
    lines: List[InvoiceLineInput]


class InvoiceCreate(ORMModel):
    customer_id: int
    company_id: Optional[int] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    terms: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)
    lines: List[InvoiceLineInput] = Field(default_factory=list)
    # Deposits to draw down automatically, up to the invoice total.
    deposit_ids: List[int] = Field(default_factory=list)


class InvoiceIssuePayload(ORMModel):
    due_date: date
    terms: Optional[str] = Field(default=None, max_length=200)


class InvoiceSummary(ORMModel):
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    balance: Decimal


class InvoiceUpdateResult(ORMModel):
    invoice_id: int
    invoice_number: str
    summary: InvoiceSummary


class InvoiceLineRead(ORMModel):
    id: int
    line_number: int
    line_type: InvoiceLineType
    description: str
    quantity: Decimal
    unit_price: Decimal
    taxable: bool
    tax_rate: Decimal
    job_id: Optional[int] = None
    applied_payment_id: Optional[int] = None


class InvoiceRead(ORMModel):
    id: int
    company_id: int
    customer_id: int
    invoice_number: str
    status: InvoiceStatus
    invoice_date: date
    due_date: Optional[date] = None
    terms: Optional[str] = None
    notes: Optional[str] = None
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    issued_at: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: datetime
    lines: List[InvoiceLineRead] = Field(default_factory=list)


class InvoiceDetail(ORMModel):
    invoice: InvoiceRead
    deposits_applied: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    derived_status: InvoiceStatus


class InvoiceAuditLogRead(ORMModel):
    id: int
    invoice_id: int
    company_id: int
    actor_profile_id: Optional[int] = None
    action: InvoiceAuditAction
    diff_json: Optional[dict] = None
    created_at: datetime
