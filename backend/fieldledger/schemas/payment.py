from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, model_validator

from fieldledger.models.enums import DepositType, PaymentMethod
from fieldledger.schemas.base import ORMModel


class PaymentCreate(ORMModel):
    customer_id: int
    company_id: Optional[int] = None
    job_id: Optional[int] = None
    amount: Decimal = Field(..., gt=Decimal("0"))
    method: PaymentMethod
    is_deposit: bool = False
    deposit_type: Optional[DepositType] = None
    memo: Optional[str] = Field(default=None, max_length=500)


class PaymentRead(ORMModel):
    id: int
    company_id: int
    customer_id: int
    job_id: Optional[int] = None
    amount: Decimal
    payment_method: PaymentMethod
    is_deposit: bool
    deposit_type: Optional[DepositType] = None
    memo: Optional[str] = None
    payment_date: date
    created_at: datetime


class UnappliedPaymentRead(PaymentRead):
    unapplied_amount: Decimal


class PaymentApplicationCreate(ORMModel):
    """Apply an existing payment, or record a new one and apply it in one go."""

    invoice_id: int
    amount: Decimal = Field(..., gt=Decimal("0"))
    payment_id: Optional[int] = None
    customer_id: Optional[int] = None
    method: Optional[PaymentMethod] = None
    memo: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _payment_source(self) -> "PaymentApplicationCreate":
        if self.payment_id is None and self.customer_id is None:
            raise ValueError("Either payment_id or customer_id must be provided")
        if self.payment_id is None and self.method is None:
            raise ValueError("method is required when recording a new payment")
        return self


class PaymentApplicationResult(ORMModel):
    payment_application_id: int
    payment_id: int
    remaining_balance: Decimal
