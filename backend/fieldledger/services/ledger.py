from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fieldledger.core.errors import DepositExceedsBalance, NotFoundOrUnauthorized, ValidationError
from fieldledger.db.base import utcnow
from fieldledger.models.customer import Customer
from fieldledger.models.enums import DepositType, PaymentMethod
from fieldledger.models.invoice import Invoice
from fieldledger.models.payment import Payment, PaymentApplication
from fieldledger.services.invoice_summary import ZERO, quantize_money, summarize_invoice

logger = logging.getLogger(__name__)


@dataclass
class UnappliedPayment:
    payment: Payment
    unapplied_amount: Decimal


def _applied_total(db: Session, payment_id: int) -> Decimal:
    total = db.scalar(
        select(func.coalesce(func.sum(PaymentApplication.applied_amount), 0)).where(
            PaymentApplication.payment_id == payment_id
        )
    )
    return Decimal(total or 0)


def get_unapplied_amount(db: Session, payment_id: int) -> Decimal:
    """Payment amount minus everything applied from it, read fresh from the applications table."""
    payment = db.get(Payment, payment_id)
    if not payment:
        return ZERO
    return quantize_money(Decimal(payment.amount) - _applied_total(db, payment_id))


def lock_payments(db: Session, payment_ids: Iterable[int]) -> Dict[int, Payment]:
    ids = sorted({int(pid) for pid in payment_ids})
    if not ids:
        return {}
    # Sorted ids keep lock acquisition order stable across concurrent editors.
    rows = db.scalars(
        select(Payment).where(Payment.id.in_(ids)).order_by(Payment.id.asc()).with_for_update()
    ).all()
    return {payment.id: payment for payment in rows}


def can_edit_payment(db: Session, payment_id: int) -> bool:
    application = db.execute(
        select(PaymentApplication.id).where(PaymentApplication.payment_id == payment_id).limit(1)
    ).first()
    return application is None


def _get_customer(db: Session, customer_id: int, company_ids: Sequence[int]) -> Customer:
    customer = db.get(Customer, customer_id)
    if not customer or customer.company_id not in company_ids:
        raise NotFoundOrUnauthorized("Customer not found or unauthorized")
    return customer


def create_payment(
    db: Session,
    *,
    company_ids: Sequence[int],
    actor_id: int,
    customer_id: int,
    amount: Decimal,
    method: PaymentMethod,
    company_id: Optional[int] = None,
    job_id: Optional[int] = None,
    is_deposit: bool = False,
    deposit_type: Optional[DepositType] = None,
    memo: Optional[str] = None,
) -> Payment:
    customer = _get_customer(db, customer_id, company_ids)
    if company_id is not None and customer.company_id != company_id:
        raise NotFoundOrUnauthorized("Customer not found or unauthorized")
    amount = quantize_money(Decimal(amount))
    if amount <= ZERO:
        raise ValidationError("Payment amount must be greater than zero")
    if deposit_type is not None and not is_deposit:
        raise ValidationError("deposit_type is only valid for deposits")

    payment = Payment(
        company_id=customer.company_id,
        customer_id=customer.id,
        job_id=job_id,
        amount=amount,
        payment_method=method,
        is_deposit=is_deposit,
        deposit_type=deposit_type if is_deposit else None,
        memo=memo,
        payment_date=utcnow().date(),
        created_by=actor_id,
    )
    db.add(payment)
    db.flush()
    logger.info(
        "payment recorded",
        extra={"company_id": payment.company_id, "profile_id": actor_id},
    )
    return payment


def list_unapplied_payments(
    db: Session,
    *,
    company_ids: Sequence[int],
    customer_id: int,
    deposit_type: Optional[DepositType] = None,
) -> List[UnappliedPayment]:
    _get_customer(db, customer_id, company_ids)
    applied = (
        select(
            PaymentApplication.payment_id.label("payment_id"),
            func.sum(PaymentApplication.applied_amount).label("applied"),
        )
        .group_by(PaymentApplication.payment_id)
        .subquery()
    )
    stmt = (
        select(Payment, func.coalesce(applied.c.applied, 0))
        .outerjoin(applied, applied.c.payment_id == Payment.id)
        .where(Payment.customer_id == customer_id, Payment.company_id.in_(list(company_ids)))
        .order_by(Payment.payment_date.asc(), Payment.id.asc())
    )
    if deposit_type is not None:
        stmt = stmt.where(Payment.is_deposit.is_(True), Payment.deposit_type == deposit_type)

    results: List[UnappliedPayment] = []
    for payment, applied_amount in db.execute(stmt):
        unapplied = quantize_money(Decimal(payment.amount) - Decimal(applied_amount or 0))
        if unapplied > ZERO:
            results.append(UnappliedPayment(payment=payment, unapplied_amount=unapplied))
    return results


def apply_payment_to_invoice(
    db: Session,
    *,
    company_ids: Sequence[int],
    actor_id: int,
    invoice_id: int,
    amount: Decimal,
    payment_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    method: Optional[PaymentMethod] = None,
    memo: Optional[str] = None,
) -> dict:
    amount = quantize_money(Decimal(amount))
    if amount <= ZERO:
        raise ValidationError("Amount must be greater than zero")
    if payment_id is None and customer_id is None:
        raise ValidationError("Either payment_id or customer_id must be provided")

    invoice = db.get(Invoice, invoice_id)
    if not invoice or invoice.company_id not in company_ids:
        raise NotFoundOrUnauthorized("Invoice not found or unauthorized")

    balance_due = summarize_invoice(invoice).balance_due
    if amount > balance_due:
        raise DepositExceedsBalance(
            f"Invoice only has balance of {balance_due}, cannot apply {amount}",
            data={"balance_due": str(balance_due)},
        )

    if payment_id is None:
        if method is None:
            raise ValidationError("Payment method is required when creating new payment")
        if customer_id != invoice.customer_id:
            raise ValidationError("Payment and invoice belong to different customers")
        payment = create_payment(
            db,
            company_ids=[invoice.company_id],
            actor_id=actor_id,
            customer_id=customer_id,
            amount=amount,
            method=method,
            memo=memo,
        )
    else:
        payment = lock_payments(db, [payment_id]).get(payment_id)
        if not payment or payment.company_id not in company_ids:
            raise NotFoundOrUnauthorized("Payment not found or unauthorized")
        if payment.customer_id != invoice.customer_id:
            raise ValidationError("Payment and invoice belong to different customers")
        unapplied = get_unapplied_amount(db, payment.id)
        if amount > unapplied:
            raise DepositExceedsBalance(
                f"Payment only has {unapplied} unapplied, cannot apply {amount}",
                data={"unapplied_amount": str(unapplied)},
            )

    application = PaymentApplication(
        payment_id=payment.id,
        invoice_id=invoice.id,
        applied_amount=amount,
        applied_at=utcnow(),
        applied_by=actor_id,
    )
    db.add(application)
    db.flush()
    db.expire(invoice, ["applications"])

    remaining = summarize_invoice(invoice).balance_due
    logger.info(
        "payment applied",
        extra={"invoice_id": invoice.id, "company_id": invoice.company_id, "profile_id": actor_id},
    )
    return {
        "payment_application_id": application.id,
        "payment_id": payment.id,
        "remaining_balance": remaining,
    }
