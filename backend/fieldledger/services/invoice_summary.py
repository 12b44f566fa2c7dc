"""
Invoice summary projection.

A pure function over an invoice's lines and payment applications. Money is
quantized per line the same way the totals are written back onto the invoice,
so the projection and the denormalized columns never drift.

    subtotal         = sum(qty * price) over non-deposit lines
    tax_amount       = sum(qty * price * tax_rate) over taxable non-deposit lines
    total_amount     = subtotal + tax_amount
    deposits_applied = sum(|price * qty|) over deposit_applied lines
    amount_paid      = sum(applied_amount) over applications not backing a line
    balance_due      = total_amount - deposits_applied - amount_paid
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from fieldledger.models.enums import InvoiceLineType, InvoiceStatus

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")

# Statuses an owner sets explicitly; payments never move an invoice out of them.
TERMINAL_STATUSES = {InvoiceStatus.DRAFT, InvoiceStatus.VOID, InvoiceStatus.CANCELLED}


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    deposits_applied: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    invoice_status: InvoiceStatus


def derive_status(stored: InvoiceStatus, *, total: Decimal, settled: Decimal, balance: Decimal) -> InvoiceStatus:
    if stored in TERMINAL_STATUSES:
        return stored
    if balance <= ZERO and total > ZERO:
        return InvoiceStatus.PAID
    if settled > ZERO:
        return InvoiceStatus.PARTIAL
    return stored


def compute_invoice_summary(
    lines: Iterable,
    applications: Iterable,
    *,
    status: Optional[InvoiceStatus] = None,
) -> InvoiceTotals:
    """Project totals from line and application rows (or anything shaped like them)."""
    subtotal = ZERO
    tax = ZERO
    deposits = ZERO
    for line in lines:
        amount = quantize_money(Decimal(line.quantity) * Decimal(line.unit_price))
        if line.line_type == InvoiceLineType.DEPOSIT_APPLIED:
            deposits += abs(amount)
            continue
        subtotal += amount
        if line.taxable and line.tax_rate:
            tax += quantize_money(amount * Decimal(line.tax_rate))

    paid = ZERO
    for application in applications:
        if application.invoice_line_id is None:
            paid += Decimal(application.applied_amount)

    subtotal = quantize_money(subtotal)
    tax = quantize_money(tax)
    total = quantize_money(subtotal + tax)
    deposits = quantize_money(deposits)
    paid = quantize_money(paid)
    balance = quantize_money(total - deposits - paid)
    stored = status or InvoiceStatus.DRAFT
    return InvoiceTotals(
        subtotal=subtotal,
        tax_amount=tax,
        total_amount=total,
        deposits_applied=deposits,
        amount_paid=paid,
        balance_due=balance,
        invoice_status=derive_status(stored, total=total, settled=deposits + paid, balance=balance),
    )


def summarize_invoice(invoice) -> InvoiceTotals:
    return compute_invoice_summary(invoice.lines, invoice.applications, status=invoice.status)
