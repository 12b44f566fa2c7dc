from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from fieldledger.core.errors import (
    Conflict,
    DepositExceedsBalance,
    IllegalStateTransition,
    NotFoundOrUnauthorized,
    ValidationError,
)
from fieldledger.core.observability import invoice_mutations_total
from fieldledger.core.settings import settings
from fieldledger.db.base import utcnow
from fieldledger.models.customer import Customer
from fieldledger.models.enums import InvoiceAuditAction, InvoiceLineType, InvoiceStatus
from fieldledger.models.invoice import Invoice, InvoiceAuditLog, InvoiceCounter, InvoiceLine
from fieldledger.models.payment import PaymentApplication
from fieldledger.schemas.invoice import InvoiceCreate, InvoiceLineInput, InvoiceUpdate
from fieldledger.services.invoice_summary import (
    ZERO,
    InvoiceTotals,
    compute_invoice_summary,
    quantize_money,
    summarize_invoice,
)
from fieldledger.services.ledger import get_unapplied_amount, lock_payments

logger = logging.getLogger(__name__)

RATE_PLACES = Decimal("0.0001")
HUNDRED = Decimal("100")


def _money(value: Decimal) -> str:
    return str(quantize_money(value))


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def prepare_lines(lines: Iterable[InvoiceLineInput]) -> List[dict]:
    """Normalize line inputs into column values, numbered from 1.

    Deposit lines always carry a negative unit price for a single unit and are
    never taxed. Tax rates arrive as percentages and are stored as fractions.
    """
    prepared: List[dict] = []
    for index, line in enumerate(lines, start=1):
        is_deposit = line.line_type == InvoiceLineType.DEPOSIT_APPLIED
        if is_deposit:
            quantity = Decimal("1.00")
            unit_price = -abs(quantize_money(line.unit_price))
            if unit_price == 0:
                raise ValidationError(f"Deposit line {index} must apply a non-zero amount")
            tax_rate = Decimal("0.0000")
        else:
            quantity = quantize_money(line.quantity)
            unit_price = quantize_money(line.unit_price)
            tax_rate = (Decimal(line.tax_rate) / HUNDRED).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)
        prepared.append(
            {
                "line_number": index,
                "line_type": line.line_type,
                "description": line.description,
                "quantity": quantity,
                "unit_price": unit_price,
                "taxable": not is_deposit,
                "tax_rate": tax_rate,
                "job_id": line.job_id,
                "applied_payment_id": line.applied_payment_id if is_deposit else None,
            }
        )
    return prepared


def build_snapshot(invoice: Invoice, totals: InvoiceTotals) -> dict:
    return {
        "status": totals.invoice_status.value,
        "invoice_date": _iso(invoice.invoice_date),
        "due_date": _iso(invoice.due_date),
        "terms": invoice.terms,
        "notes": invoice.notes,
        "total_amount": _money(totals.total_amount),
        "balance_due": _money(totals.balance_due),
        "lines": [
            {
                "line_type": line.line_type.value,
                "description": line.description,
                "quantity": str(line.quantity),
                "unit_price": _money(line.unit_price),
                "tax_rate": str(line.tax_rate),
                "applied_payment_id": line.applied_payment_id,
            }
            for line in invoice.lines
        ],
    }


def add_invoice_audit_log(
    db: Session,
    *,
    invoice_id: int,
    company_id: int,
    action: InvoiceAuditAction,
    actor_profile_id: Optional[int],
    diff: Optional[dict] = None,
) -> InvoiceAuditLog:
    entry = InvoiceAuditLog(
        invoice_id=invoice_id,
        company_id=company_id,
        action=action,
        actor_profile_id=actor_profile_id,
        diff_json=diff,
    )
    db.add(entry)
    db.flush()
    return entry


def next_invoice_number(db: Session, *, company_id: int) -> str:
    counter = (
        db.query(InvoiceCounter)
        .filter(InvoiceCounter.company_id == company_id)
        .with_for_update()
        .first()
    )
    if not counter:
        counter = InvoiceCounter(company_id=company_id, last_number=settings.invoice_number_start - 1)
        db.add(counter)
        db.flush()
    counter.last_number += 1
    db.add(counter)
    db.flush()
    return f"INV-{counter.last_number}"


def get_invoice(db: Session, *, invoice_id: int, company_ids: Sequence[int]) -> Invoice:
    invoice = db.get(Invoice, invoice_id)
    if not invoice or invoice.company_id not in company_ids:
        raise NotFoundOrUnauthorized("Invoice not found or unauthorized")
    return invoice


def get_invoice_detail(db: Session, *, invoice_id: int, company_ids: Sequence[int]) -> Tuple[Invoice, InvoiceTotals]:
    invoice = get_invoice(db, invoice_id=invoice_id, company_ids=company_ids)
    return invoice, summarize_invoice(invoice)


def _requested_deposits(prepared: Iterable[dict]) -> Dict[int, Decimal]:
    requested: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    for line in prepared:
        if line["line_type"] == InvoiceLineType.DEPOSIT_APPLIED:
            requested[line["applied_payment_id"]] += abs(line["unit_price"])
    return dict(requested)


def _check_deposit_capacity(
    db: Session,
    *,
    invoice_company_id: int,
    customer_id: int,
    requested: Dict[int, Decimal],
    previously_held: Optional[Dict[int, Decimal]] = None,
) -> None:
    if not requested:
        return
    previously_held = previously_held or {}
    payments = lock_payments(db, requested.keys())
    for payment_id, amount in sorted(requested.items()):
        payment = payments.get(payment_id)
        if not payment or payment.company_id != invoice_company_id:
            raise NotFoundOrUnauthorized(f"Payment {payment_id} not found or unauthorized")
        if payment.customer_id != customer_id:
            raise ValidationError(f"Payment {payment_id} belongs to a different customer")
        available = get_unapplied_amount(db, payment_id) + previously_held.get(payment_id, ZERO)
        if amount > available:
            raise DepositExceedsBalance(
                "Deposit amount exceeds available balance",
                data={"payment_id": payment_id, "requested": _money(amount), "available": _money(available)},
            )


def _apply_deposit_lines(db: Session, invoice: Invoice, new_lines: Iterable[InvoiceLine], *, actor_id: int) -> None:
    """Insert one application per persisted deposit line."""
    applied_at = utcnow()
    for line in new_lines:
        if line.line_type != InvoiceLineType.DEPOSIT_APPLIED:
            continue
        invoice.applications.append(
            PaymentApplication(
                payment_id=line.applied_payment_id,
                invoice_line_id=line.id,
                applied_amount=abs(line.unit_price),
                applied_at=applied_at,
                applied_by=actor_id,
            )
        )
    db.flush()


def _write_totals(invoice: Invoice) -> InvoiceTotals:
    totals = summarize_invoice(invoice)
    invoice.subtotal = totals.subtotal
    invoice.tax_amount = totals.tax_amount
    invoice.total_amount = totals.total_amount
    # Always dirty the row so the version counter moves on every rewrite.
    invoice.updated_at = utcnow()
    return totals


def _result(invoice: Invoice, totals: InvoiceTotals) -> dict:
    return {
        "invoice_id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "summary": {
            "subtotal": totals.subtotal,
            "tax": totals.tax_amount,
            "total": totals.total_amount,
            "balance": totals.balance_due,
        },
    }


def update_invoice(
    db: Session,
    *,
    invoice_id: int,
    company_ids: Sequence[int],
    actor_id: int,
    payload: InvoiceUpdate,
) -> dict:
    invoice = get_invoice(db, invoice_id=invoice_id, company_ids=company_ids)
    if payload.expected_version is not None and payload.expected_version != invoice.version:
        raise Conflict(
            "Invoice was modified by someone else",
            data={"expected_version": payload.expected_version, "current_version": invoice.version},
        )

    before = build_snapshot(invoice, summarize_invoice(invoice))

    prepared = prepare_lines(payload.lines)
    if not prepared:
        raise ValidationError("Invoice must include at least one line")

    # Everything this invoice held is released by the rewrite, so it counts as available again.
    previously_held: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    for application in invoice.applications:
        previously_held[application.payment_id] += Decimal(application.applied_amount)
    _check_deposit_capacity(
        db,
        invoice_company_id=invoice.company_id,
        customer_id=invoice.customer_id,
        requested=_requested_deposits(prepared),
        previously_held=previously_held,
    )

    with db.begin_nested():
        invoice.applications.clear()
        db.flush()
        invoice.lines.clear()
        db.flush()
        new_lines = [InvoiceLine(**values) for values in prepared]
        invoice.lines.extend(new_lines)
        db.flush()
        _apply_deposit_lines(db, invoice, new_lines, actor_id=actor_id)

        fields_set = payload.model_fields_set
        if payload.invoice_date:
            invoice.invoice_date = payload.invoice_date
        if "due_date" in fields_set:
            invoice.due_date = payload.due_date
        if "terms" in fields_set:
            invoice.terms = payload.terms
        if "notes" in fields_set:
            invoice.notes = payload.notes
        if payload.status:
            invoice.status = payload.status

        totals = _write_totals(invoice)
        db.flush()

        add_invoice_audit_log(
            db,
            invoice_id=invoice.id,
            company_id=invoice.company_id,
            action=InvoiceAuditAction.EDIT,
            actor_profile_id=actor_id,
            diff={"before": before, "after": build_snapshot(invoice, totals)},
        )

    invoice_mutations_total.labels(action=InvoiceAuditAction.EDIT.value).inc()
    logger.info(
        "invoice updated",
        extra={"invoice_id": invoice.id, "company_id": invoice.company_id, "profile_id": actor_id},
    )
    return _result(invoice, totals)


def _auto_deposit_lines(
    db: Session,
    *,
    deposit_ids: Sequence[int],
    company_id: int,
    customer_id: int,
    projected_total: Decimal,
) -> List[InvoiceLineInput]:
    lines: List[InvoiceLineInput] = []
    remaining = projected_total
    payments = lock_payments(db, deposit_ids)
    for deposit_id in deposit_ids:
        payment = payments.get(deposit_id)
        if not payment or payment.company_id != company_id or payment.customer_id != customer_id or not payment.is_deposit:
            raise ValidationError(f"Deposit {deposit_id} not found or unauthorized")
        unapplied = get_unapplied_amount(db, deposit_id)
        if unapplied <= ZERO:
            raise ValidationError(f"Deposit {deposit_id} has no unapplied balance")
        amount = min(unapplied, max(ZERO, remaining))
        if amount <= ZERO:
            continue
        lines.append(
            InvoiceLineInput(
                description="Deposit Applied",
                quantity=Decimal("1"),
                unit_price=-amount,
                line_type=InvoiceLineType.DEPOSIT_APPLIED,
                applied_payment_id=deposit_id,
            )
        )
        remaining -= amount
    return lines


def _projected_total(prepared: Iterable[dict]) -> Decimal:
    """Projected total (subtotal plus tax) of prepared, not yet persisted, lines."""
    total = ZERO
    for line in prepared:
        amount = quantize_money(line["quantity"] * line["unit_price"])
        total += amount
        if line["taxable"] and line["tax_rate"]:
            total += quantize_money(amount * line["tax_rate"])
    return quantize_money(total)


def create_invoice(
    db: Session,
    *,
    company_ids: Sequence[int],
    actor_id: int,
    payload: InvoiceCreate,
) -> dict:
    customer = db.get(Customer, payload.customer_id)
    if not customer or customer.company_id not in company_ids:
        raise NotFoundOrUnauthorized("Customer not found or unauthorized")
    if payload.company_id is not None and payload.company_id != customer.company_id:
        raise NotFoundOrUnauthorized("Customer not found or unauthorized")

    line_inputs = list(payload.lines)
    if payload.deposit_ids:
        billable = [line for line in prepare_lines(line_inputs) if line["line_type"] != InvoiceLineType.DEPOSIT_APPLIED]
        projected = _projected_total(billable)
        line_inputs.extend(
            _auto_deposit_lines(
                db,
                deposit_ids=payload.deposit_ids,
                company_id=customer.company_id,
                customer_id=customer.id,
                projected_total=projected,
            )
        )

    prepared = prepare_lines(line_inputs)
    if not prepared:
        raise ValidationError("Invoice must include at least one line")
    _check_deposit_capacity(
        db,
        invoice_company_id=customer.company_id,
        customer_id=customer.id,
        requested=_requested_deposits(prepared),
    )

    new_lines = [InvoiceLine(**values) for values in prepared]
    line_totals = compute_invoice_summary(new_lines, [], status=InvoiceStatus.DRAFT)

    with db.begin_nested():
        invoice = Invoice(
            company_id=customer.company_id,
            customer_id=customer.id,
            invoice_number=next_invoice_number(db, company_id=customer.company_id),
            status=InvoiceStatus.DRAFT,
            invoice_date=payload.invoice_date or utcnow().date(),
            due_date=payload.due_date,
            terms=payload.terms,
            notes=payload.notes,
            subtotal=line_totals.subtotal,
            tax_amount=line_totals.tax_amount,
            total_amount=line_totals.total_amount,
            created_by=actor_id,
            lines=new_lines,
        )
        db.add(invoice)
        db.flush()
        _apply_deposit_lines(db, invoice, new_lines, actor_id=actor_id)
        totals = summarize_invoice(invoice)

        add_invoice_audit_log(
            db,
            invoice_id=invoice.id,
            company_id=invoice.company_id,
            action=InvoiceAuditAction.CREATE,
            actor_profile_id=actor_id,
            diff={"after": build_snapshot(invoice, totals)},
        )

    invoice_mutations_total.labels(action=InvoiceAuditAction.CREATE.value).inc()
    logger.info(
        "invoice created",
        extra={"invoice_id": invoice.id, "company_id": invoice.company_id, "profile_id": actor_id},
    )
    return _result(invoice, totals)


def issue_invoice(
    db: Session,
    *,
    invoice_id: int,
    company_ids: Sequence[int],
    actor_id: int,
    due_date: date,
    terms: Optional[str] = None,
) -> Invoice:
    invoice = get_invoice(db, invoice_id=invoice_id, company_ids=company_ids)
    if invoice.status != InvoiceStatus.DRAFT:
        raise IllegalStateTransition(f"Only draft invoices can be issued (current status: {invoice.status.value})")

    before = build_snapshot(invoice, summarize_invoice(invoice))
    invoice.status = InvoiceStatus.ISSUED
    invoice.issued_at = utcnow()
    invoice.due_date = due_date
    if terms is not None:
        invoice.terms = terms
    db.flush()

    add_invoice_audit_log(
        db,
        invoice_id=invoice.id,
        company_id=invoice.company_id,
        action=InvoiceAuditAction.ISSUE,
        actor_profile_id=actor_id,
        diff={"before": before, "after": build_snapshot(invoice, summarize_invoice(invoice))},
    )
    invoice_mutations_total.labels(action=InvoiceAuditAction.ISSUE.value).inc()
    logger.info(
        "invoice issued",
        extra={"invoice_id": invoice.id, "company_id": invoice.company_id, "profile_id": actor_id},
    )
    return invoice


def delete_invoice(db: Session, *, invoice_id: int, company_ids: Sequence[int], actor_id: int) -> dict:
    invoice = get_invoice(db, invoice_id=invoice_id, company_ids=company_ids)
    before = build_snapshot(invoice, summarize_invoice(invoice))
    company_id = invoice.company_id

    with db.begin_nested():
        # Releasing the applications returns deposit capacity to the payments.
        invoice.applications.clear()
        db.flush()
        db.delete(invoice)
        db.flush()
        add_invoice_audit_log(
            db,
            invoice_id=invoice_id,
            company_id=company_id,
            action=InvoiceAuditAction.DELETE,
            actor_profile_id=actor_id,
            diff={"before": before},
        )

    invoice_mutations_total.labels(action=InvoiceAuditAction.DELETE.value).inc()
    logger.info(
        "invoice deleted",
        extra={"invoice_id": invoice_id, "company_id": company_id, "profile_id": actor_id},
    )
    return {"success": True}


def list_invoice_audit_logs(db: Session, *, invoice_id: int, company_ids: Sequence[int]) -> List[InvoiceAuditLog]:
    rows = list(
        db.scalars(
            select(InvoiceAuditLog)
            .where(
                InvoiceAuditLog.invoice_id == invoice_id,
                InvoiceAuditLog.company_id.in_(list(company_ids)),
            )
            .order_by(InvoiceAuditLog.created_at.asc(), InvoiceAuditLog.id.asc())
        )
    )
    if not rows:
        # Surfaces 404 for invoices outside the allowlist; deleted invoices keep their trail.
        get_invoice(db, invoice_id=invoice_id, company_ids=company_ids)
    return rows
