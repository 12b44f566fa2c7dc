"""Tests for the pure invoice summary projection."""
from decimal import Decimal
from types import SimpleNamespace

from fieldledger.models.enums import InvoiceLineType, InvoiceStatus
from fieldledger.services.invoice_summary import compute_invoice_summary, derive_status, quantize_money


def _line(quantity, unit_price, *, tax_rate="0", taxable=True, line_type=InvoiceLineType.SERVICE):
    return SimpleNamespace(
        quantity=Decimal(quantity),
        unit_price=Decimal(unit_price),
        tax_rate=Decimal(tax_rate),
        taxable=taxable,
        line_type=line_type,
    )


def _application(amount, invoice_line_id=None):
    return SimpleNamespace(applied_amount=Decimal(amount), invoice_line_id=invoice_line_id)


def test_quantize_money_rounds_half_up():
    assert quantize_money(Decimal("2.345")) == Decimal("2.35")
    assert quantize_money(Decimal("2.344")) == Decimal("2.34")
    assert quantize_money(Decimal("-1.005")) == Decimal("-1.01")


def test_taxed_line_with_deposit():
    lines = [
        _line("2", "50", tax_rate="0.08"),
        _line("1", "-30", taxable=False, line_type=InvoiceLineType.DEPOSIT_APPLIED),
    ]
    totals = compute_invoice_summary(lines, [_application("30", invoice_line_id=2)], status=InvoiceStatus.ISSUED)

    assert totals.subtotal == Decimal("100.00")
    assert totals.tax_amount == Decimal("8.00")
    assert totals.total_amount == Decimal("108.00")
    assert totals.deposits_applied == Decimal("30.00")
    # Deposit-backed applications are counted once, through the line.
    assert totals.amount_paid == Decimal("0.00")
    assert totals.balance_due == Decimal("78.00")
    assert totals.invoice_status == InvoiceStatus.PARTIAL


def test_untaxed_lines_ignore_rate():
    totals = compute_invoice_summary([_line("3", "10", tax_rate="0.10", taxable=False)], [])
    assert totals.tax_amount == Decimal("0.00")
    assert totals.total_amount == Decimal("30.00")


def test_direct_payment_settles_invoice():
    totals = compute_invoice_summary([_line("1", "40")], [_application("40")], status=InvoiceStatus.ISSUED)
    assert totals.amount_paid == Decimal("40.00")
    assert totals.balance_due == Decimal("0.00")
    assert totals.invoice_status == InvoiceStatus.PAID


def test_empty_invoice_is_zero():
    totals = compute_invoice_summary([], [])
    assert totals.total_amount == Decimal("0.00")
    assert totals.balance_due == Decimal("0.00")
    assert totals.invoice_status == InvoiceStatus.DRAFT


def test_owner_set_statuses_are_kept():
    for stored in (InvoiceStatus.DRAFT, InvoiceStatus.VOID, InvoiceStatus.CANCELLED):
        assert derive_status(stored, total=Decimal("10"), settled=Decimal("10"), balance=Decimal("0")) == stored
    assert (
        derive_status(InvoiceStatus.ISSUED, total=Decimal("10"), settled=Decimal("0"), balance=Decimal("10"))
        == InvoiceStatus.ISSUED
    )
