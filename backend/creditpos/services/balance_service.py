# Overview: Read-only balance math; point-in-time replay, print figures and reconciliation.

"""
Historical Balance Reconstructor

Answers "what did this customer owe right before invoice X was issued" by
replaying transaction records only. The live Customer aggregate is never
read, so a reprint shows the same figures no matter what happened later.

CANONICAL ORDER: an invoice J precedes invoice I when J.occurred_at < I.occurred_at,
or when both share a timestamp and J.id < I.id. Ledger entries precede I
when entry.occurred_at < I.occurred_at (strictly before).

REPLAY TERMS (prior records only):
    + sum(total - paid_at_issue) over prior invoices (voided ones included,
      so voiding later does not rewrite history)
    + debt entries without an invoice_id (invoice-linked debt is already in
      the invoice term)
    + charge adjustments - credit adjustments
    - repayment entries
    - void_reversal entries

Refund entries are not replayed: they carry the gross refund, not the part
that retired debt. reconcile_customer() reads the split from InvoiceReturn.
"""

from __future__ import annotations

from sqlalchemy import and_, or_

from ..extensions import db
from ..models import Customer, Invoice, InvoiceReturn, LedgerEntry
from ..models.ledger import (
    DIRECTION_CREDIT,
    ENTRY_ADJUSTMENT,
    ENTRY_DEBT,
    ENTRY_REPAYMENT,
    ENTRY_VOID_REVERSAL,
)
from creditpos.time_utils import to_utc_z
from .settings_service import get_settings


class BalanceError(Exception):
    """Raised when a balance cannot be computed."""
    pass


def _entry_effect(entry: LedgerEntry) -> int:
    """Replay contribution of one entry (positive = customer owes more)."""
    if entry.entry_type == ENTRY_DEBT:
        return 0 if entry.invoice_id is not None else entry.amount_cents
    if entry.entry_type == ENTRY_ADJUSTMENT:
        return -entry.amount_cents if entry.direction == DIRECTION_CREDIT else entry.amount_cents
    if entry.entry_type in (ENTRY_REPAYMENT, ENTRY_VOID_REVERSAL):
        return -entry.amount_cents
    return 0


def historical_debt_before(invoice: Invoice) -> int:
    """Debt the customer carried immediately before `invoice` was issued."""
    if invoice.customer_id is None:
        return 0

    t = invoice.occurred_at
    prior_invoices = (
        db.session.query(Invoice)
        .filter(
            Invoice.customer_id == invoice.customer_id,
            Invoice.id != invoice.id,
            or_(
                Invoice.occurred_at < t,
                and_(Invoice.occurred_at == t, Invoice.id < invoice.id),
            ),
        )
        .all()
    )
    prior_entries = (
        db.session.query(LedgerEntry)
        .filter(
            LedgerEntry.customer_id == invoice.customer_id,
            LedgerEntry.occurred_at < t,
        )
        .all()
    )

    billed_unpaid = sum(inv.total_cents - inv.paid_at_issue_cents for inv in prior_invoices)
    return billed_unpaid + sum(_entry_effect(e) for e in prior_entries)


def reconstruct_balance_at_issue(invoice_id: int) -> dict:
    """
    Balance picture as of an invoice's timestamp.

    Returns:
        {
            "invoice_id", "customer_id", "occurred_at",
            "historical_debt_before_cents",  # owed right before this invoice
            "accumulated_cents",             # that plus this invoice's total
            "net_due_cents",                 # accumulated minus paid at issue
        }

    Raises:
        BalanceError: Unknown invoice.
    """
    invoice = db.session.get(Invoice, invoice_id)
    if not invoice:
        raise BalanceError(f"Invoice {invoice_id} not found")

    before = historical_debt_before(invoice)
    accumulated = before + invoice.total_cents
    return {
        "invoice_id": invoice.id,
        "customer_id": invoice.customer_id,
        "occurred_at": to_utc_z(invoice.occurred_at),
        "historical_debt_before_cents": before,
        "accumulated_cents": accumulated,
        "net_due_cents": accumulated - invoice.paid_at_issue_cents,
    }


def print_summary(invoice_id: int) -> dict:
    """Figures a printed/exported document embeds; nothing live is read."""
    balance = reconstruct_balance_at_issue(invoice_id)
    invoice = db.session.get(Invoice, invoice_id)
    settings = get_settings()
    return {
        "invoice_id": invoice.id,
        "document_number": invoice.document_number,
        "occurred_at": balance["occurred_at"],
        "currency_symbol": settings.currency_symbol,
        "current_cents": invoice.total_cents + invoice.discount_cents,
        "discount_cents": invoice.discount_cents,
        "receipt_cents": invoice.paid_at_issue_cents,
        "change_cents": invoice.change_cents,
        "last_cents": balance["historical_debt_before_cents"],
        "total_cents": balance["net_due_cents"],
    }


# =============================================================================
# RECONCILIATION
# =============================================================================

def _expected_aggregate(customer_id: int) -> dict:
    invoices = db.session.query(Invoice).filter_by(customer_id=customer_id).all()
    entries = db.session.query(LedgerEntry).filter_by(customer_id=customer_id).all()
    returns = (
        db.session.query(InvoiceReturn)
        .join(Invoice, Invoice.id == InvoiceReturn.invoice_id)
        .filter(Invoice.customer_id == customer_id)
        .all()
    )

    debt = sum(inv.total_cents - inv.paid_at_issue_cents for inv in invoices)
    debt += sum(_entry_effect(e) for e in entries)
    debt -= sum(r.debt_applied_cents for r in returns)

    spent = sum(inv.total_cents for inv in invoices) - sum(r.spent_reduction_cents for r in returns)
    points = sum(inv.points_earned for inv in invoices)

    return {
        "total_debt_cents": debt,
        "total_spent_cents": spent,
        "loyalty_points": points,
        "transaction_count": len(invoices),
    }


def reconcile_customer(customer_id: int) -> dict:
    """
    Recompute the aggregate from records alone and compare with the stored one.

    Read-only: drift is reported, never repaired here.
    """
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise BalanceError(f"Customer {customer_id} not found")

    expected = _expected_aggregate(customer_id)
    actual = {
        "total_debt_cents": customer.total_debt_cents,
        "total_spent_cents": customer.total_spent_cents,
        "loyalty_points": customer.loyalty_points,
        "transaction_count": customer.transaction_count,
    }
    drift = {k: actual[k] - expected[k] for k in expected if actual[k] != expected[k]}
    return {
        "customer_id": customer.id,
        "expected": expected,
        "actual": actual,
        "drift": drift,
        "consistent": not drift,
    }


def reconcile_all() -> dict:
    reports = [
        reconcile_customer(cid)
        for (cid,) in db.session.query(Customer.id).order_by(Customer.id.asc()).all()
    ]
    drifted = [r for r in reports if not r["consistent"]]
    return {
        "checked": len(reports),
        "drifted": len(drifted),
        "customers": drifted,
    }
