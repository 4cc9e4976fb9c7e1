# Overview: Repayments; FIFO allocation across open invoices and direct invoice payment.

"""
Repayment Allocator

A repayment walks the customer's open invoices (unpaid/partial, not voided)
oldest first by id, filling each balance before moving on. Only what the
invoices absorb reduces total_debt_cents; the rest of the payment is absorbed
without creating credit. A customer with no open invoice has the whole amount
applied to free-floating debt (manual debt, balances of voided invoices),
clamped at zero, so a repayment against a settled account is recorded and
retires nothing.

GUARANTEES:
- No invoice's paid_amount_cents ever exceeds its total_cents.
- total_debt_cents never goes below zero.
- The repayment entry records the debt actually retired, so replaying the
  ledger reproduces the aggregate exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from ..extensions import db
from ..models import Customer, Invoice, LedgerEntry
from ..models.invoices import (
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PARTIAL,
    INVOICE_STATUS_VOIDED,
    OPEN_INVOICE_STATUSES,
)
from ..models.ledger import ENTRY_REPAYMENT
from ..validation import ValidationError, parse_datetime, require_positive_cents
from creditpos.time_utils import utcnow
from .concurrency import atomic, lock_for_update, run_with_retry
from .ledger_service import append_entry, mark_visit
from .sync_service import enqueue_action


class RepaymentError(Exception):
    """Raised for repayment errors."""
    pass


@dataclass
class RepaymentResult:
    customer: Customer
    entry: LedgerEntry
    requested_cents: int
    allocations: list[dict] = field(default_factory=list)

    @property
    def applied_cents(self) -> int:
        return self.entry.amount_cents

    @property
    def unapplied_cents(self) -> int:
        return self.requested_cents - self.entry.amount_cents

    def to_dict(self) -> dict:
        return {
            "customer": self.customer.to_dict(),
            "entry": self.entry.to_dict(),
            "requested_cents": self.requested_cents,
            "applied_cents": self.applied_cents,
            "unapplied_cents": self.unapplied_cents,
            "allocations": self.allocations,
        }


def _lock_customer(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if not customer or customer.is_deleted:
        raise RepaymentError(f"Customer {customer_id} not found")
    return customer


def allocate_locked(
    customer: Customer,
    amount_cents: int,
    *,
    occurred_at: datetime,
    note: str | None = None,
) -> RepaymentResult:
    """
    Allocate inside an already-open transaction (customer row locked by caller).

    Shared by allocate_repayment() and manual adjustments of type repayment.
    """
    open_invoices = lock_for_update(
        db.session.query(Invoice)
        .filter(
            Invoice.customer_id == customer.id,
            Invoice.status.in_(OPEN_INVOICE_STATUSES),
            Invoice.is_deleted.is_(False),
        )
        .order_by(Invoice.id.asc())
    ).all()
    payable = [inv for inv in open_invoices if inv.balance_cents > 0]

    remaining = amount_cents
    allocations = []
    for inv in payable:
        if remaining <= 0:
            break
        to_pay = min(remaining, inv.balance_cents)
        inv.paid_amount_cents += to_pay
        inv.status = INVOICE_STATUS_PAID if inv.paid_amount_cents >= inv.total_cents else INVOICE_STATUS_PARTIAL
        remaining -= to_pay
        allocations.append({
            "invoice_id": inv.id,
            "document_number": inv.document_number,
            "applied_cents": to_pay,
            "balance_cents": inv.balance_cents,
            "status": inv.status,
        })

    if payable:
        actual_reduction = amount_cents - remaining
    else:
        # no open invoice: the whole amount goes against free-floating debt
        actual_reduction = amount_cents

    retired = min(actual_reduction, customer.total_debt_cents)
    customer.total_debt_cents = max(0, customer.total_debt_cents - actual_reduction)
    mark_visit(customer, occurred_at)

    entry = append_entry(
        customer_id=customer.id,
        entry_type=ENTRY_REPAYMENT,
        amount_cents=retired,
        occurred_at=occurred_at,
        note=note,
    )
    enqueue_action("customer.repayment", {
        "customer_id": customer.id,
        "entry_id": entry.id,
        "requested_cents": amount_cents,
        "applied_cents": retired,
        "allocations": [(a["invoice_id"], a["applied_cents"]) for a in allocations],
    })
    return RepaymentResult(
        customer=customer,
        entry=entry,
        requested_cents=amount_cents,
        allocations=allocations,
    )


def allocate_repayment(
    *,
    customer_id: int,
    amount_cents: int,
    note: str | None = None,
    occurred_at: datetime | str | None = None,
) -> RepaymentResult:
    """
    Record a repayment and spread it over open invoices, oldest first.

    Raises:
        RepaymentError: Invalid amount or unknown customer.
    """
    try:
        amount = require_positive_cents(amount_cents)
        when = parse_datetime(occurred_at, "occurred_at") or utcnow()
    except ValidationError as exc:
        raise RepaymentError(str(exc))

    def _op():
        with atomic():
            customer = _lock_customer(customer_id)
            result = allocate_locked(customer, amount, occurred_at=when, note=note)
        return result

    return run_with_retry(_op)


def pay_invoice(
    *,
    invoice_id: int,
    amount_cents: int,
    note: str | None = None,
    occurred_at: datetime | str | None = None,
) -> RepaymentResult:
    """
    Pay one named invoice directly (no FIFO walk).

    to_pay = min(amount, invoice balance); the repayment entry carries the
    invoice id. Rejects voided, returned and already settled invoices.
    """
    try:
        amount = require_positive_cents(amount_cents)
        when = parse_datetime(occurred_at, "occurred_at") or utcnow()
    except ValidationError as exc:
        raise RepaymentError(str(exc))

    def _op():
        with atomic():
            invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
            if not invoice:
                raise RepaymentError(f"Invoice {invoice_id} not found")
            if invoice.status == INVOICE_STATUS_VOIDED or invoice.is_deleted:
                raise RepaymentError("Cannot pay a voided invoice")
            if invoice.status not in OPEN_INVOICE_STATUSES or invoice.balance_cents <= 0:
                raise RepaymentError("Invoice has no remaining balance")
            if invoice.customer_id is None:
                raise RepaymentError("Invoice has no customer account")

            customer = _lock_customer(invoice.customer_id)

            to_pay = min(amount, invoice.balance_cents)
            invoice.paid_amount_cents += to_pay
            invoice.status = INVOICE_STATUS_PAID if invoice.paid_amount_cents >= invoice.total_cents else INVOICE_STATUS_PARTIAL

            retired = min(to_pay, customer.total_debt_cents)
            customer.total_debt_cents = max(0, customer.total_debt_cents - to_pay)
            mark_visit(customer, when)

            entry = append_entry(
                customer_id=customer.id,
                invoice_id=invoice.id,
                entry_type=ENTRY_REPAYMENT,
                amount_cents=retired,
                occurred_at=when,
                note=note or f"Payment on {invoice.document_number}",
            )
            enqueue_action("invoice.payment", {
                "invoice_id": invoice.id,
                "customer_id": customer.id,
                "entry_id": entry.id,
                "requested_cents": amount,
                "applied_cents": to_pay,
            })
            result = RepaymentResult(
                customer=customer,
                entry=entry,
                requested_cents=amount,
                allocations=[{
                    "invoice_id": invoice.id,
                    "document_number": invoice.document_number,
                    "applied_cents": to_pay,
                    "balance_cents": invoice.balance_cents,
                    "status": invoice.status,
                }],
            )
        return result

    return run_with_retry(_op)
