# Overview: Append-only customer ledger entries plus the read views built on them.

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Invoice, LedgerEntry
from ..models.ledger import ENTRY_ADJUSTMENT, ENTRY_TYPES, DIRECTIONS
"""
Customer Ledger Invariants (authoritative)

- Entries are append-only; nothing here updates or deletes one.
- amount_cents is a non-negative magnitude; the sign comes from entry_type
  (and direction for adjustments).
- Entries are written inside the same DB transaction as the aggregate change
  they explain.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_entry(
    *,
    customer_id: int,
    entry_type: str,
    amount_cents: int,
    occurred_at: datetime,
    invoice_id: int | None = None,
    direction: str | None = None,
    note: Optional[str] = None,
    due_date: Optional[date] = None,
) -> LedgerEntry:
    """
    Append one ledger entry (no commit).

    - No aggregate logic here; callers update the Customer row themselves.
    - Rejects malformed entries outright since they can never be corrected later.
    """
    if entry_type not in ENTRY_TYPES:
        raise ValueError(f"Unknown ledger entry type: {entry_type}")
    if amount_cents is None or amount_cents < 0:
        raise ValueError("Ledger entry amount must be a non-negative magnitude")
    if entry_type == ENTRY_ADJUSTMENT:
        if direction not in DIRECTIONS:
            raise ValueError(f"Adjustment direction must be one of {DIRECTIONS}")
    elif direction is not None:
        raise ValueError("direction only applies to adjustment entries")

    entry = LedgerEntry(
        customer_id=customer_id,
        invoice_id=invoice_id,
        entry_type=entry_type,
        direction=direction,
        amount_cents=amount_cents,
        note=note,
        due_date=due_date,
        occurred_at=occurred_at,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def mark_visit(customer: Customer, occurred_at: datetime) -> None:
    """lastVisit follows the most recent financial event, so backdating never rewinds it."""
    if customer.last_visit_at is None or occurred_at > customer.last_visit_at:
        customer.last_visit_at = occurred_at


def list_entries(customer_id: int, *, before: datetime | None = None) -> list[LedgerEntry]:
    query = db.session.query(LedgerEntry).filter_by(customer_id=customer_id)
    if before is not None:
        query = query.filter(LedgerEntry.occurred_at < before)
    return query.order_by(LedgerEntry.occurred_at.asc(), LedgerEntry.id.asc()).all()


def get_customer_statement(customer_id: int) -> dict | None:
    """
    History view for one customer: ledger entries and invoices, newest first.

    Returns None if the customer does not exist.
    """
    customer = db.session.get(Customer, customer_id)
    if not customer:
        return None

    entries = (
        db.session.query(LedgerEntry)
        .filter_by(customer_id=customer_id)
        .order_by(LedgerEntry.occurred_at.desc(), LedgerEntry.id.desc())
        .all()
    )
    invoices = (
        db.session.query(Invoice)
        .filter_by(customer_id=customer_id)
        .order_by(Invoice.occurred_at.desc(), Invoice.id.desc())
        .all()
    )
    return {
        "customer": customer.to_dict(),
        "entries": [e.to_dict() for e in entries],
        "invoices": [i.to_dict(include_lines=False) for i in invoices],
    }


def list_debtors() -> dict:
    """Customers owing money, largest balance first."""
    rows = (
        db.session.query(Customer)
        .filter(Customer.total_debt_cents > 0, Customer.is_deleted.is_(False))
        .order_by(Customer.total_debt_cents.desc(), Customer.id.asc())
        .all()
    )
    total = (
        db.session.query(func.coalesce(func.sum(Customer.total_debt_cents), 0))
        .filter(Customer.total_debt_cents > 0, Customer.is_deleted.is_(False))
        .scalar()
    )
    return {
        "debtors": [c.to_dict() for c in rows],
        "count": len(rows),
        "total_outstanding_cents": int(total or 0),
    }
