# Overview: Manual ledger postings (debt, repayment, signed adjustment) made from the customer screen.

from __future__ import annotations

from datetime import date, datetime

from ..extensions import db
from ..models import Customer, LedgerEntry
from ..models.ledger import (
    DIRECTION_CHARGE,
    DIRECTIONS,
    ENTRY_ADJUSTMENT,
    ENTRY_DEBT,
    ENTRY_REPAYMENT,
)
from ..validation import ValidationError, parse_datetime, require_positive_cents
from creditpos.time_utils import utcnow
from .concurrency import atomic, lock_for_update, run_with_retry
from .ledger_service import append_entry, mark_visit
from .repayment_service import allocate_locked
from .sync_service import enqueue_action


MANUAL_ENTRY_TYPES = (ENTRY_DEBT, ENTRY_REPAYMENT, ENTRY_ADJUSTMENT)


class AdjustmentError(Exception):
    """Raised for manual ledger posting errors."""
    pass


def _parse_due_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise AdjustmentError("due_date must be an ISO date (YYYY-MM-DD)")


def apply_manual_adjustment(
    *,
    customer_id: int,
    entry_type: str,
    amount_cents: int,
    note: str | None = None,
    direction: str | None = None,
    due_date: date | str | None = None,
    occurred_at: datetime | str | None = None,
) -> LedgerEntry:
    """
    Post one manual ledger entry and move total_debt_cents with it.

    - debt: debt += amount (optional due_date)
    - repayment: routed through the repayment allocator
    - adjustment: direction "charge" adds, "credit" subtracts (clamped at 0;
      the entry records the amount actually credited)

    Exactly one ledger entry is appended.

    Raises:
        AdjustmentError: Invalid input or unknown customer. Nothing is written.
    """
    if entry_type not in MANUAL_ENTRY_TYPES:
        raise AdjustmentError(f"Invalid entry type: {entry_type}. Must be one of {MANUAL_ENTRY_TYPES}")
    if entry_type == ENTRY_ADJUSTMENT and direction not in DIRECTIONS:
        raise AdjustmentError(f"Adjustments need a direction: one of {DIRECTIONS}")
    if entry_type != ENTRY_ADJUSTMENT and direction is not None:
        raise AdjustmentError("direction is only valid for adjustments")
    if entry_type != ENTRY_DEBT and due_date:
        raise AdjustmentError("due_date is only valid for debt entries")

    try:
        amount = require_positive_cents(amount_cents)
        when = parse_datetime(occurred_at, "occurred_at") or utcnow()
    except ValidationError as exc:
        raise AdjustmentError(str(exc))
    due = _parse_due_date(due_date)

    def _op():
        with atomic():
            customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
            if not customer or customer.is_deleted:
                raise AdjustmentError(f"Customer {customer_id} not found")

            if entry_type == ENTRY_REPAYMENT:
                return allocate_locked(customer, amount, occurred_at=when, note=note).entry

            if entry_type == ENTRY_DEBT or direction == DIRECTION_CHARGE:
                applied = amount
                customer.total_debt_cents += amount
            else:
                applied = min(amount, customer.total_debt_cents)
                customer.total_debt_cents = max(0, customer.total_debt_cents - amount)
            mark_visit(customer, when)

            entry = append_entry(
                customer_id=customer.id,
                entry_type=entry_type,
                direction=direction,
                amount_cents=applied,
                occurred_at=when,
                note=note,
                due_date=due,
            )
            enqueue_action("customer.adjustment", {
                "customer_id": customer.id,
                "entry_id": entry.id,
                "entry_type": entry_type,
                "direction": direction,
                "requested_cents": amount,
                "applied_cents": applied,
            })
            return entry

    return run_with_retry(_op)
