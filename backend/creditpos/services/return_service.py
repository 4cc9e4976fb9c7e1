"""
Return Processing Service

Turns a partial or full item return against an existing invoice into a
refund and reconciles everything it touches in one transaction:

- line returned_quantity grows (never past quantity)
- loyalty points clawed back in proportion to the refunded value
- invoice status: returned when every unit is back, otherwise partial
- debt-first refund: the refund retires outstanding debt first; only the
  remainder lowers total_spent_cents (both floored at 0)
- stock restored through the inventory collaborator
- a refund ledger entry with the gross refund value

The InvoiceReturn row records how the refund was split (debt_applied_cents,
spent_reduction_cents). The refund ledger entry alone does not, so replaying
entries after a return that hit debt can differ from the live aggregate.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Customer, Invoice, InvoiceReturn, InvoiceReturnLine
from ..models.invoices import (
    INVOICE_STATUS_PARTIAL,
    INVOICE_STATUS_RETURNED,
    INVOICE_STATUS_VOIDED,
)
from ..models.ledger import ENTRY_REFUND
from ..validation import ValidationError, parse_datetime, parse_quantity
from creditpos.time_utils import utcnow
from .concurrency import atomic, lock_for_update, run_with_retry
from .inventory_service import InventoryError, adjust_stock
from .ledger_service import append_entry, mark_visit
from .sync_service import enqueue_action


class ReturnError(Exception):
    """Raised for return operation errors."""
    pass


def _normalize_items(items) -> dict[int, int]:
    """[{invoice_line_id, quantity}] -> {line_id: qty}; zero quantities are dropped."""
    if isinstance(items, dict):
        items = [{"invoice_line_id": k, "quantity": v} for k, v in items.items()]
    if not isinstance(items, list) or not items:
        raise ReturnError("items are required")

    wanted: dict[int, int] = {}
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict) or raw.get("invoice_line_id") is None:
            raise ReturnError(f"items[{idx}]: invoice_line_id is required")
        try:
            line_id = parse_quantity(raw["invoice_line_id"], f"items[{idx}].invoice_line_id")
            qty = parse_quantity(raw.get("quantity"), f"items[{idx}].quantity")
        except ValidationError as exc:
            raise ReturnError(str(exc))
        if qty:
            wanted[line_id] = wanted.get(line_id, 0) + qty
    return wanted


def points_to_remove(original_points: int, line_refunds: list[int], total_cents: int, cap: int) -> int:
    """
    Proportional clawback: floor(original_points x line_refund / total) per
    line, summed and capped so the invoice never drops below zero points.

    original_points is what the invoice earned at settlement, so repeated
    partial returns claw back against the same base. Scaling by the current
    points_earned instead is deliberately not done: a 100-point invoice
    returned in two halves would keep 25 points with every unit back; here
    it goes 50 then 0.
    """
    if total_cents <= 0 or original_points <= 0:
        return 0
    removed = sum((original_points * refund) // total_cents for refund in line_refunds)
    return min(removed, cap)


def process_return(
    *,
    invoice_id: int,
    items,
    note: str | None = None,
    occurred_at: datetime | str | None = None,
) -> InvoiceReturn:
    """
    Return units from an invoice.

    Args:
        items: [{"invoice_line_id": id, "quantity": n}, ...]. Each quantity
            must satisfy 0 <= n <= quantity - returned_quantity.

    Returns:
        The InvoiceReturn history record.

    Raises:
        ReturnError: Over-return, unknown line, voided invoice or nothing to
        return. Nothing is written.
    """
    wanted = _normalize_items(items)
    if not wanted:
        raise ReturnError("Nothing to return")
    try:
        when = parse_datetime(occurred_at, "occurred_at") or utcnow()
    except ValidationError as exc:
        raise ReturnError(str(exc))

    def _op():
        with atomic():
            invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
            if not invoice:
                raise ReturnError(f"Invoice {invoice_id} not found")
            if invoice.status == INVOICE_STATUS_VOIDED or invoice.is_deleted:
                raise ReturnError("Cannot return items from a voided invoice")

            lines = {line.id: line for line in invoice.lines}
            for line_id, qty in wanted.items():
                line = lines.get(line_id)
                if line is None:
                    raise ReturnError(f"Line {line_id} does not belong to invoice {invoice.id}")
                if qty > line.returnable_quantity:
                    raise ReturnError(
                        f"Cannot return {qty} of line {line_id}: only {line.returnable_quantity} remaining"
                    )

            original_points = invoice.points_earned + sum(r.points_removed for r in invoice.returns)

            record = InvoiceReturn(
                invoice_id=invoice.id,
                occurred_at=when,
                refund_cents=0,
                note=note,
            )
            db.session.add(record)
            db.session.flush()

            refund = 0
            line_refunds = []
            for line_id, qty in sorted(wanted.items()):
                line = lines[line_id]
                line_refund = qty * line.unit_price_cents
                line.returned_quantity += qty
                refund += line_refund
                line_refunds.append(line_refund)
                db.session.add(InvoiceReturnLine(
                    return_id=record.id,
                    invoice_line_id=line.id,
                    product_id=line.product_id,
                    quantity=qty,
                    refund_cents=line_refund,
                ))
                try:
                    adjust_stock(line.product_id, qty)
                except InventoryError as exc:
                    raise ReturnError(str(exc))

            removed = points_to_remove(original_points, line_refunds, invoice.total_cents, invoice.points_earned)
            invoice.points_earned -= removed

            if all(line.returned_quantity >= line.quantity for line in invoice.lines):
                invoice.status = INVOICE_STATUS_RETURNED
            elif refund > 0:
                invoice.status = INVOICE_STATUS_PARTIAL

            debt_applied = 0
            spent_reduction = 0
            if invoice.customer_id is not None:
                customer = lock_for_update(db.session.query(Customer).filter_by(id=invoice.customer_id)).first()
                debt_applied = min(customer.total_debt_cents, refund)
                customer.total_debt_cents -= debt_applied
                spent_reduction = min(customer.total_spent_cents, refund - debt_applied)
                customer.total_spent_cents -= spent_reduction
                customer.loyalty_points = max(0, customer.loyalty_points - removed)
                mark_visit(customer, when)

                append_entry(
                    customer_id=customer.id,
                    invoice_id=invoice.id,
                    entry_type=ENTRY_REFUND,
                    amount_cents=refund,
                    occurred_at=when,
                    note=note or f"Return on {invoice.document_number}",
                )

            record.refund_cents = refund
            record.debt_applied_cents = debt_applied
            record.spent_reduction_cents = spent_reduction
            record.points_removed = removed

            enqueue_action("invoice.returned", {
                "invoice_id": invoice.id,
                "return_id": record.id,
                "customer_id": invoice.customer_id,
                "refund_cents": refund,
                "debt_applied_cents": debt_applied,
                "spent_reduction_cents": spent_reduction,
                "points_removed": removed,
            })
        return record

    return run_with_retry(_op)


def get_invoice_returns(invoice_id: int) -> list[InvoiceReturn]:
    return (
        db.session.query(InvoiceReturn)
        .filter_by(invoice_id=invoice_id)
        .order_by(InvoiceReturn.id.asc())
        .all()
    )
