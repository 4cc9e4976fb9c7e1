# Overview: Trashing invoices; soft delete plus stock restore, with optional debt reversal.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Customer, Invoice
from ..models.invoices import INVOICE_STATUS_VOIDED
from ..models.ledger import ENTRY_VOID_REVERSAL
from ..validation import ValidationError, parse_datetime
from creditpos.time_utils import utcnow
from .concurrency import atomic, lock_for_update, run_with_retry
from .inventory_service import InventoryError, adjust_stock
from .ledger_service import append_entry, mark_visit
from .sync_service import enqueue_action


class VoidError(Exception):
    """Raised for invoice void errors."""
    pass


def void_invoice(
    *,
    invoice_id: int,
    reason: str | None = None,
    occurred_at: datetime | str | None = None,
    reverse_debt: bool | None = None,
) -> Invoice:
    """
    Void (trash) an invoice.

    The invoice is never deleted: it is marked voided + is_deleted, and the
    units not already returned go back to stock.

    POLICY: by default the debt and points the invoice produced stay on the
    customer. With REVERSE_DEBT_ON_VOID (or reverse_debt=True) the invoice's
    unpaid balance is retired from total_debt_cents (clamped), its remaining
    points are clawed back, and a void_reversal entry records the amount retired.

    Raises:
        VoidError: Unknown or already voided invoice.
    """
    try:
        when = parse_datetime(occurred_at, "occurred_at") or utcnow()
    except ValidationError as exc:
        raise VoidError(str(exc))
    if reverse_debt is None:
        reverse_debt = bool(current_app.config.get("REVERSE_DEBT_ON_VOID", False))

    def _op():
        with atomic():
            invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
            if not invoice:
                raise VoidError(f"Invoice {invoice_id} not found")
            if invoice.status == INVOICE_STATUS_VOIDED or invoice.is_deleted:
                raise VoidError("Invoice is already voided")

            for line in invoice.lines:
                outstanding_units = line.quantity - line.returned_quantity
                if outstanding_units > 0:
                    try:
                        adjust_stock(line.product_id, outstanding_units)
                    except InventoryError as exc:
                        raise VoidError(str(exc))

            retired = 0
            points_reversed = 0
            if reverse_debt and invoice.customer_id is not None:
                customer = lock_for_update(db.session.query(Customer).filter_by(id=invoice.customer_id)).first()
                retired = min(customer.total_debt_cents, max(0, invoice.balance_cents))
                customer.total_debt_cents -= retired
                points_reversed = min(customer.loyalty_points, invoice.points_earned)
                customer.loyalty_points -= points_reversed
                invoice.points_earned -= points_reversed
                mark_visit(customer, when)

                append_entry(
                    customer_id=customer.id,
                    invoice_id=invoice.id,
                    entry_type=ENTRY_VOID_REVERSAL,
                    amount_cents=retired,
                    occurred_at=when,
                    note=f"Void of {invoice.document_number} ({points_reversed} points reversed)",
                )

            invoice.status = INVOICE_STATUS_VOIDED
            invoice.is_deleted = True
            invoice.voided_at = when
            invoice.void_reason = reason

            enqueue_action("invoice.voided", {
                "invoice_id": invoice.id,
                "customer_id": invoice.customer_id,
                "reason": reason,
                "debt_reversed_cents": retired,
                "points_reversed": points_reversed,
            })
        return invoice

    return run_with_retry(_op)
