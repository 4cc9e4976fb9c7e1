# Overview: Checkout; turns a cart into an invoice and posts it to the customer's ledger.

"""
Sale Settlement Service

Converts a cart into an Invoice in one atomic step:

- debt incurred = total - paid; unattributed debt (no customer) is refused
- status: paid / partial / unpaid from the amount settled at the counter
- points earned = floor(total x loyalty rate)
- customer aggregate updated (spent, debt, points, transaction count, last visit)
- a debt ledger entry linked to the invoice when debt > 0
- stock decremented through the inventory collaborator

Either every row above lands or none does.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Invoice, InvoiceLine, Product
from ..models.invoices import (
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PARTIAL,
    INVOICE_STATUS_UNPAID,
    PAYMENT_METHODS,
)
from ..models.ledger import ENTRY_DEBT
from ..validation import ValidationError, parse_cents, parse_datetime, parse_quantity
from creditpos.time_utils import utcnow
from .concurrency import atomic, lock_for_update, run_with_retry
from .inventory_service import InventoryError, adjust_stock
from .ledger_service import append_entry, mark_visit
from .settings_service import get_settings
from .sync_service import enqueue_action


class SettlementError(Exception):
    """Raised when a sale cannot be settled."""
    pass


def payment_status(paid_cents: int, total_cents: int) -> str:
    if paid_cents >= total_cents:
        return INVOICE_STATUS_PAID
    if paid_cents > 0:
        return INVOICE_STATUS_PARTIAL
    return INVOICE_STATUS_UNPAID


def points_for_total(total_cents: int, loyalty_rate_bps: int) -> int:
    """floor(total in currency units x rate); bps over cents keeps it integer."""
    if total_cents <= 0 or loyalty_rate_bps <= 0:
        return 0
    return (total_cents * loyalty_rate_bps) // (100 * 10_000)


def _next_document_number() -> str:
    """INV-<next id>, stepping past numbers a client already supplied."""
    candidate = (db.session.query(db.func.max(Invoice.id)).scalar() or 0) + 1
    while db.session.query(Invoice.id).filter_by(document_number=f"INV-{candidate:06d}").first():
        candidate += 1
    return f"INV-{candidate:06d}"


def _normalize_lines(lines) -> list[dict]:
    if not isinstance(lines, list) or not lines:
        raise SettlementError("A sale needs at least one line")

    normalized = []
    for idx, raw in enumerate(lines):
        if not isinstance(raw, dict):
            raise SettlementError(f"Line {idx} must be an object")
        if raw.get("product_id") is None:
            raise SettlementError(f"Line {idx}: product_id is required")
        try:
            product_id = parse_quantity(raw["product_id"], f"lines[{idx}].product_id")
            quantity = parse_quantity(raw.get("quantity"), f"lines[{idx}].quantity")
            price = raw.get("unit_price_cents")
            cost = raw.get("unit_cost_cents")
            normalized.append({
                "product_id": product_id,
                "quantity": quantity,
                "unit_price_cents": None if price is None else parse_cents(price, f"lines[{idx}].unit_price_cents"),
                "unit_cost_cents": None if cost is None else parse_cents(cost, f"lines[{idx}].unit_cost_cents"),
                "description": raw.get("description"),
            })
        except ValidationError as exc:
            raise SettlementError(str(exc))
        if quantity <= 0:
            raise SettlementError(f"Line {idx}: quantity must be positive")
    return normalized


def settle_sale(
    *,
    lines: list[dict],
    customer_id: int | None = None,
    discount_cents: int = 0,
    tendered_cents: int | None = None,
    payment_method: str = "cash",
    notes: str | None = None,
    occurred_at: datetime | str | None = None,
    document_number: str | None = None,
) -> Invoice:
    """
    Settle a sale.

    Args:
        lines: [{product_id, quantity, unit_price_cents?, unit_cost_cents?, description?}].
            Missing prices/costs are taken from the product row.
        customer_id: Optional; required whenever the sale leaves debt.
        discount_cents: Applied after tax.
        tendered_cents: Amount handed over now. Defaults to the full total.
            Cash may exceed the total (change is returned); other tenders may not.
        occurred_at: Business timestamp (backdating). Defaults to now.

    Returns:
        The committed Invoice.

    Raises:
        SettlementError: Nothing is written.
    """
    items = _normalize_lines(lines)
    if payment_method not in PAYMENT_METHODS:
        raise SettlementError(f"Invalid payment method: {payment_method}. Must be one of {PAYMENT_METHODS}")
    try:
        discount = parse_cents(discount_cents or 0, "discount_cents")
        tendered = None if tendered_cents is None else parse_cents(tendered_cents, "tendered_cents")
        when = parse_datetime(occurred_at, "occurred_at") or utcnow()
    except ValidationError as exc:
        raise SettlementError(str(exc))
    if document_number is not None:
        document_number = str(document_number).strip() or None

    def _op():
        with atomic():
            customer = None
            if customer_id is not None:
                customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
                if not customer or customer.is_deleted:
                    raise SettlementError(f"Customer {customer_id} not found")

            if document_number and db.session.query(Invoice.id).filter_by(document_number=document_number).first():
                raise SettlementError(f"Document number already exists: {document_number}")

            settings = get_settings()

            subtotal = 0
            cost = 0
            invoice_lines = []
            for item in items:
                product = db.session.get(Product, item["product_id"])
                price = item["unit_price_cents"]
                unit_cost = item["unit_cost_cents"]
                if price is None or unit_cost is None:
                    if not product:
                        raise SettlementError(f"Product {item['product_id']} not found")
                    price = product.price_cents if price is None else price
                    unit_cost = product.cost_cents if unit_cost is None else unit_cost
                line_total = price * item["quantity"]
                subtotal += line_total
                cost += unit_cost * item["quantity"]
                invoice_lines.append(InvoiceLine(
                    product_id=item["product_id"],
                    description=item["description"] or (product.name if product else None),
                    quantity=item["quantity"],
                    unit_price_cents=price,
                    unit_cost_cents=unit_cost,
                    line_total_cents=line_total,
                    returned_quantity=0,
                ))

            tax = (subtotal * settings.tax_rate_bps) // 10_000
            if discount > subtotal + tax:
                raise SettlementError("Discount cannot exceed the sale amount")
            total = subtotal + tax - discount

            handed = total if tendered is None else tendered
            if payment_method != "cash" and handed > total:
                raise SettlementError("Non-cash tender cannot exceed the total")
            paid = min(handed, total)
            change = handed - paid
            debt_incurred = total - paid

            if debt_incurred > 0 and customer is None:
                raise SettlementError("A customer is required for sales that leave an unpaid balance")

            points = points_for_total(total, settings.loyalty_rate_bps)

            invoice = Invoice(
                document_number=document_number or _next_document_number(),
                customer_id=customer.id if customer else None,
                occurred_at=when,
                subtotal_cents=subtotal,
                tax_cents=tax,
                discount_cents=discount,
                total_cents=total,
                cost_cents=cost,
                profit_cents=total - tax - cost,
                tendered_cents=handed,
                change_cents=change,
                paid_at_issue_cents=paid,
                paid_amount_cents=paid,
                status=payment_status(paid, total),
                payment_method=payment_method,
                points_earned=points,
                notes=notes,
            )
            db.session.add(invoice)
            db.session.flush()

            for line in invoice_lines:
                line.invoice_id = invoice.id
                db.session.add(line)
                try:
                    adjust_stock(line.product_id, -line.quantity)
                except InventoryError as exc:
                    raise SettlementError(str(exc))

            if customer is not None:
                customer.total_spent_cents += total
                customer.total_debt_cents += debt_incurred
                customer.loyalty_points += points
                customer.transaction_count += 1
                mark_visit(customer, when)

                if debt_incurred > 0:
                    append_entry(
                        customer_id=customer.id,
                        invoice_id=invoice.id,
                        entry_type=ENTRY_DEBT,
                        amount_cents=debt_incurred,
                        occurred_at=when,
                        note=f"Unpaid balance of {invoice.document_number}",
                    )

            enqueue_action("invoice.settled", {
                "invoice_id": invoice.id,
                "document_number": invoice.document_number,
                "customer_id": invoice.customer_id,
                "total_cents": total,
                "paid_amount_cents": paid,
                "debt_incurred_cents": debt_incurred,
                "points_earned": points,
            })
        return invoice

    try:
        return run_with_retry(_op)
    except IntegrityError:
        raise SettlementError(f"Document number already exists: {document_number or '(generated)'}")


def get_invoice(invoice_id: int) -> Invoice | None:
    return db.session.get(Invoice, invoice_id)
