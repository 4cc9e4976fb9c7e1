from __future__ import annotations

from ..extensions import db
from creditpos.time_utils import to_utc_z


INVOICE_STATUS_UNPAID = "unpaid"
INVOICE_STATUS_PARTIAL = "partial"
INVOICE_STATUS_PAID = "paid"
INVOICE_STATUS_VOIDED = "voided"
INVOICE_STATUS_RETURNED = "returned"

INVOICE_STATUSES = (
    INVOICE_STATUS_UNPAID,
    INVOICE_STATUS_PARTIAL,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_VOIDED,
    INVOICE_STATUS_RETURNED,
)

# Statuses the repayment allocator walks
OPEN_INVOICE_STATUSES = (INVOICE_STATUS_UNPAID, INVOICE_STATUS_PARTIAL)

PAYMENT_METHODS = ("cash", "card", "transfer")


class Invoice(db.Model):
    """
    A completed sale.

    Created once by settlement. Afterwards only the repayment allocator
    (paid_amount_cents, status), the return processor (status,
    points_earned, line returned_quantity) and voiding touch it.

    paid_at_issue_cents is what was settled at the counter and never
    changes; paid_amount_cents is the running figure including later
    repayments. Point-in-time replay reads the former.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_invoices_document_number"),
        db.CheckConstraint("paid_amount_cents <= total_cents", name="ck_invoices_paid_le_total"),
        db.CheckConstraint("paid_at_issue_cents <= total_cents", name="ck_invoices_paid_at_issue_le_total"),
        db.CheckConstraint("points_earned >= 0", name="ck_invoices_points_non_negative"),
        db.Index("ix_invoices_customer_occurred", "customer_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # Business time of the sale (may be backdated)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    profit_cents = db.Column(db.Integer, nullable=False, default=0)

    tendered_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_at_issue_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=INVOICE_STATUS_UNPAID, index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    points_earned = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    # Soft delete / trash
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def balance_cents(self) -> int:
        return self.total_cents - self.paid_amount_cents

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "document_number": self.document_number,
            "customer_id": self.customer_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "cost_cents": self.cost_cents,
            "profit_cents": self.profit_cents,
            "tendered_cents": self.tendered_cents,
            "change_cents": self.change_cents,
            "paid_at_issue_cents": self.paid_at_issue_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "balance_cents": self.balance_cents,
            "status": self.status,
            "payment_method": self.payment_method,
            "points_earned": self.points_earned,
            "notes": self.notes,
            "is_deleted": self.is_deleted,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["return_history"] = [r.to_dict() for r in self.returns]
        return data


class InvoiceLine(db.Model):
    """Line item on an invoice. returned_quantity only ever grows, up to quantity."""
    __tablename__ = "invoice_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_invoice_lines_quantity_positive"),
        db.CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= quantity",
            name="ck_invoice_lines_returned_bounds",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    # Catalog reference by id only
    product_id = db.Column(db.Integer, nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)
    returned_quantity = db.Column(db.Integer, nullable=False, default=0)

    invoice = db.relationship(
        "Invoice",
        backref=db.backref("lines", lazy=True, order_by="InvoiceLine.id"),
    )

    @property
    def returnable_quantity(self) -> int:
        return self.quantity - self.returned_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
            "returned_quantity": self.returned_quantity,
        }


class InvoiceReturn(db.Model):
    """
    One entry of an invoice's return history.

    IMMUTABLE: appended by the return processor, never updated or deleted.
    refund_cents is the gross value; debt_applied_cents and
    spent_reduction_cents record how the debt-first policy split it.
    """
    __tablename__ = "invoice_returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    refund_cents = db.Column(db.Integer, nullable=False)
    debt_applied_cents = db.Column(db.Integer, nullable=False, default=0)
    spent_reduction_cents = db.Column(db.Integer, nullable=False, default=0)
    points_removed = db.Column(db.Integer, nullable=False, default=0)
    note = db.Column(db.String(255), nullable=True)

    invoice = db.relationship(
        "Invoice",
        backref=db.backref("returns", lazy=True, order_by="InvoiceReturn.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "refund_cents": self.refund_cents,
            "debt_applied_cents": self.debt_applied_cents,
            "spent_reduction_cents": self.spent_reduction_cents,
            "points_removed": self.points_removed,
            "note": self.note,
            "items": [item.to_dict() for item in self.items],
        }


class InvoiceReturnLine(db.Model):
    """Units of one invoice line handed back in one return."""
    __tablename__ = "invoice_return_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_invoice_return_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("invoice_returns.id"), nullable=False, index=True)
    invoice_line_id = db.Column(db.Integer, db.ForeignKey("invoice_lines.id"), nullable=False)
    product_id = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    refund_cents = db.Column(db.Integer, nullable=False)

    invoice_return = db.relationship(
        "InvoiceReturn",
        backref=db.backref("items", lazy=True, order_by="InvoiceReturnLine.id"),
    )

    def to_dict(self) -> dict:
        return {
            "invoice_line_id": self.invoice_line_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "refund_cents": self.refund_cents,
        }
