from __future__ import annotations

from ..extensions import db
from creditpos.time_utils import to_utc_z


ENTRY_DEBT = "debt"
ENTRY_REPAYMENT = "repayment"
ENTRY_ADJUSTMENT = "adjustment"
ENTRY_REFUND = "refund"
ENTRY_VOID_REVERSAL = "void_reversal"

ENTRY_TYPES = (
    ENTRY_DEBT,
    ENTRY_REPAYMENT,
    ENTRY_ADJUSTMENT,
    ENTRY_REFUND,
    ENTRY_VOID_REVERSAL,
)

# Sign of an adjustment entry; other types have a fixed effect
DIRECTION_CHARGE = "charge"
DIRECTION_CREDIT = "credit"
DIRECTIONS = (DIRECTION_CHARGE, DIRECTION_CREDIT)


class LedgerEntry(db.Model):
    """
    Append-only record of a non-sale financial event for one customer.

    IMMUTABLE: Records are never updated or deleted.

    amount_cents is always a non-negative magnitude. Its effect on the
    balance comes from entry_type (and direction, for adjustments):
    - debt, adjustment/charge: increases what the customer owes
    - repayment, adjustment/credit, void_reversal: decreases it
    - refund: gross refund value, informational (see InvoiceReturn for the split)

    invoice_id is a back-reference to the sale that produced the entry,
    never an ownership pointer.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_ledger_entries_amount_non_negative"),
        db.Index("ix_ledger_entries_customer_occurred", "customer_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)

    entry_type = db.Column(db.String(16), nullable=False, index=True)
    direction = db.Column(db.String(8), nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(255), nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "invoice_id": self.invoice_id,
            "entry_type": self.entry_type,
            "direction": self.direction,
            "amount_cents": self.amount_cents,
            "note": self.note,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }
