from __future__ import annotations

from ..extensions import db
from creditpos.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer master data plus the cached running totals of the ledger.

    AGGREGATE STORE: total_spent_cents, total_debt_cents, loyalty_points,
    transaction_count and last_visit_at are a materialized cache of the
    invoice and ledger-entry history. Only the ledger services write them,
    always inside the same transaction as the records they derive from.

    INVARIANTS: total_debt_cents >= 0 and loyalty_points >= 0 (clamped at
    every write site, enforced again by CHECK constraints).
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.CheckConstraint("total_debt_cents >= 0", name="ck_customers_debt_non_negative"),
        db.CheckConstraint("loyalty_points >= 0", name="ck_customers_points_non_negative"),
        db.CheckConstraint("total_spent_cents >= 0", name="ck_customers_spent_non_negative"),
        db.Index("ix_customers_debt", "total_debt_cents"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)

    # Denormalized aggregates (ledger services only)
    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    total_debt_cents = db.Column(db.Integer, nullable=False, default=0)
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    transaction_count = db.Column(db.Integer, nullable=False, default=0)
    last_visit_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "notes": self.notes,
            "is_deleted": self.is_deleted,
            "total_spent_cents": self.total_spent_cents,
            "total_debt_cents": self.total_debt_cents,
            "loyalty_points": self.loyalty_points,
            "transaction_count": self.transaction_count,
            "last_visit_at": to_utc_z(self.last_visit_at) if self.last_visit_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
