from __future__ import annotations

from ..extensions import db
from creditpos.time_utils import to_utc_z


class LedgerSettings(db.Model):
    """
    Settings needed to interpret stored amounts.

    Single row (id=1). Travels inside every snapshot so an imported archive
    is read with the rates it was written under.
    """
    __tablename__ = "ledger_settings"

    id = db.Column(db.Integer, primary_key=True)
    currency_symbol = db.Column(db.String(8), nullable=False, default="$")
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    loyalty_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "currency_symbol": self.currency_symbol,
            "tax_rate_bps": self.tax_rate_bps,
            "loyalty_rate_bps": self.loyalty_rate_bps,
            "updated_at": to_utc_z(self.updated_at),
        }
