from __future__ import annotations

from ..extensions import db
from creditpos.time_utils import to_utc_z


class LedgerBackup(db.Model):
    """Stored snapshot document (rolling archive, oldest pruned first)."""
    __tablename__ = "ledger_backups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    label = db.Column(db.String(128), nullable=False)
    document = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "created_at": to_utc_z(self.created_at),
            "size_bytes": len(self.document or ""),
        }
