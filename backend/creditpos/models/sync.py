from __future__ import annotations

from ..extensions import db
from creditpos.time_utils import to_utc_z


SYNC_STATUS_PENDING = "pending"
SYNC_STATUS_SYNCED = "synced"


class SyncAction(db.Model):
    """
    Outbox row describing one committed ledger operation for replication.

    Written in the same transaction as the operation. idempotency_key is
    stable across retries so the receiving side can deduplicate.
    """
    __tablename__ = "sync_actions"
    __table_args__ = (
        db.UniqueConstraint("idempotency_key", name="uq_sync_actions_idempotency_key"),
        db.Index("ix_sync_actions_status_id", "status", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    idempotency_key = db.Column(db.String(64), nullable=False)
    action_type = db.Column(db.String(64), nullable=False)
    payload = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SYNC_STATUS_PENDING)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "idempotency_key": self.idempotency_key,
            "action_type": self.action_type,
            "payload": self.payload,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "synced_at": to_utc_z(self.synced_at) if self.synced_at else None,
        }
