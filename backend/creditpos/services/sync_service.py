"""
Outbox for best-effort replication of committed ledger operations.

enqueue_action() is called by every mutating service inside its own
transaction, so a queued action exists if and only if the operation
committed. Delivery happens later in process_sync_queue() and never
affects ledger state: failures are logged, counted and retried on the
next pass.

Each action carries a uuid idempotency_key that stays the same across
retries, so the receiving side can drop duplicates.
"""

from __future__ import annotations

import json
import random
import uuid
from typing import Callable

from flask import current_app

from ..extensions import db
from ..models import SyncAction
from ..models.sync import SYNC_STATUS_PENDING, SYNC_STATUS_SYNCED
from creditpos.time_utils import utcnow
from .concurrency import atomic


class SyncTransportError(Exception):
    """Raised by a transport when an action could not be delivered."""
    pass


def enqueue_action(action_type: str, payload: dict) -> SyncAction:
    """Queue an action in the current transaction (no commit)."""
    action = SyncAction(
        idempotency_key=uuid.uuid4().hex,
        action_type=action_type,
        payload=json.dumps(payload, sort_keys=True, default=str),
        status=SYNC_STATUS_PENDING,
        attempts=0,
        created_at=utcnow(),
    )
    db.session.add(action)
    return action


def simulated_upload(action: dict) -> None:
    """Stand-in uploader: fails at SYNC_SIMULATED_FAILURE_RATE."""
    rate = float(current_app.config.get("SYNC_SIMULATED_FAILURE_RATE", 0.0))
    if random.random() < rate:
        raise SyncTransportError("Simulated network failure")


def process_sync_queue(
    transport: Callable[[dict], None] | None = None,
    *,
    limit: int | None = None,
) -> dict:
    """
    Deliver pending actions oldest first.

    transport receives SyncAction.to_dict() and raises on failure. Failed
    actions stay pending with attempts incremented and last_error set.

    Returns:
        {"attempted": n, "synced": n, "failed": n, "pending": n}
    """
    send = transport or simulated_upload
    batch_size = limit or int(current_app.config.get("SYNC_BATCH_SIZE", 50))

    synced = 0
    failed = 0
    with atomic():
        actions = (
            db.session.query(SyncAction)
            .filter_by(status=SYNC_STATUS_PENDING)
            .order_by(SyncAction.id.asc())
            .limit(batch_size)
            .all()
        )
        for action in actions:
            action.attempts = (action.attempts or 0) + 1
            try:
                send(action.to_dict())
            except Exception as exc:
                failed += 1
                action.last_error = str(exc)[:255]
                current_app.logger.warning(
                    "Sync delivery failed for action %s (%s), attempt %s: %s",
                    action.id, action.idempotency_key, action.attempts, exc,
                )
                continue
            action.status = SYNC_STATUS_SYNCED
            action.synced_at = utcnow()
            action.last_error = None
            synced += 1

    pending = db.session.query(SyncAction).filter_by(status=SYNC_STATUS_PENDING).count()
    return {
        "attempted": synced + failed,
        "synced": synced,
        "failed": failed,
        "pending": pending,
    }


def list_actions(status: str | None = None, limit: int = 200) -> list[SyncAction]:
    query = db.session.query(SyncAction)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(SyncAction.id.desc()).limit(limit).all()
