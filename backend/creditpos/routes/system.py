# backend/creditpos/routes/system.py
"""
System endpoints: health, ledger settings, snapshot export/import, backups
and sync-queue delivery.
"""

import time
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Customer, Invoice, LedgerEntry, SyncAction
from ..models.sync import SYNC_STATUS_PENDING
from ..services import settings_service, snapshot_service, sync_service
from ..services.settings_service import SettingsError
from ..services.snapshot_service import SnapshotError
from creditpos.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    """
    Check database connectivity and basic ledger queries.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        customer_count = db.session.query(Customer).count()
        invoice_count = db.session.query(Invoice).count()
        entry_count = db.session.query(LedgerEntry).count()
        pending_sync = db.session.query(SyncAction).filter_by(status=SYNC_STATUS_PENDING).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "customers": customer_count,
                "invoices": invoice_count,
                "ledger_entries": entry_count,
                "pending_sync_actions": pending_sync,
            }
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: Database reachable
    - 503: Database unhealthy
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503
    return {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, http_status


# =============================================================================
# SETTINGS
# =============================================================================

@system_bp.get("/settings")
def get_settings_route():
    settings = settings_service.get_settings()
    db.session.commit()
    return jsonify({"settings": settings.to_dict()})


@system_bp.put("/settings")
def update_settings_route():
    payload = request.get_json(silent=True) or {}
    try:
        settings = settings_service.update_settings(payload)
        return jsonify({"settings": settings.to_dict()})
    except SettingsError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update settings")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SNAPSHOTS & BACKUPS
# =============================================================================

@system_bp.get("/export")
def export_route():
    try:
        doc = snapshot_service.export_snapshot()
        db.session.commit()
        return jsonify(doc)
    except SQLAlchemyError:
        current_app.logger.error("Ledger export failed", exc_info=True)
        return jsonify({"error": "Export failed", "notice": "The ledger could not be exported; no data was changed."}), 503


@system_bp.post("/import")
def import_route():
    """Replace the whole ledger with an exported snapshot document."""
    doc = request.get_json(silent=True)
    try:
        counts = snapshot_service.restore_snapshot(doc)
        return jsonify({"restored": counts})
    except SnapshotError as e:
        return jsonify({"error": str(e)}), 400
    except SQLAlchemyError:
        current_app.logger.error("Ledger import failed", exc_info=True)
        return jsonify({"error": "Import failed", "notice": "The previous ledger was kept unchanged."}), 503


@system_bp.post("/backups")
def create_backup_route():
    data = request.get_json(silent=True) or {}
    try:
        backup = snapshot_service.create_backup(data.get("label"))
        return jsonify({"backup": backup.to_dict()}), 201
    except SQLAlchemyError:
        current_app.logger.error("Ledger backup failed", exc_info=True)
        return jsonify({"error": "Backup failed", "notice": "Backup could not be stored; the ledger is unaffected."}), 503


@system_bp.get("/backups")
def list_backups_route():
    backups = snapshot_service.list_backups()
    return jsonify({"backups": [b.to_dict() for b in backups]})


@system_bp.post("/backups/<int:backup_id>/restore")
def restore_backup_route(backup_id: int):
    try:
        counts = snapshot_service.restore_backup(backup_id)
        return jsonify({"restored": counts})
    except SnapshotError as e:
        return jsonify({"error": str(e)}), 400
    except SQLAlchemyError:
        current_app.logger.error("Backup restore failed", exc_info=True)
        return jsonify({"error": "Restore failed", "notice": "The previous ledger was kept unchanged."}), 503


# =============================================================================
# SYNC QUEUE
# =============================================================================

@system_bp.post("/sync")
def process_sync_route():
    """Run one delivery pass over the outbox. Failures are counted, never raised."""
    summary = sync_service.process_sync_queue()
    return jsonify(summary)


@system_bp.get("/sync")
def list_sync_route():
    status = request.args.get("status")
    actions = sync_service.list_actions(status=status)
    return jsonify({"actions": [a.to_dict() for a in actions]})
