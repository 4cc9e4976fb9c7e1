# Overview: Whole-ledger export/import and the rolling backup archive.

"""
Persistence collaborator.

A snapshot is one JSON document holding settings, customers, invoices (with
lines and return history nested) and ledger entries. Restore replaces all of
them together in one transaction: a document that fails shape checks leaves
the database untouched. Stock (products) and the sync outbox are not part of
a snapshot.
"""

from __future__ import annotations

import json

from flask import current_app

from ..extensions import db
from ..models import (
    Customer,
    Invoice,
    InvoiceLine,
    InvoiceReturn,
    InvoiceReturnLine,
    LedgerBackup,
    LedgerEntry,
    LedgerSettings,
)
from ..models.invoices import INVOICE_STATUSES
from ..models.ledger import DIRECTIONS, ENTRY_TYPES
from creditpos.time_utils import parse_iso_datetime, to_utc_z, utcnow
from .concurrency import atomic
from .settings_service import SETTINGS_ROW_ID, get_settings
from .sync_service import enqueue_action


SNAPSHOT_FORMAT = "creditpos-ledger/1"
SNAPSHOT_COLLECTIONS = ("customers", "invoices", "ledger_entries")


class SnapshotError(Exception):
    """Raised when a snapshot cannot be exported or restored."""
    pass


def export_snapshot() -> dict:
    settings = get_settings()
    customers = db.session.query(Customer).order_by(Customer.id.asc()).all()
    invoices = db.session.query(Invoice).order_by(Invoice.id.asc()).all()
    entries = db.session.query(LedgerEntry).order_by(LedgerEntry.id.asc()).all()
    return {
        "format": SNAPSHOT_FORMAT,
        "exported_at": to_utc_z(utcnow()),
        "settings": settings.to_dict(),
        "customers": [c.to_dict() for c in customers],
        "invoices": [i.to_dict(include_lines=True) for i in invoices],
        "ledger_entries": [e.to_dict() for e in entries],
    }


# =============================================================================
# SHAPE CHECKS
# =============================================================================

def _int(row: dict, key: str, *, default=None, minimum: int | None = 0) -> int:
    value = row.get(key, default)
    if value is None or isinstance(value, bool) or not isinstance(value, int):
        raise SnapshotError(f"{key} must be an integer")
    if minimum is not None and value < minimum:
        raise SnapshotError(f"{key} must be >= {minimum}")
    return value


def _dt(row: dict, key: str, *, required: bool = True):
    raw = row.get(key)
    if raw is None:
        if required:
            raise SnapshotError(f"{key} is required")
        return None
    try:
        return parse_iso_datetime(str(raw))
    except ValueError:
        raise SnapshotError(f"{key} is not an ISO-8601 datetime: {raw}")


def _customer_from(row: dict) -> Customer:
    if not row.get("name"):
        raise SnapshotError("customer name is required")
    return Customer(
        id=_int(row, "id", minimum=1),
        name=str(row["name"]),
        phone=row.get("phone"),
        email=row.get("email"),
        address=row.get("address"),
        notes=row.get("notes"),
        is_deleted=bool(row.get("is_deleted", False)),
        total_spent_cents=_int(row, "total_spent_cents", default=0),
        total_debt_cents=_int(row, "total_debt_cents", default=0),
        loyalty_points=_int(row, "loyalty_points", default=0),
        transaction_count=_int(row, "transaction_count", default=0),
        last_visit_at=_dt(row, "last_visit_at", required=False),
        created_at=_dt(row, "created_at", required=False) or utcnow(),
    )


def _invoice_from(row: dict) -> tuple[Invoice, list, list]:
    status = row.get("status")
    if status not in INVOICE_STATUSES:
        raise SnapshotError(f"invalid invoice status: {status}")
    total = _int(row, "total_cents")
    paid = _int(row, "paid_amount_cents", default=0)
    paid_at_issue = _int(row, "paid_at_issue_cents", default=paid)
    if paid > total or paid_at_issue > total:
        raise SnapshotError(f"invoice {row.get('id')}: paid exceeds total")

    invoice = Invoice(
        id=_int(row, "id", minimum=1),
        document_number=str(row.get("document_number") or f"INV-{row.get('id'):06d}"),
        customer_id=None if row.get("customer_id") is None else _int(row, "customer_id", minimum=1),
        occurred_at=_dt(row, "occurred_at"),
        subtotal_cents=_int(row, "subtotal_cents", default=total),
        tax_cents=_int(row, "tax_cents", default=0),
        discount_cents=_int(row, "discount_cents", default=0),
        total_cents=total,
        cost_cents=_int(row, "cost_cents", default=0),
        profit_cents=_int(row, "profit_cents", default=0, minimum=None),
        tendered_cents=_int(row, "tendered_cents", default=paid_at_issue),
        change_cents=_int(row, "change_cents", default=0),
        paid_at_issue_cents=paid_at_issue,
        paid_amount_cents=paid,
        status=status,
        payment_method=row.get("payment_method") or "cash",
        points_earned=_int(row, "points_earned", default=0),
        notes=row.get("notes"),
        is_deleted=bool(row.get("is_deleted", False)),
        voided_at=_dt(row, "voided_at", required=False),
        void_reason=row.get("void_reason"),
        created_at=_dt(row, "created_at", required=False) or utcnow(),
    )

    lines = []
    for line in row.get("lines") or []:
        quantity = _int(line, "quantity", minimum=1)
        returned = _int(line, "returned_quantity", default=0)
        if returned > quantity:
            raise SnapshotError(f"invoice {invoice.id}: returned_quantity exceeds quantity")
        lines.append(InvoiceLine(
            id=_int(line, "id", minimum=1),
            invoice_id=invoice.id,
            product_id=_int(line, "product_id"),
            description=line.get("description"),
            quantity=quantity,
            unit_price_cents=_int(line, "unit_price_cents"),
            unit_cost_cents=_int(line, "unit_cost_cents", default=0),
            line_total_cents=_int(line, "line_total_cents"),
            returned_quantity=returned,
        ))

    returns = []
    for ret in row.get("return_history") or []:
        record = InvoiceReturn(
            id=_int(ret, "id", minimum=1),
            invoice_id=invoice.id,
            occurred_at=_dt(ret, "occurred_at"),
            refund_cents=_int(ret, "refund_cents"),
            debt_applied_cents=_int(ret, "debt_applied_cents", default=0),
            spent_reduction_cents=_int(ret, "spent_reduction_cents", default=0),
            points_removed=_int(ret, "points_removed", default=0),
            note=ret.get("note"),
        )
        items = [
            InvoiceReturnLine(
                return_id=record.id,
                invoice_line_id=_int(item, "invoice_line_id", minimum=1),
                product_id=_int(item, "product_id"),
                quantity=_int(item, "quantity", minimum=1),
                refund_cents=_int(item, "refund_cents"),
            )
            for item in ret.get("items") or []
        ]
        returns.append((record, items))

    return invoice, lines, returns


def _entry_from(row: dict) -> LedgerEntry:
    entry_type = row.get("entry_type")
    if entry_type not in ENTRY_TYPES:
        raise SnapshotError(f"invalid ledger entry type: {entry_type}")
    direction = row.get("direction")
    if direction is not None and direction not in DIRECTIONS:
        raise SnapshotError(f"invalid adjustment direction: {direction}")
    due_date = row.get("due_date")
    return LedgerEntry(
        id=_int(row, "id", minimum=1),
        customer_id=_int(row, "customer_id", minimum=1),
        invoice_id=None if row.get("invoice_id") is None else _int(row, "invoice_id", minimum=1),
        entry_type=entry_type,
        direction=direction,
        amount_cents=_int(row, "amount_cents"),
        note=row.get("note"),
        due_date=_dt({"due_date": due_date}, "due_date").date() if due_date else None,
        occurred_at=_dt(row, "occurred_at"),
        created_at=_dt(row, "created_at", required=False) or utcnow(),
    )


def _check_shape(doc) -> None:
    if not isinstance(doc, dict):
        raise SnapshotError("Snapshot must be a JSON object")
    if doc.get("format") != SNAPSHOT_FORMAT:
        raise SnapshotError(f"Unsupported snapshot format: {doc.get('format')}")
    for key in SNAPSHOT_COLLECTIONS:
        if not isinstance(doc.get(key), list):
            raise SnapshotError(f"Snapshot is missing the '{key}' list")
    if not isinstance(doc.get("settings"), dict):
        raise SnapshotError("Snapshot is missing settings")


# =============================================================================
# RESTORE
# =============================================================================

def restore_snapshot(doc) -> dict:
    """
    Replace customers, invoices, ledger entries and settings with the
    document's contents, all or nothing.

    Returns:
        Counts of restored records.
    """
    _check_shape(doc)

    try:
        customers = [_customer_from(r) for r in doc["customers"]]
        invoices = [_invoice_from(r) for r in doc["invoices"]]
        entries = [_entry_from(r) for r in doc["ledger_entries"]]
    except (AttributeError, TypeError) as exc:
        raise SnapshotError(f"Malformed snapshot: {exc}")

    customer_ids = {c.id for c in customers}
    invoice_ids = {inv.id for inv, _, _ in invoices}
    if len(customer_ids) != len(customers) or len(invoice_ids) != len(invoices):
        raise SnapshotError("Snapshot contains duplicate ids")
    for inv, _, _ in invoices:
        if inv.customer_id is not None and inv.customer_id not in customer_ids:
            raise SnapshotError(f"invoice {inv.id} references unknown customer {inv.customer_id}")
    for entry in entries:
        if entry.customer_id not in customer_ids:
            raise SnapshotError(f"ledger entry {entry.id} references unknown customer {entry.customer_id}")
        if entry.invoice_id is not None and entry.invoice_id not in invoice_ids:
            raise SnapshotError(f"ledger entry {entry.id} references unknown invoice {entry.invoice_id}")

    settings_doc = doc["settings"]
    with atomic():
        db.session.flush()
        for model in (InvoiceReturnLine, InvoiceReturn, InvoiceLine, LedgerEntry, Invoice, Customer):
            db.session.query(model).delete(synchronize_session=False)
        db.session.expunge_all()

        settings = db.session.get(LedgerSettings, SETTINGS_ROW_ID) or LedgerSettings(id=SETTINGS_ROW_ID)
        settings.currency_symbol = str(settings_doc.get("currency_symbol") or "$")
        settings.tax_rate_bps = _int(settings_doc, "tax_rate_bps", default=0)
        settings.loyalty_rate_bps = _int(settings_doc, "loyalty_rate_bps", default=0)
        db.session.add(settings)

        db.session.add_all(customers)
        db.session.flush()
        for inv, lines, returns in invoices:
            db.session.add(inv)
            db.session.add_all(lines)
        db.session.flush()
        for inv, lines, returns in invoices:
            for record, items in returns:
                db.session.add(record)
                db.session.add_all(items)
        db.session.add_all(entries)
        db.session.flush()

        enqueue_action("ledger.restored", {
            "customers": len(customers),
            "invoices": len(invoices),
            "ledger_entries": len(entries),
        })

    return {
        "customers": len(customers),
        "invoices": len(invoices),
        "ledger_entries": len(entries),
    }


# =============================================================================
# BACKUPS
# =============================================================================

def create_backup(label: str | None = None) -> LedgerBackup:
    """Store the current snapshot and prune to the newest BACKUP_RETENTION."""
    retention = int(current_app.config.get("BACKUP_RETENTION", 20))
    now = utcnow()
    document = json.dumps(export_snapshot(), sort_keys=True)

    with atomic():
        backup = LedgerBackup(
            label=label or f"backup-{now:%Y%m%d-%H%M%S}",
            document=document,
            created_at=now,
        )
        db.session.add(backup)
        db.session.flush()

        stale = (
            db.session.query(LedgerBackup.id)
            .order_by(LedgerBackup.id.desc())
            .offset(max(retention, 1))
            .all()
        )
        if stale:
            db.session.query(LedgerBackup).filter(
                LedgerBackup.id.in_([row.id for row in stale])
            ).delete(synchronize_session=False)

    current_app.logger.info("Stored ledger backup %s (%s bytes)", backup.id, len(document))
    return backup


def list_backups() -> list[LedgerBackup]:
    return db.session.query(LedgerBackup).order_by(LedgerBackup.id.desc()).all()


def restore_backup(backup_id: int) -> dict:
    backup = db.session.get(LedgerBackup, backup_id)
    if not backup:
        raise SnapshotError(f"Backup {backup_id} not found")
    try:
        doc = json.loads(backup.document)
    except ValueError:
        raise SnapshotError(f"Backup {backup_id} is not valid JSON")
    return restore_snapshot(doc)
