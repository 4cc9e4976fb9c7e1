# Overview: Flask CLI command groups for ledger maintenance and sync delivery.

# backend/creditpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger:
# - python -m flask ledger export --out ledger.json
#   Write the full snapshot (settings, customers, invoices, entries) to a file.
# - python -m flask ledger import ledger.json --yes
#   Replace the whole ledger with a snapshot file (all or nothing).
# - python -m flask ledger reconcile [--customer-id 7]
#   Compare stored customer totals with a recomputation from records.
# - python -m flask ledger backup [--label nightly]
#   Store a snapshot in the backup archive (oldest pruned past BACKUP_RETENTION).
#
# Sync:
# - python -m flask sync process [--limit 50]
#   Run one delivery pass over pending sync actions.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import balance_service, snapshot_service, sync_service
from .services.balance_service import BalanceError
from .services.snapshot_service import SnapshotError


@click.group('system')
def system_group():
    """System repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('ledger')
def ledger_group():
    """Customer ledger snapshot, backup and reconciliation commands."""


@ledger_group.command('export')
@click.option('--out', 'out_path', type=click.Path(dir_okay=False, writable=True), default=None,
              help='Output file (default: stdout)')
@with_appcontext
def export_ledger(out_path):
    """Export the full ledger snapshot as JSON."""
    doc = snapshot_service.export_snapshot()
    db.session.commit()
    text = json.dumps(doc, indent=2, sort_keys=True)
    if out_path:
        with open(out_path, "w", encoding="utf-8") as fh:
            fh.write(text)
        click.echo(
            f"PASS Exported {len(doc['customers'])} customers, {len(doc['invoices'])} invoices, "
            f"{len(doc['ledger_entries'])} entries to {out_path}"
        )
    else:
        click.echo(text)


@ledger_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def import_ledger(path, yes):
    """
    Replace customers, invoices, ledger entries and settings with a snapshot.

    A malformed file leaves the current ledger unchanged.
    """
    if not yes:
        click.confirm("WARN This replaces the whole ledger. Continue?", abort=True)

    with open(path, encoding="utf-8") as fh:
        try:
            doc = json.load(fh)
        except ValueError as exc:
            raise click.ClickException(f"Not a JSON file: {exc}")

    try:
        counts = snapshot_service.restore_snapshot(doc)
    except SnapshotError as exc:
        raise click.ClickException(str(exc))

    click.echo(
        f"PASS Restored {counts['customers']} customers, {counts['invoices']} invoices, "
        f"{counts['ledger_entries']} entries"
    )


@ledger_group.command('reconcile')
@click.option('--customer-id', type=int, default=None, help='Check a single customer')
@with_appcontext
def reconcile_ledger(customer_id):
    """Report customers whose stored totals drift from their records."""
    if customer_id is not None:
        try:
            reports = [balance_service.reconcile_customer(customer_id)]
        except BalanceError as exc:
            raise click.ClickException(str(exc))
    else:
        reports = balance_service.reconcile_all()["customers"]

    drifted = [r for r in reports if not r["consistent"]]
    if not drifted:
        click.echo("PASS All checked customers reconcile.")
        return

    for report in drifted:
        parts = ", ".join(f"{k}={v:+d}" for k, v in sorted(report["drift"].items()))
        click.echo(f"DRIFT customer {report['customer_id']}: {parts}")
    raise SystemExit(1)


@ledger_group.command('backup')
@click.option('--label', default=None, help='Backup label')
@with_appcontext
def backup_ledger(label):
    """Store a snapshot in the backup archive."""
    backup = snapshot_service.create_backup(label)
    click.echo(f"PASS Stored backup {backup.id} ({backup.label})")


@click.group('sync')
def sync_group():
    """Sync queue delivery commands."""


@sync_group.command('process')
@click.option('--limit', type=int, default=None, help='Max actions to deliver (default: SYNC_BATCH_SIZE)')
@with_appcontext
def process_sync(limit):
    """Deliver pending sync actions once."""
    summary = sync_service.process_sync_queue(limit=limit)
    click.echo(
        f"Delivered {summary['synced']}/{summary['attempted']} actions, "
        f"{summary['failed']} failed, {summary['pending']} pending."
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(sync_group)
