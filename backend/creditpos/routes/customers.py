# Overview: Flask API routes for customer accounts; parses input and returns JSON responses.

# backend/creditpos/routes/customers.py
"""
Customer Account API Routes

DESIGN:
- Customer aggregates (debt, spent, points) are read-only over HTTP; they
  only move through repayments, adjustments, sales and returns
- Repayments are allocated oldest invoice first
- Reconciliation compares the stored aggregate with a recomputation
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import customer_service, ledger_service, balance_service
from ..services.repayment_service import RepaymentError, allocate_repayment
from ..services.adjustment_service import AdjustmentError, apply_manual_adjustment
from ..services.customer_service import CustomerError
from ..services.balance_service import BalanceError
from ..validation import ValidationError, parse_datetime


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.create_customer(payload)
        return jsonify({"customer": customer.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("")
def list_customers_route():
    """
    Query params:
    - q: name/phone search (optional)
    - include_deleted: true/false (default false)
    """
    search = request.args.get("q")
    include_deleted = request.args.get("include_deleted", "false").lower() == "true"
    customers = customer_service.list_customers(search=search, include_deleted=include_deleted)
    return jsonify({"customers": [c.to_dict() for c in customers], "count": len(customers)})


@customers_bp.get("/debtors")
def list_debtors_route():
    return jsonify(ledger_service.list_debtors())


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    customer = customer_service.get_customer(customer_id)
    if not customer:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify({"customer": customer.to_dict()})


@customers_bp.delete("/<int:customer_id>")
def trash_customer_route(customer_id: int):
    if customer_service.get_customer(customer_id) is None:
        return jsonify({"error": "Customer not found"}), 404
    try:
        customer = customer_service.trash_customer(customer_id)
        return jsonify({"customer": customer.to_dict()})
    except CustomerError as e:
        return jsonify({"error": str(e)}), 400


@customers_bp.post("/<int:customer_id>/restore")
def restore_customer_route(customer_id: int):
    if customer_service.get_customer(customer_id) is None:
        return jsonify({"error": "Customer not found"}), 404
    try:
        customer = customer_service.restore_customer(customer_id)
        return jsonify({"customer": customer.to_dict()})
    except CustomerError as e:
        return jsonify({"error": str(e)}), 400


@customers_bp.get("/<int:customer_id>/statement")
def customer_statement_route(customer_id: int):
    statement = ledger_service.get_customer_statement(customer_id)
    if statement is None:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify(statement)


@customers_bp.post("/<int:customer_id>/repayments")
def repayment_route(customer_id: int):
    """
    Record a repayment.

    Request body:
    {
        "amount_cents": 6000,
        "note": "Cash at counter",        (optional)
        "occurred_at": "2026-01-05T10:00:00Z"  (optional, backdating)
    }

    Returns:
        201: Entry, per-invoice allocations and updated customer
        400: Invalid amount
        404: Customer not found
    """
    data = request.get_json(silent=True) or {}
    if customer_service.get_customer(customer_id) is None:
        return jsonify({"error": "Customer not found"}), 404
    if data.get("amount_cents") is None:
        return jsonify({"error": "amount_cents required"}), 400

    try:
        result = allocate_repayment(
            customer_id=customer_id,
            amount_cents=data.get("amount_cents"),
            note=data.get("note"),
            occurred_at=data.get("occurred_at"),
        )
        return jsonify(result.to_dict()), 201
    except RepaymentError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record repayment")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/adjustments")
def adjustment_route(customer_id: int):
    """
    Post a manual ledger entry.

    Request body:
    {
        "entry_type": "debt" | "repayment" | "adjustment",
        "amount_cents": 2500,
        "direction": "charge" | "credit",   (adjustment only)
        "due_date": "2026-02-01",           (debt only, optional)
        "note": "...",
        "occurred_at": "..."                (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    if customer_service.get_customer(customer_id) is None:
        return jsonify({"error": "Customer not found"}), 404

    try:
        entry = apply_manual_adjustment(
            customer_id=customer_id,
            entry_type=data.get("entry_type"),
            amount_cents=data.get("amount_cents"),
            note=data.get("note"),
            direction=data.get("direction"),
            due_date=data.get("due_date"),
            occurred_at=data.get("occurred_at"),
        )
        customer = customer_service.get_customer(customer_id)
        return jsonify({"entry": entry.to_dict(), "customer": customer.to_dict()}), 201
    except AdjustmentError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to post manual adjustment")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/reconciliation")
def reconciliation_route(customer_id: int):
    try:
        return jsonify(balance_service.reconcile_customer(customer_id))
    except BalanceError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.get("/<int:customer_id>/entries")
def list_entries_route(customer_id: int):
    """
    Query params:
    - before: ISO-8601 datetime; only entries strictly earlier (optional)
    """
    if customer_service.get_customer(customer_id) is None:
        return jsonify({"error": "Customer not found"}), 404
    try:
        before = parse_datetime(request.args.get("before"), "before")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    entries = ledger_service.list_entries(customer_id, before=before)
    return jsonify({"entries": [e.to_dict() for e in entries], "count": len(entries)})
