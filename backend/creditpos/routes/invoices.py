# Overview: Flask API routes for invoices; checkout, payments, returns, voids and reprint figures.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import settlement_service, balance_service
from ..services.settlement_service import SettlementError
from ..services.repayment_service import RepaymentError, pay_invoice
from ..services.return_service import ReturnError, get_invoice_returns, process_return
from ..services.void_service import VoidError, void_invoice
from ..services.balance_service import BalanceError


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _invoice_or_404(invoice_id: int):
    invoice = settlement_service.get_invoice(invoice_id)
    if not invoice:
        return None, (jsonify({"error": "Invoice not found"}), 404)
    return invoice, None


@invoices_bp.post("")
def checkout_route():
    """
    Settle a sale.

    Request body:
    {
        "customer_id": 7,                     (optional unless the sale leaves debt)
        "lines": [{"product_id": 1, "quantity": 2, "unit_price_cents": 500}],
        "discount_cents": 0,
        "tendered_cents": 400,                (optional, defaults to the total)
        "payment_method": "cash",
        "notes": "...",
        "occurred_at": "2026-01-05T10:00:00Z" (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        invoice = settlement_service.settle_sale(
            lines=data.get("lines"),
            customer_id=data.get("customer_id"),
            discount_cents=data.get("discount_cents", 0),
            tendered_cents=data.get("tendered_cents"),
            payment_method=data.get("payment_method", "cash"),
            notes=data.get("notes"),
            occurred_at=data.get("occurred_at"),
            document_number=data.get("document_number"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 201
    except SettlementError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to settle sale")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
def get_invoice_route(invoice_id: int):
    invoice, error = _invoice_or_404(invoice_id)
    if error:
        return error
    return jsonify({"invoice": invoice.to_dict()})


@invoices_bp.post("/<int:invoice_id>/payments")
def pay_invoice_route(invoice_id: int):
    data = request.get_json(silent=True) or {}
    _, error = _invoice_or_404(invoice_id)
    if error:
        return error
    try:
        result = pay_invoice(
            invoice_id=invoice_id,
            amount_cents=data.get("amount_cents"),
            note=data.get("note"),
            occurred_at=data.get("occurred_at"),
        )
        return jsonify(result.to_dict()), 201
    except RepaymentError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to pay invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/returns")
def return_route(invoice_id: int):
    """
    Request body:
    {
        "items": [{"invoice_line_id": 3, "quantity": 1}],
        "note": "...",
        "occurred_at": "..."
    }
    """
    data = request.get_json(silent=True) or {}
    _, error = _invoice_or_404(invoice_id)
    if error:
        return error
    try:
        record = process_return(
            invoice_id=invoice_id,
            items=data.get("items"),
            note=data.get("note"),
            occurred_at=data.get("occurred_at"),
        )
        invoice = settlement_service.get_invoice(invoice_id)
        return jsonify({"return": record.to_dict(), "invoice": invoice.to_dict()}), 201
    except ReturnError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>/returns")
def list_returns_route(invoice_id: int):
    _, error = _invoice_or_404(invoice_id)
    if error:
        return error
    returns = get_invoice_returns(invoice_id)
    return jsonify({"returns": [r.to_dict() for r in returns]})


@invoices_bp.post("/<int:invoice_id>/void")
def void_route(invoice_id: int):
    data = request.get_json(silent=True) or {}
    _, error = _invoice_or_404(invoice_id)
    if error:
        return error
    try:
        invoice = void_invoice(
            invoice_id=invoice_id,
            reason=data.get("reason"),
            occurred_at=data.get("occurred_at"),
        )
        return jsonify({"invoice": invoice.to_dict()})
    except VoidError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to void invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>/balance-at-issue")
def balance_at_issue_route(invoice_id: int):
    try:
        return jsonify(balance_service.reconstruct_balance_at_issue(invoice_id))
    except BalanceError as e:
        return jsonify({"error": str(e)}), 404


@invoices_bp.get("/<int:invoice_id>/print-summary")
def print_summary_route(invoice_id: int):
    try:
        summary = balance_service.print_summary(invoice_id)
    except BalanceError as e:
        return jsonify({"error": str(e)}), 404
    # settings row may have been seeded on first read
    db.session.commit()
    return jsonify(summary)
