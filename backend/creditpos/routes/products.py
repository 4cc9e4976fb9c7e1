# Overview: Flask API routes for the stock rows sales and returns adjust.

from flask import Blueprint, request, jsonify, current_app

from ..services import inventory_service
from ..validation import ValidationError, ConflictError


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        product = inventory_service.create_product(payload)
        return jsonify({"product": product.to_dict()}), 201
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    product = inventory_service.get_product(product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"product": product.to_dict()})
