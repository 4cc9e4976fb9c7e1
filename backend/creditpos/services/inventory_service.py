"""
Stock collaborator for the ledger.

Sales and returns report (product_id, quantity_delta) here. Availability is
never checked: stock may go negative, the caller is assumed to have
pre-checked it.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    enforce_rules_product,
    validate_payload,
)
from .concurrency import atomic, lock_for_update


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "price_cents", "cost_cents", "stock_quantity"},
    required_on_create={"sku", "name"},
)


class InventoryError(Exception):
    """Raised for stock adjustment errors."""
    pass


def adjust_stock(product_id: int, quantity_delta: int) -> Product:
    """
    Apply a signed stock delta inside the caller's transaction.

    Raises:
        InventoryError: If the product does not exist. The caller's whole
        operation is expected to roll back.
    """
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if not product:
        raise InventoryError(f"Product {product_id} not found")
    product.stock_quantity = (product.stock_quantity or 0) + quantity_delta
    return product


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    if db.session.query(Product.id).filter_by(sku=patch["sku"]).first():
        raise ConflictError(f"SKU already exists: {patch['sku']}")

    try:
        with atomic():
            product = Product(**patch)
            db.session.add(product)
    except IntegrityError:
        raise ConflictError(f"SKU already exists: {patch['sku']}")
    return product


def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)
