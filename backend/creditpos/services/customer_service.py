from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Customer
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import atomic, lock_for_update, run_with_retry
from .sync_service import enqueue_action


class CustomerError(Exception):
    """Raised for customer lifecycle errors."""
    pass


# Aggregates are never client-writable; only ledger operations move them
CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address", "notes"},
    required_on_create={"name"},
)


def create_customer(payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    with atomic():
        customer = Customer(**patch)
        db.session.add(customer)
        db.session.flush()
        enqueue_action("customer.created", {"customer_id": customer.id, "name": customer.name})
    return customer


def get_customer(customer_id: int) -> Customer | None:
    return db.session.get(Customer, customer_id)


def list_customers(*, search: str | None = None, include_deleted: bool = False) -> list[Customer]:
    query = db.session.query(Customer)
    if not include_deleted:
        query = query.filter(Customer.is_deleted.is_(False))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Customer.name.ilike(like), Customer.phone.ilike(like)))
    return query.order_by(Customer.name.asc(), Customer.id.asc()).all()


def _set_trashed(customer_id: int, trashed: bool) -> Customer:
    def _op():
        with atomic():
            customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
            if not customer:
                raise CustomerError(f"Customer {customer_id} not found")
            if customer.is_deleted == trashed:
                raise CustomerError("Customer is already in the trash" if trashed else "Customer is not in the trash")
            customer.is_deleted = trashed
            enqueue_action("customer.trashed" if trashed else "customer.restored", {"customer_id": customer.id})
        return customer

    return run_with_retry(_op)


def trash_customer(customer_id: int) -> Customer:
    """
    Move a customer to the trash.

    Invoices, ledger entries and aggregates are kept as they are; a trashed
    customer is hidden from listings and debtors and cannot take part in new
    sales, repayments or adjustments until restored.
    """
    return _set_trashed(customer_id, True)


def restore_customer(customer_id: int) -> Customer:
    return _set_trashed(customer_id, False)
