# Overview: Pytest coverage for sale settlement.

"""
Sale Settlement Tests

Covers status derivation, debt incurred, loyalty points, aggregate updates,
the auto-generated debt entry, stock movement and all-or-nothing failure.
"""

import pytest

from creditpos.extensions import db
from creditpos.models import Customer, Invoice, LedgerEntry, Product, SyncAction
from creditpos.services import settings_service
from creditpos.services.settlement_service import (
    SettlementError,
    points_for_total,
    settle_sale,
)


class TestSettlementStatus:
    """Status and debt derived from the amount settled at the counter."""

    def test_fully_paid_sale(self, db_session, customer, make_sale):
        invoice = make_sale(customer, total=10000)

        assert invoice.status == "paid"
        assert invoice.paid_amount_cents == 10000
        assert invoice.paid_at_issue_cents == 10000
        assert db_session.query(LedgerEntry).count() == 0

        c = db.session.get(Customer, customer.id)
        assert c.total_spent_cents == 10000
        assert c.total_debt_cents == 0
        assert c.transaction_count == 1
        assert c.last_visit_at is not None

    def test_partial_payment_records_debt_entry(self, db_session, customer, make_sale):
        invoice = make_sale(customer, total=10000, paid=4000)

        assert invoice.status == "partial"
        assert invoice.balance_cents == 6000

        c = db.session.get(Customer, customer.id)
        assert c.total_debt_cents == 6000

        entries = db_session.query(LedgerEntry).all()
        assert len(entries) == 1
        assert entries[0].entry_type == "debt"
        assert entries[0].amount_cents == 6000
        assert entries[0].invoice_id == invoice.id

    def test_nothing_paid_is_unpaid(self, db_session, customer, make_sale):
        invoice = make_sale(customer, total=2500, paid=0)
        assert invoice.status == "unpaid"
        assert db.session.get(Customer, customer.id).total_debt_cents == 2500

    def test_loyalty_points_are_floored(self, db_session, customer, make_sale):
        """1999 cents at 1 point per unit earns 19 points, not 20."""
        invoice = make_sale(customer, total=1999)
        assert invoice.points_earned == 19
        assert db.session.get(Customer, customer.id).loyalty_points == 19

    def test_points_for_total_uses_basis_points(self):
        assert points_for_total(10000, 1000) == 10
        assert points_for_total(999, 10000) == 9
        assert points_for_total(0, 10000) == 0
        assert points_for_total(10000, 0) == 0


class TestAnonymousSales:
    """Sales without a customer must be settled in full."""

    def test_unattributed_debt_is_refused(self, db_session, product, make_sale):
        with pytest.raises(SettlementError):
            make_sale(None, total=5000, paid=1000)

        assert db_session.query(Invoice).count() == 0
        assert db_session.query(LedgerEntry).count() == 0
        assert db.session.get(Product, product.id).stock_quantity == 100

    def test_fully_paid_anonymous_sale(self, db_session, make_sale):
        invoice = make_sale(None, total=5000)
        assert invoice.customer_id is None
        assert invoice.status == "paid"
        assert db_session.query(LedgerEntry).count() == 0


class TestTenderAndFigures:

    def test_cash_overtender_returns_change(self, db_session, customer, make_sale):
        invoice = make_sale(customer, total=7500, paid=10000)
        assert invoice.paid_amount_cents == 7500
        assert invoice.tendered_cents == 10000
        assert invoice.change_cents == 2500
        assert invoice.status == "paid"
        assert db.session.get(Customer, customer.id).total_debt_cents == 0

    def test_card_overtender_rejected(self, db_session, customer, make_sale):
        with pytest.raises(SettlementError):
            make_sale(customer, total=7500, paid=10000, payment_method="card")
        assert db_session.query(Invoice).count() == 0

    def test_tax_discount_and_profit(self, db_session, customer, product):
        settings_service.update_settings({"tax_rate_bps": 1000})

        invoice = settle_sale(
            lines=[{"product_id": product.id, "quantity": 2}],
            customer_id=customer.id,
            discount_cents=50,
        )
        # 2 x 1000 from the product row, 10% tax, 50 off
        assert invoice.subtotal_cents == 2000
        assert invoice.tax_cents == 200
        assert invoice.total_cents == 2150
        assert invoice.cost_cents == 1200
        assert invoice.profit_cents == 2150 - 200 - 1200

    def test_discount_larger_than_sale_rejected(self, db_session, customer, make_sale):
        with pytest.raises(SettlementError):
            make_sale(customer, total=1000, discount_cents=5000)


class TestSettlementAtomicity:

    def test_stock_is_decremented(self, db_session, customer, product, make_sale):
        make_sale(customer, total=3000, quantity=3)
        assert db.session.get(Product, product.id).stock_quantity == 97

    def test_unknown_product_rolls_back_everything(self, db_session, customer):
        with pytest.raises(SettlementError):
            settle_sale(
                lines=[{"product_id": 9999, "quantity": 1, "unit_price_cents": 500, "unit_cost_cents": 0}],
                customer_id=customer.id,
                tendered_cents=0,
            )

        c = db.session.get(Customer, customer.id)
        assert c.total_debt_cents == 0
        assert c.total_spent_cents == 0
        assert c.transaction_count == 0
        assert db_session.query(Invoice).count() == 0
        assert db_session.query(LedgerEntry).count() == 0
        assert db_session.query(SyncAction).count() == 0

    def test_empty_cart_rejected(self, db_session, customer):
        with pytest.raises(SettlementError):
            settle_sale(lines=[], customer_id=customer.id)

    def test_fractional_quantity_rejected(self, db_session, customer, product):
        with pytest.raises(SettlementError):
            settle_sale(lines=[{"product_id": product.id, "quantity": 1.5}], customer_id=customer.id)

    def test_unknown_customer_rejected(self, db_session, make_sale):
        class Ghost:
            id = 4242
        with pytest.raises(SettlementError):
            make_sale(Ghost(), total=1000)

    def test_backdated_sale_keeps_business_time(self, db_session, customer, make_sale):
        invoice = make_sale(customer, total=1000, occurred_at="2026-01-05T10:00:00Z")
        assert invoice.occurred_at.isoformat() == "2026-01-05T10:00:00"

    def test_document_numbers_are_unique(self, db_session, customer, make_sale):
        first = make_sale(customer, total=1000)
        second = make_sale(customer, total=1000)
        assert first.document_number.startswith("INV-")
        assert second.document_number.startswith("INV-")
        assert first.document_number != second.document_number

    def test_duplicate_document_number_rejected(self, db_session, customer, make_sale):
        make_sale(customer, total=1000, document_number="X-1")

        with pytest.raises(SettlementError, match="already exists"):
            make_sale(customer, total=2000, paid=0, document_number="X-1")

        c = db.session.get(Customer, customer.id)
        assert c.transaction_count == 1
        assert c.total_debt_cents == 0
        assert db_session.query(Invoice).count() == 1

    def test_generated_number_steps_past_supplied_one(self, db_session, customer, make_sale):
        first = make_sale(customer, total=1000)
        # the number the generator would pick for the third invoice
        taken = f"INV-{first.id + 2:06d}"
        make_sale(customer, total=1000, document_number=taken)

        third = make_sale(customer, total=1000)

        assert third.id == first.id + 2
        assert third.document_number == f"INV-{first.id + 3:06d}"
