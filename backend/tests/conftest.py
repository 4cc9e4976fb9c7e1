"""
Pytest fixtures for the customer ledger backend tests.

Provides an in-memory application, a per-test table wipe, and small
customer/product/sale factories.
"""

import pytest
from creditpos import create_app
from creditpos.extensions import db
from creditpos.models import Customer, Product
from creditpos.services.settlement_service import settle_sale


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        # 1 point per currency unit keeps point arithmetic readable
        'LOYALTY_RATE_BPS': 10000,
        'TAX_RATE_BPS': 0,
        'REVERSE_DEBT_ON_VOID': False,
        'SYNC_SIMULATED_FAILURE_RATE': 0.0,
        'BACKUP_RETENTION': 20,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def customer(db_session):
    """A customer with a clean account."""
    c = Customer(name="Alice Example", phone="555-0100")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def other_customer(db_session):
    c = Customer(name="Bob Example", phone="555-0101")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def product(db_session):
    """Stock row with plenty of units."""
    p = Product(sku="SKU-001", name="Widget", price_cents=1000, cost_cents=600, stock_quantity=100)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def make_sale(db_session, product):
    """
    Settle a one-line sale of `quantity` units totalling `total` cents.

    paid=None settles the full amount.
    """
    def _make(customer=None, total=10000, paid=None, quantity=1, occurred_at=None, **kwargs):
        return settle_sale(
            lines=[{
                "product_id": product.id,
                "quantity": quantity,
                "unit_price_cents": total // quantity,
                "unit_cost_cents": 0,
            }],
            customer_id=customer.id if customer is not None else None,
            tendered_cents=paid,
            occurred_at=occurred_at,
            **kwargs,
        )
    return _make
