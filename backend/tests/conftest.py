"""
Pytest fixtures for Sillon backend tests.

Provides test database setup, catalog/order factories, and test client.
"""

from decimal import Decimal

import pytest

from sillon import create_app
from sillon.config import TestConfig
from sillon.extensions import db
from sillon.models import Product, Supplier
from sillon.services import order_service, stock_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
        # Clear all data but keep schema (Core deletes bypass the append-only guards)
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_supplier(db_session):
    """Factory: make_supplier(type="consignment", commission_rate="0.30")."""
    def _make(name="Label Records", type="consignment", commission_rate=None):
        supplier = Supplier(
            name=name,
            type=type,
            commission_rate=Decimal(commission_rate) if commission_rate is not None else None,
        )
        db_session.add(supplier)
        db_session.commit()
        return supplier

    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Factory: make_product(stock=10, selling_price_cents=2000, supplier=None).

    Opening stock is booked as a purchase movement so the ledger replays.
    """
    counter = {"n": 0}

    def _make(stock=10, selling_price_cents=2000, cost_price_cents=1000, supplier=None,
              consignment_rate=None, stock_threshold=0, title=None):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']:04d}",
            title=title or f"Record {counter['n']}",
            stock=0,
            stock_threshold=stock_threshold,
            selling_price_cents=selling_price_cents,
            cost_price_cents=cost_price_cents,
            supplier_id=supplier.id if supplier else None,
            consignment_rate=Decimal(consignment_rate) if consignment_rate is not None else None,
        )
        db_session.add(product)
        db_session.commit()
        if stock:
            stock_service.apply_movement(product.id, "purchase", stock, reason="Opening stock")
        return product

    return _make


@pytest.fixture(scope='function')
def make_order(db_session):
    """Factory: make_order([(product, quantity), ...], customer_name=..., shipping_cents=...)."""
    def _make(lines, **kwargs):
        items = [
            {"product_id": product.id, "quantity": quantity}
            for product, quantity in lines
        ]
        return order_service.create_order(items, **kwargs)

    return _make
