"""
Pytest fixtures for partspos backend tests.

Provides the application with an in-memory database, a per-test table
wipe, and factories for products (with FIFO lots), customers and
documents.
"""

import itertools
from datetime import datetime, timedelta

import pytest

from partspos import create_app
from partspos.extensions import db
from partspos.models import Customer, Lot, Product
from partspos.models.inventory import LOT_STATUS_ACTIVE
from partspos.services import document_service, line_item_service
from partspos.services.fifo_service import fifo_head_cost, get_available_lots


BASE_RECEIVED_AT = datetime(2026, 1, 5, 9, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TX_RETRY_ATTEMPTS': 3,
        'TX_RETRY_BACKOFF_SECONDS': 0,
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
        db.session.rollback()
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Factory: product with lots received one day apart, oldest first.

    lots is a list of (quantity, unit_cost_cents) or
    (quantity, unit_cost_cents, received_at).
    """
    counter = itertools.count(1)

    def _make(lots=(), *, min_price_cents=0, default_price_cents=1000, is_active=True):
        n = next(counter)
        product = Product(
            code=f"P-{n:04d}",
            name=f"Test part {n}",
            min_price_cents=min_price_cents,
            default_price_cents=default_price_cents,
            is_active=is_active,
            stock_on_hand=0,
            default_cost_cents=0,
        )
        db_session.add(product)
        db_session.flush()

        for i, spec in enumerate(lots):
            quantity, unit_cost = spec[0], spec[1]
            received_at = spec[2] if len(spec) > 2 else BASE_RECEIVED_AT + timedelta(days=i)
            db_session.add(Lot(
                product_id=product.id,
                lot_number=f"L{i + 1:02d}",
                received_at=received_at,
                quantity_received=quantity,
                quantity_remaining=quantity,
                unit_cost_cents=unit_cost,
                status=LOT_STATUS_ACTIVE,
            ))
            product.stock_on_hand += quantity
        db_session.flush()

        product.default_cost_cents = fifo_head_cost(get_available_lots(product.id))
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def lots_of(db_session):
    """Lots of a product in insertion (id) order."""
    def _lots(product_id):
        return db_session.query(Lot).filter_by(product_id=product_id).order_by(Lot.id).all()
    return _lots


@pytest.fixture(scope='function')
def make_customer(db_session):
    counter = itertools.count(1)

    def _make(name=None, *, credit_enabled=True):
        n = next(counter)
        customer = Customer(
            name=name or f"Customer {n}",
            document_number=f"4000{n:04d}",
            credit_enabled=credit_enabled,
        )
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture(scope='function')
def quotation_with(db_session):
    """Factory: DRAFT quotation with one add_product call per (product, quantity[, price])."""
    def _make(*items, customer_id=None):
        quotation = document_service.create_quotation(customer_id=customer_id)
        for item in items:
            product, quantity = item[0], item[1]
            price = item[2] if len(item) > 2 else None
            line_item_service.add_product("QUOTATION", quotation.id, product.id, quantity, price)
        return quotation

    return _make


@pytest.fixture(scope='function')
def credit_with(db_session):
    """Factory: DRAFT credit for a customer with one add_product call per item."""
    def _make(customer, *items):
        credit = document_service.create_credit(customer_id=customer.id)
        for item in items:
            product, quantity = item[0], item[1]
            price = item[2] if len(item) > 2 else None
            line_item_service.add_product("CREDIT", credit.id, product.id, quantity, price)
        return credit

    return _make
