"""
Pytest fixtures for the kasir backend tests.

Provides an in-memory application, a per-test clean database, a test client
and a couple of catalog fixtures.
"""

from datetime import datetime

import pytest
from kasir import create_app
from kasir.extensions import db
from kasir.models import Transaction, TransactionItem
from kasir.services import catalog_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
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
def product_a(db_session):
    """Product with stock 50 at 19.99."""
    return catalog_service.create_product(patch={
        "name": "Product A",
        "barcode": "1000000000001",
        "category": "General",
        "price_cents": 1999,
        "stock_quantity": 50,
    })


@pytest.fixture(scope='function')
def product_b(db_session):
    """Product with stock 5 at 5.00."""
    return catalog_service.create_product(patch={
        "name": "Product B",
        "barcode": "1000000000002",
        "category": "General",
        "price_cents": 500,
        "stock_quantity": 5,
    })


@pytest.fixture(scope='function')
def make_pending_transaction(db_session):
    """Factory inserting a pending transaction with one line for a product."""
    def _make(product, quantity=1):
        return _insert_pending(db_session, product, quantity)
    return _make


def _insert_pending(session, product, quantity):
    now = datetime(2024, 1, 10, 12, 0, 0)
    tx = Transaction(
        transaction_number=f"PEND-{product.id}",
        total_amount_cents=product.price_cents * quantity,
        payment_method="cash",
        payment_amount_cents=product.price_cents * quantity,
        change_amount_cents=0,
        status="pending",
        created_at=now,
        updated_at=now,
    )
    tx.items.append(TransactionItem(
        product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        unit_price_cents=product.price_cents,
        total_price_cents=product.price_cents * quantity,
        created_at=now,
    ))
    session.add(tx)
    session.commit()
    return tx
