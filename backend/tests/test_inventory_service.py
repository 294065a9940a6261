from datetime import datetime

import pytest

from kasir.errors import ErrorKind, NegativeStockError, NotFoundError
from kasir.extensions import db
from kasir.models import Product, StockMovement
from kasir.services import inventory_service, ledger_service


def test_adjust_positive_and_negative(db_session, product_a):
    assert inventory_service.adjust_stock(product_a.id, 10, "found in back room").stock_quantity == 60
    assert inventory_service.adjust_stock(product_a.id, -15, "damaged").stock_quantity == 45

    rows = ledger_service.list_movements(product_id=product_a.id)
    assert [(m.movement_type, m.quantity, m.notes) for m in rows[:2]] == [
        ("adjustment", -15, "damaged"),
        ("adjustment", 10, "found in back room"),
    ]


def test_adjust_to_exactly_zero_allowed(db_session, product_b):
    assert inventory_service.adjust_stock(product_b.id, -5).stock_quantity == 0


def test_negative_result_rejected_without_writes(db_session, product_b):
    before = db_session.query(StockMovement).count()

    with pytest.raises(NegativeStockError) as excinfo:
        inventory_service.adjust_stock(product_b.id, -6, "oops")

    assert excinfo.value.kind is ErrorKind.NEGATIVE_STOCK_RESULT
    assert excinfo.value.details["current_stock"] == 5
    assert db_session.get(Product, product_b.id).stock_quantity == 5
    assert db_session.query(StockMovement).count() == before


def test_zero_adjustment_still_recorded(db_session, product_b):
    product = inventory_service.adjust_stock(product_b.id, 0, "count confirmed")

    assert product.stock_quantity == 5
    movement = ledger_service.list_movements(product_id=product_b.id, limit=1)[0]
    assert movement.movement_type == "adjustment"
    assert movement.quantity == 0
    assert movement.reference_id is None
    assert movement.notes == "count confirmed"


def test_adjust_missing_product(db_session):
    with pytest.raises(NotFoundError):
        inventory_service.adjust_stock(424242, 1)
    assert db_session.query(StockMovement).count() == 0


def test_adjust_bumps_version_and_timestamp(db_session, product_a):
    stamp = datetime(2024, 6, 1, 12, 0, 0)
    version = product_a.version_id

    product = inventory_service.adjust_stock(product_a.id, 1, now=stamp)

    assert product.version_id > version
    assert product.updated_at == stamp


def test_restock(db_session, product_b):
    product = inventory_service.restock_product(product_b.id, 20, "supplier delivery")

    assert product.stock_quantity == 25
    movement = ledger_service.list_movements(product_id=product_b.id, limit=1)[0]
    assert (movement.movement_type, movement.reference_type, movement.quantity) == ("in", "restock", 20)

    with pytest.raises(ValueError):
        inventory_service.restock_product(product_b.id, 0)


def test_reconcile_all_flags_direct_edits(db_session, product_a, product_b):
    inventory_service.adjust_stock(product_a.id, 3)
    assert all(row["balanced"] for row in inventory_service.reconcile_all())

    # Bypass the ledger
    db.session.execute(
        Product.__table__.update().where(Product.id == product_b.id).values(stock_quantity=99)
    )
    db.session.commit()

    rows = {row["product_id"]: row for row in inventory_service.reconcile_all()}
    assert rows[product_a.id]["balanced"] is True
    assert rows[product_b.id]["balanced"] is False
    assert rows[product_b.id]["expected_stock"] == 5


def test_inventory_summary(db_session, product_b):
    inventory_service.adjust_stock(product_b.id, 1, "recount")

    summary = inventory_service.get_inventory_summary(product_b.id)
    assert summary["stock_quantity"] == 6
    assert summary["last_movement"]["notes"] == "recount"
