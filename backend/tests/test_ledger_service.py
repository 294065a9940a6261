import pytest

from kasir.errors import NotFoundError
from kasir.services import ledger_service


def test_append_rejects_unknown_types(db_session, product_a):
    with pytest.raises(ValueError):
        ledger_service.append_movement(
            product_id=product_a.id, movement_type="transfer", quantity=1, reference_type="adjustment",
        )
    with pytest.raises(ValueError):
        ledger_service.append_movement(
            product_id=product_a.id, movement_type="in", quantity=1, reference_type="purchase_order",
        )


def test_append_only_flushes(db_session, product_a):
    mv = ledger_service.append_movement(
        product_id=product_a.id, movement_type="adjustment", quantity=3, reference_type="adjustment",
    )
    assert mv.id is not None
    assert mv.created_at is not None

    db_session.rollback()
    assert ledger_service.movement_balance(product_a.id) == 50


def test_reconcile_with_opening_stock(db_session, product_a):
    result = ledger_service.reconcile(product_a.id, opening_stock=10)
    assert result == {
        "product_id": product_a.id,
        "opening_stock": 10,
        "movement_total": 50,
        "expected_stock": 60,
        "stock_quantity": 50,
        "balanced": False,
    }


def test_reconcile_missing_product(db_session):
    with pytest.raises(NotFoundError):
        ledger_service.reconcile(424242)
