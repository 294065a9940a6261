import pytest

from kasir.errors import (
    DuplicateBarcodeError,
    ErrorKind,
    InsufficientStockError,
    NegativeStockError,
    NotFoundError,
    PendingReferenceError,
)
from kasir.models import Product, StockMovement
from kasir.services import catalog_service
from kasir.services.ledger_service import reconcile


def test_create_product_records_opening_stock(db_session):
    product = catalog_service.create_product(patch={
        "name": "Tea",
        "barcode": "  555  ",
        "price_cents": 250,
        "stock_quantity": 12,
    })

    assert product.barcode == "555"
    assert product.is_active is True
    movements = db_session.query(StockMovement).filter_by(product_id=product.id).all()
    assert [(m.movement_type, m.quantity, m.reference_type) for m in movements] == [("in", 12, "restock")]
    assert reconcile(product.id)["balanced"] is True


def test_create_product_without_stock_writes_no_movement(db_session):
    product = catalog_service.create_product(patch={"name": "Bag", "price_cents": 100})
    assert product.stock_quantity == 0
    assert product.barcode is None
    assert db_session.query(StockMovement).count() == 0


def test_duplicate_barcode_rejected_on_create(db_session, product_a):
    with pytest.raises(DuplicateBarcodeError) as excinfo:
        catalog_service.create_product(patch={"name": "Copy", "barcode": product_a.barcode, "price_cents": 1})
    assert excinfo.value.kind is ErrorKind.DUPLICATE_BARCODE
    assert db_session.query(Product).count() == 1


def test_barcode_stays_reserved_after_soft_delete(db_session, product_a):
    catalog_service.delete_product(product_id=product_a.id)
    with pytest.raises(DuplicateBarcodeError):
        catalog_service.create_product(patch={"name": "Copy", "barcode": product_a.barcode, "price_cents": 1})


def test_barcode_exists_excluding_self(db_session, product_a, product_b):
    assert catalog_service.barcode_exists(product_a.barcode)
    assert not catalog_service.barcode_exists(product_a.barcode, excluding_id=product_a.id)
    assert catalog_service.barcode_exists(product_a.barcode, excluding_id=product_b.id)
    assert not catalog_service.barcode_exists("")
    assert not catalog_service.barcode_exists(None)


def test_update_keeping_own_barcode_is_allowed(db_session, product_a):
    updated = catalog_service.update_product(
        product_id=product_a.id,
        patch={"barcode": product_a.barcode, "name": "Product A2"},
    )
    assert updated.name == "Product A2"


def test_update_to_taken_barcode_rejected(db_session, product_a, product_b):
    with pytest.raises(DuplicateBarcodeError):
        catalog_service.update_product(product_id=product_b.id, patch={"barcode": product_a.barcode})
    assert db_session.get(Product, product_b.id).barcode == "1000000000002"


def test_update_stock_goes_through_the_ledger(db_session, product_a):
    updated = catalog_service.update_product(product_id=product_a.id, patch={"stock_quantity": 42})

    assert updated.stock_quantity == 42
    adjustment = db_session.query(StockMovement).filter_by(
        product_id=product_a.id, movement_type="adjustment"
    ).one()
    assert adjustment.quantity == -8
    assert reconcile(product_a.id)["balanced"] is True


def test_update_missing_product(db_session):
    with pytest.raises(NotFoundError):
        catalog_service.update_product(product_id=424242, patch={"name": "x"})


def test_find_active_by_barcode_ignores_inactive(db_session, product_a):
    assert catalog_service.find_active_by_barcode(product_a.barcode).id == product_a.id
    assert catalog_service.find_active_by_barcode("   ") is None

    catalog_service.delete_product(product_id=product_a.id)
    assert catalog_service.find_active_by_barcode(product_a.barcode) is None


def test_delete_is_soft(db_session, product_a):
    assert catalog_service.delete_product(product_id=product_a.id) is True
    product = db_session.get(Product, product_a.id)
    assert product is not None
    assert product.is_active is False
    # Repeat delete is a no-op
    assert catalog_service.delete_product(product_id=product_a.id) is True


def test_delete_blocked_by_pending_transaction(db_session, product_a, make_pending_transaction):
    make_pending_transaction(product_a)

    with pytest.raises(PendingReferenceError) as excinfo:
        catalog_service.delete_product(product_id=product_a.id)

    assert excinfo.value.kind is ErrorKind.REFERENCED_BY_PENDING_TRANSACTION
    assert db_session.get(Product, product_a.id).is_active is True


def test_delete_missing_product(db_session):
    with pytest.raises(NotFoundError):
        catalog_service.delete_product(product_id=424242)


def test_decrement_stock_refuses_to_oversell(db_session, product_b):
    with pytest.raises(InsufficientStockError) as excinfo:
        catalog_service.decrement_stock(product_b.id, 6)
    assert excinfo.value.details == {"product_id": product_b.id, "requested_quantity": 6, "available": 5}
    db_session.rollback()

    product = catalog_service.decrement_stock(product_b.id, 5)
    assert product.stock_quantity == 0
    db_session.rollback()


def test_decrement_stock_honours_expected_minimum(db_session, product_b):
    with pytest.raises(InsufficientStockError):
        catalog_service.decrement_stock(product_b.id, 1, expected_minimum=6)
    db_session.rollback()


def test_stock_primitives_report_missing_product(db_session):
    with pytest.raises(NotFoundError):
        catalog_service.decrement_stock(424242, 1)
    with pytest.raises(NotFoundError):
        catalog_service.adjust_stock(424242, 1)
    db_session.rollback()


def test_adjust_stock_primitive_rejects_negative_result(db_session, product_b):
    with pytest.raises(NegativeStockError):
        catalog_service.adjust_stock(product_b.id, -6)
    db_session.rollback()


def test_list_products_filters_and_orders(db_session, product_a, product_b):
    catalog_service.create_product(patch={
        "name": "Coffee Beans", "description": "Arabica", "category": "Drinks", "price_cents": 3000,
    })

    by_price = catalog_service.list_products(order_by="price", order_direction="asc")
    assert [p.name for p in by_price] == ["Product B", "Product A", "Coffee Beans"]

    assert [p.name for p in catalog_service.list_products(search="arabica")] == ["Coffee Beans"]
    assert [p.name for p in catalog_service.list_products(category="Drinks")] == ["Coffee Beans"]
    assert len(catalog_service.list_products(limit=2)) == 2

    catalog_service.delete_product(product_id=product_b.id)
    assert [p.name for p in catalog_service.list_products(is_active=False)] == ["Product B"]

    with pytest.raises(ValueError):
        catalog_service.list_products(order_by="barcode")


def test_low_stock_products(db_session, product_a, product_b):
    assert [p.id for p in catalog_service.get_low_stock_products(10)] == [product_b.id]
    assert catalog_service.get_low_stock_products(5) == []
    assert [p.id for p in catalog_service.get_low_stock_products(100)] == [product_b.id, product_a.id]


def test_deactivate_via_update_blocked_by_pending_transaction(db_session, product_a, make_pending_transaction):
    make_pending_transaction(product_a)

    with pytest.raises(PendingReferenceError):
        catalog_service.update_product(product_id=product_a.id, patch={"is_active": False, "name": "Gone"})

    product = db_session.get(Product, product_a.id)
    assert product.is_active is True
    assert product.name == "Product A"


def test_update_without_deactivating_ignores_pending_transaction(db_session, product_a, make_pending_transaction):
    make_pending_transaction(product_a)

    updated = catalog_service.update_product(product_id=product_a.id, patch={"is_active": True, "price_cents": 2100})
    assert updated.price_cents == 2100
