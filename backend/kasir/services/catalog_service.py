# backend/kasir/services/catalog_service.py
"""
Catalog Service

Product lookup, listing and maintenance, plus the two stock primitives every
stock-changing workflow goes through:

- decrement_stock(): compare-and-swap subtract, never below zero
- adjust_stock():    signed delta, rejected if the result would be negative

Both primitives only flush; the caller owns the DB transaction and the paired
ledger row.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import update, or_

from ..extensions import db
from ..models import Product, Transaction, TransactionItem
from ..errors import (
    NotFoundError,
    InsufficientStockError,
    NegativeStockError,
    DuplicateBarcodeError,
    PendingReferenceError,
)
from .ledger_service import append_movement
from .concurrency import run_with_retry, begin_write
from kasir.time_utils import utcnow

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {"name", "description", "barcode", "category", "price_cents", "is_active"}

PRODUCT_ORDER_COLUMNS = {
    "name": Product.name,
    "price": Product.price_cents,
    "stock_quantity": Product.stock_quantity,
    "created_at": Product.created_at,
}


def normalize_barcode(value: str | None) -> str | None:
    """Strip whitespace; blank barcodes are stored as NULL."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        if k == "barcode":
            v = normalize_barcode(v)
        setattr(p, k, v)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def find_by_id(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def get_product(product_id: int) -> Product:
    product = find_by_id(product_id)
    if product is None:
        raise NotFoundError(f"Product with id {product_id} not found", {"product_id": product_id})
    return product


def find_active_by_barcode(barcode: str | None) -> Product | None:
    """Exact barcode match among active products; blank input matches nothing."""
    barcode = normalize_barcode(barcode)
    if barcode is None:
        return None
    return (
        db.session.query(Product)
        .filter(Product.barcode == barcode, Product.is_active.is_(True))
        .order_by(Product.id.asc())
        .first()
    )


def barcode_exists(barcode: str | None, excluding_id: int | None = None) -> bool:
    """Uniqueness check across active and inactive products."""
    barcode = normalize_barcode(barcode)
    if barcode is None:
        return False
    q = db.session.query(Product.id).filter(Product.barcode == barcode)
    if excluding_id is not None:
        q = q.filter(Product.id != excluding_id)
    return db.session.query(q.exists()).scalar()


# ---------------------------------------------------------------------------
# Stock primitives (flush only; caller commits)
# ---------------------------------------------------------------------------

def decrement_stock(
    product_id: int,
    amount: int,
    expected_minimum: int | None = None,
    *,
    now: datetime | None = None,
) -> Product:
    """
    Subtract amount from stock in a single conditional UPDATE.

    The WHERE clause re-checks stock against the live row, so two concurrent
    sales can never jointly oversell: the loser matches zero rows.
    expected_minimum defaults to amount.
    """
    floor = amount if expected_minimum is None else max(amount, expected_minimum)
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity >= floor)
        .values(
            stock_quantity=Product.stock_quantity - amount,
            version_id=Product.version_id + 1,
            updated_at=now or utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        current = db.session.query(Product.stock_quantity).filter(Product.id == product_id).scalar()
        if current is None:
            raise NotFoundError(f"Product with id {product_id} not found", {"product_id": product_id})
        raise InsufficientStockError(
            f"Insufficient stock for product {product_id}",
            {"product_id": product_id, "requested_quantity": amount, "available": current},
        )
    return db.session.get(Product, product_id, populate_existing=True)


def adjust_stock(product_id: int, delta: int, *, now: datetime | None = None) -> Product:
    """Add a signed delta to stock; the result may not drop below zero."""
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity + delta >= 0)
        .values(
            stock_quantity=Product.stock_quantity + delta,
            version_id=Product.version_id + 1,
            updated_at=now or utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        current = db.session.query(Product.stock_quantity).filter(Product.id == product_id).scalar()
        if current is None:
            raise NotFoundError(f"Product with id {product_id} not found", {"product_id": product_id})
        raise NegativeStockError(
            "Stock adjustment would result in negative stock quantity",
            {"product_id": product_id, "current_stock": current, "adjustment": delta},
        )
    return db.session.get(Product, product_id, populate_existing=True)


# ---------------------------------------------------------------------------
# Catalog maintenance
# ---------------------------------------------------------------------------

def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    is_active: bool = True,
    order_by: str = "created_at",
    order_direction: str = "desc",
    limit: int = 100,
    offset: int = 0,
) -> list[Product]:
    """
    Filtered product listing.

    search matches name, description or barcode case-insensitively.
    """
    q = db.session.query(Product).filter(Product.is_active.is_(is_active))

    if search:
        term = f"%{search}%"
        q = q.filter(or_(
            Product.name.ilike(term),
            Product.description.ilike(term),
            Product.barcode.ilike(term),
        ))

    if category:
        q = q.filter(Product.category == category)

    column = PRODUCT_ORDER_COLUMNS.get(order_by)
    if column is None:
        raise ValueError(f"order_by must be one of {', '.join(sorted(PRODUCT_ORDER_COLUMNS))}")
    if order_direction == "asc":
        q = q.order_by(column.asc(), Product.id.asc())
    elif order_direction == "desc":
        q = q.order_by(column.desc(), Product.id.desc())
    else:
        raise ValueError("order_direction must be asc or desc")

    return q.offset(max(offset, 0)).limit(max(limit, 0)).all()


def get_low_stock_products(threshold: int = 10) -> list[Product]:
    """Active products with stock strictly below threshold, lowest first."""
    return (
        db.session.query(Product)
        .filter(Product.stock_quantity < threshold, Product.is_active.is_(True))
        .order_by(Product.stock_quantity.asc(), Product.id.asc())
        .all()
    )


def create_product(*, patch: dict, now: datetime | None = None) -> Product:
    """
    Create product using a validated patch dict.

    Opening stock (patch["stock_quantity"]) is recorded as an "in"/"restock"
    movement so the ledger reconciles from zero.

    Raises:
        DuplicateBarcodeError: If the barcode is already used by any product
    """
    def _op():
        begin_write()
        barcode = normalize_barcode(patch.get("barcode"))
        if barcode_exists(barcode):
            raise DuplicateBarcodeError(
                f"Product with barcode '{barcode}' already exists",
                {"barcode": barcode},
            )

        created_at = now or utcnow()
        opening_stock = patch.get("stock_quantity") or 0

        p = Product(stock_quantity=opening_stock, created_at=created_at, updated_at=created_at)
        apply_product_patch(p, patch)
        if p.is_active is None:
            p.is_active = True

        db.session.add(p)
        db.session.flush()  # ensure p.id exists before ledger append

        if opening_stock:
            append_movement(
                product_id=p.id,
                movement_type="in",
                quantity=opening_stock,
                reference_type="restock",
                notes="Opening stock",
                created_at=created_at,
            )

        db.session.commit()
        logger.info("Created product id=%s name=%r stock=%s", p.id, p.name, p.stock_quantity)
        return p

    return run_with_retry(_op)


def _has_pending_reference(product_id: int) -> bool:
    q = (
        db.session.query(TransactionItem.id)
        .join(Transaction, TransactionItem.transaction_id == Transaction.id)
        .filter(
            TransactionItem.product_id == product_id,
            Transaction.status == "pending",
        )
    )
    return db.session.query(q.exists()).scalar()


def _pending_reference_error(product_id: int) -> PendingReferenceError:
    return PendingReferenceError(
        f"Cannot deactivate product with id {product_id}: it is referenced in pending transactions",
        {"product_id": product_id},
    )


def update_product(*, product_id: int, patch: dict, now: datetime | None = None) -> Product:
    """
    Update a product.

    A changed stock_quantity is applied as a ledger-backed adjustment rather
    than a raw overwrite.

    Raises:
        NotFoundError: If the product does not exist
        DuplicateBarcodeError: If the new barcode belongs to another product
        NegativeStockError: If stock_quantity is negative
        PendingReferenceError: If deactivating while a pending transaction
            still has a line for it
    """
    def _op():
        begin_write()
        p = get_product(product_id)

        # Barcode uniqueness enforcement if changing barcode
        if "barcode" in patch:
            barcode = normalize_barcode(patch["barcode"])
            if barcode != p.barcode and barcode_exists(barcode, excluding_id=p.id):
                raise DuplicateBarcodeError(
                    f"Product with barcode '{barcode}' already exists",
                    {"barcode": barcode},
                )

        if p.is_active and patch.get("is_active") is False and _has_pending_reference(p.id):
            raise _pending_reference_error(p.id)

        apply_product_patch(p, patch)
        p.updated_at = now or utcnow()
        db.session.flush()

        target = patch.get("stock_quantity")
        if target is not None and target != p.stock_quantity:
            from .inventory_service import apply_adjustment
            apply_adjustment(
                product_id=p.id,
                quantity=target - p.stock_quantity,
                notes="Stock set via product update",
                now=now,
            )
            p = get_product(product_id)

        db.session.commit()
        logger.info("Updated product id=%s fields=%s", p.id, ", ".join(sorted(patch.keys())))
        return p

    return run_with_retry(_op)


def delete_product(*, product_id: int, now: datetime | None = None) -> bool:
    """
    Soft-delete a product.

    Raises:
        NotFoundError: If the product does not exist
        PendingReferenceError: If a pending transaction still has a line for it
    """
    def _op():
        begin_write()
        p = get_product(product_id)

        if _has_pending_reference(product_id):
            raise _pending_reference_error(product_id)

        # Soft-delete only: preserve IDs and historical references.
        if p.is_active:
            p.is_active = False
            p.updated_at = now or utcnow()

        db.session.commit()
        logger.info("Deactivated product id=%s", product_id)
        return True

    return run_with_retry(_op)
