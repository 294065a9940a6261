# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/kasir/services/inventory_service.py

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db
from ..models import Product, StockMovement
from ..errors import NotFoundError
from kasir.time_utils import utcnow
from .catalog_service import adjust_stock as _catalog_adjust_stock, get_product
from .ledger_service import append_movement, list_movements, reconcile
from .concurrency import begin_write, lock_for_update, run_with_retry
"""
Inventory Invariants (authoritative)

- Product.stock_quantity may never go negative; an operation that would make
  it negative is rejected with NO stock change and NO ledger row.
- Every stock change appends exactly one StockMovement in the same DB
  transaction as the Product update.
- ADJUST: movement_type="adjustment", reference_type="adjustment", signed
  quantity (zero allowed, recorded for stock-count confirmations).
- RESTOCK: movement_type="in", reference_type="restock", quantity > 0.
- Sales decrement stock through sales_service, not here.
"""

logger = logging.getLogger(__name__)


def _lock_product(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise NotFoundError(f"Product with id {product_id} not found", {"product_id": product_id})
    return product


def apply_adjustment(
    *,
    product_id: int,
    quantity: int,
    notes: str | None = None,
    now: datetime | None = None,
) -> tuple[Product, StockMovement]:
    """Core ADJUST logic without locking, retry, or commit."""
    now = now or utcnow()
    product = _catalog_adjust_stock(product_id, quantity, now=now)
    movement = append_movement(
        product_id=product_id,
        movement_type="adjustment",
        quantity=quantity,
        reference_type="adjustment",
        reference_id=None,
        notes=notes,
        created_at=now,
    )
    return product, movement


def adjust_stock(
    product_id: int,
    quantity: int,
    notes: str | None = None,
    *,
    now: datetime | None = None,
) -> Product:
    """
    Apply a signed quantity to a product's stock and record it in the ledger.

    All-or-nothing: on NegativeStockError or NotFoundError nothing is written.
    """
    def _op():
        begin_write()
        _lock_product(product_id)

        product, movement = apply_adjustment(
            product_id=product_id,
            quantity=quantity,
            notes=notes,
            now=now,
        )

        db.session.commit()
        logger.info(
            "Adjusted stock product=%s delta=%s new_stock=%s movement=%s",
            product_id, quantity, product.stock_quantity, movement.id,
        )
        return product

    return run_with_retry(_op)


def restock_product(
    product_id: int,
    quantity: int,
    notes: str | None = None,
    *,
    now: datetime | None = None,
) -> Product:
    """Receive new stock for a product."""
    if quantity <= 0:
        raise ValueError("restock quantity must be > 0")

    def _op():
        begin_write()
        _lock_product(product_id)
        stamp = now or utcnow()

        product = _catalog_adjust_stock(product_id, quantity, now=stamp)
        movement = append_movement(
            product_id=product_id,
            movement_type="in",
            quantity=quantity,
            reference_type="restock",
            notes=notes,
            created_at=stamp,
        )

        db.session.commit()
        logger.info(
            "Restocked product=%s qty=%s new_stock=%s movement=%s",
            product_id, quantity, product.stock_quantity, movement.id,
        )
        return product

    return run_with_retry(_op)


def get_stock_movements(product_id: int | None = None, limit: int | None = None) -> list[StockMovement]:
    return list_movements(product_id=product_id, limit=limit)


def reconcile_all(opening_stock: dict[int, int] | None = None) -> list[dict]:
    """Ledger reconciliation for every product (active or not)."""
    opening_stock = opening_stock or {}
    product_ids = [row.id for row in db.session.query(Product.id).order_by(Product.id.asc())]
    return [reconcile(pid, opening_stock.get(pid, 0)) for pid in product_ids]


def get_inventory_summary(product_id: int) -> dict:
    product = get_product(product_id)
    movements = list_movements(product_id=product_id, limit=1)
    return {
        "product_id": product.id,
        "stock_quantity": product.stock_quantity,
        "is_active": product.is_active,
        "last_movement": movements[0].to_dict() if movements else None,
    }
