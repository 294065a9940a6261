# Overview: Append-only stock movement ledger; insertion and retrieval only.

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockMovement, MOVEMENT_TYPES, REFERENCE_TYPES
from ..errors import NotFoundError
"""
Stock Ledger Invariants (authoritative)

- Append-only: rows are never updated or deleted.
- No business logic here; callers decide type, sign and reference.
- Rows are written inside the same DB transaction as the stock change they
  record (flush, never commit).
- For every product: opening stock + SUM(quantity) == current stock_quantity.
"""

logger = logging.getLogger(__name__)


def append_movement(
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    reference_type: str,
    reference_id: int | None = None,
    notes: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> StockMovement:
    """
    Append one ledger row.

    - No domain logic here.
    - No deletes/updates of existing rows.
    - created_at defaults to now (UTC-naive) when not given.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"unknown movement_type {movement_type!r}")
    if reference_type not in REFERENCE_TYPES:
        raise ValueError(f"unknown reference_type {reference_type!r}")

    mv = StockMovement(
        product_id=product_id,
        movement_type=movement_type,
        quantity=quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_at=created_at,  # if None, column default applies
    )
    db.session.add(mv)
    db.session.flush()  # ensures mv.id is assigned without committing
    logger.debug(
        "Stock movement %s product=%s type=%s qty=%s ref=%s/%s",
        mv.id, product_id, movement_type, quantity, reference_type, reference_id,
    )
    return mv


def list_movements(product_id: int | None = None, limit: int | None = None) -> list[StockMovement]:
    """Movements newest first, optionally for one product."""
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    q = q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def movement_balance(product_id: int) -> int:
    """Signed sum of every movement recorded for a product."""
    q = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity), 0)
    ).filter(StockMovement.product_id == product_id)
    return int(q.scalar() or 0)


def reconcile(product_id: int, opening_stock: int = 0) -> dict:
    """
    Compare the ledger against the stored stock count.

    Products created through the catalog service record their opening stock as
    a restock movement, so opening_stock is 0 unless the row was inserted
    directly.
    """
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product with id {product_id} not found", {"product_id": product_id})

    balance = movement_balance(product_id)
    expected = opening_stock + balance
    return {
        "product_id": product_id,
        "opening_stock": opening_stock,
        "movement_total": balance,
        "expected_stock": expected,
        "stock_quantity": product.stock_quantity,
        "balanced": expected == product.stock_quantity,
    }
