"""
Sales Service - atomic checkout

One call validates the order against live catalog state, prices it, writes
the transaction and its lines, decrements stock and appends one ledger row
per line. Everything happens inside a single DB transaction: a failure at
any step rolls back every write made by the call.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Transaction, TransactionItem, PAYMENT_METHODS, TRANSACTION_STATUSES
from ..errors import (
    NotFoundError,
    ProductInactiveError,
    InsufficientStockError,
    EmptyOrderError,
)
from ..validation import ValidationError
from kasir.time_utils import utcnow
from .catalog_service import decrement_stock
from .document_service import DocumentNumberError, next_transaction_number
from .ledger_service import append_movement
from .concurrency import begin_write, lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

NUMBER_ATTEMPTS = 3


@dataclass(frozen=True)
class SaleLineInput:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class PricedLine:
    product: Product
    quantity: int
    unit_price_cents: int

    @property
    def total_price_cents(self) -> int:
        return self.unit_price_cents * self.quantity


def _coerce_line(raw) -> SaleLineInput:
    if isinstance(raw, SaleLineInput):
        line = raw
    elif isinstance(raw, Mapping):
        line = SaleLineInput(product_id=raw.get("product_id"), quantity=raw.get("quantity"))
    else:
        raise ValidationError("each item must have product_id and quantity")

    for field in ("product_id", "quantity"):
        value = getattr(line, field)
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValidationError(f"{field} must be an integer")
    if line.quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    return line


def compute_change(payment_amount_cents: int, total_amount_cents: int) -> int:
    return max(0, payment_amount_cents - total_amount_cents)


def _price_lines(lines: list[SaleLineInput]) -> list[PricedLine]:
    """
    Validate every line against locked product rows.

    Stock is checked against a running total per product, so an order listing
    the same product twice is validated on its cumulative demand.
    """
    product_ids = sorted({line.product_id for line in lines})
    products = {
        p.id: p
        for p in lock_for_update(
            db.session.query(Product).filter(Product.id.in_(product_ids)).order_by(Product.id)
        ).all()
    }

    missing = [pid for pid in product_ids if pid not in products]
    if missing:
        raise NotFoundError(
            f"Product with id {missing[0]} not found",
            {"product_ids": missing},
        )

    remaining = {pid: p.stock_quantity for pid, p in products.items()}
    priced = []
    for line in lines:
        product = products[line.product_id]
        if not product.is_active:
            raise ProductInactiveError(
                f"Product '{product.name}' is not active",
                {"product_id": product.id},
            )
        if remaining[product.id] < line.quantity:
            raise InsufficientStockError(
                f"Insufficient stock for product '{product.name}'",
                {
                    "product_id": product.id,
                    "requested_quantity": line.quantity,
                    "available": remaining[product.id],
                },
            )
        remaining[product.id] -= line.quantity
        priced.append(PricedLine(product=product, quantity=line.quantity, unit_price_cents=product.price_cents))
    return priced


def create_sale(
    items: Iterable,
    payment_method: str,
    payment_amount_cents: int,
    notes: str | None = None,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> Transaction:
    """
    Create a completed sale.

    Returns the persisted Transaction; its ``items`` relationship holds the
    line items in input order.

    Raises:
        EmptyOrderError, NotFoundError, ProductInactiveError,
        InsufficientStockError: business-rule failures, nothing written
        ValidationError: malformed input, rejected before touching storage
    """
    lines = [_coerce_line(raw) for raw in items]
    if not lines:
        raise EmptyOrderError("Transaction must contain at least one item")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")
    if not isinstance(payment_amount_cents, int) or isinstance(payment_amount_cents, bool) or payment_amount_cents <= 0:
        raise ValidationError("payment_amount_cents must be a positive integer")

    prefix = current_app.config.get("TRANSACTION_NUMBER_PREFIX", "TRX")

    def _op():
        begin_write()
        stamp = now or utcnow()

        priced = _price_lines(lines)
        total_amount_cents = sum(line.total_price_cents for line in priced)

        sale = Transaction(
            transaction_number=next_transaction_number(now=stamp, rng=rng, prefix=prefix),
            total_amount_cents=total_amount_cents,
            payment_method=payment_method,
            payment_amount_cents=payment_amount_cents,
            change_amount_cents=compute_change(payment_amount_cents, total_amount_cents),
            status="completed",
            notes=notes,
            created_at=stamp,
            updated_at=stamp,
        )
        db.session.add(sale)
        db.session.flush()

        for line in priced:
            sale.items.append(TransactionItem(
                product_id=line.product.id,
                product_name=line.product.name,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                total_price_cents=line.total_price_cents,
                created_at=stamp,
            ))
        db.session.flush()

        for line in priced:
            # Live-row re-check; the staged totals above already passed
            decrement_stock(line.product.id, line.quantity, now=stamp)
            append_movement(
                product_id=line.product.id,
                movement_type="out",
                quantity=-line.quantity,
                reference_type="transaction",
                reference_id=sale.id,
                notes=f"Sale {sale.transaction_number}",
                created_at=stamp,
            )

        db.session.commit()
        logger.info(
            "Sale %s completed: %d line(s), total=%s cents, change=%s cents",
            sale.transaction_number, len(priced), sale.total_amount_cents, sale.change_amount_cents,
        )
        return sale

    for attempt in range(NUMBER_ATTEMPTS):
        try:
            return run_with_retry(_op)
        except IntegrityError as exc:
            if not _is_number_collision(exc):
                raise
            logger.warning("Transaction number collision (attempt %d), regenerating", attempt + 1)
    raise DocumentNumberError(
        f"could not allocate a unique transaction number after {NUMBER_ATTEMPTS} attempts"
    )


def _is_number_collision(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return "transaction_number" in message or "uq_transactions_number" in message


def get_transaction_details(transaction_id: int) -> Transaction:
    sale = db.session.get(Transaction, transaction_id)
    if sale is None:
        raise NotFoundError(
            f"Transaction with id {transaction_id} not found",
            {"transaction_id": transaction_id},
        )
    return sale


def list_transactions(
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    status: str | None = None,
    payment_method: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Transaction]:
    """Transactions newest first; date bounds are inclusive."""
    if status is not None and status not in TRANSACTION_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(TRANSACTION_STATUSES)}")
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")

    q = db.session.query(Transaction)
    if start_date is not None:
        q = q.filter(Transaction.created_at >= start_date)
    if end_date is not None:
        q = q.filter(Transaction.created_at <= end_date)
    if status is not None:
        q = q.filter(Transaction.status == status)
    if payment_method is not None:
        q = q.filter(Transaction.payment_method == payment_method)

    return (
        q.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .offset(max(offset, 0))
        .limit(max(limit, 0))
        .all()
    )
