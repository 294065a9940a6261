"""
Request validation shared by the blueprints.

Column metadata drives generic checks (type, nullability, String length);
the enforce_*/validate_* helpers add the business rules that metadata cannot
express. Everything raises ValidationError, which routes turn into a 400.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from kasir.time_utils import parse_iso_datetime
from .models import PAYMENT_METHODS


# 9,999,999.99 in cents
MAX_PRICE_CENTS = 999_999_999
MAX_LINE_QUANTITY = 100_000

_INT_RE = re.compile(r"[+-]?\d+")


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    writable_fields is the allowlist of client-settable columns;
    required_on_create must be present on POST.
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)


def coerce_int(key: str, value: Any) -> int:
    """Ints and plain digit strings only; bools, floats, "1e3" and "12.5" are rejected."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_RE.fullmatch(value.strip()):
        return int(value.strip())
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_datetime(key: str, value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            pass
    raise ValidationError(f"{key} must be an ISO-8601 datetime")


def _coerce_column(col, value: Any):
    coltype = col.type
    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)
    if isinstance(coltype, Boolean):
        if not isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a boolean")
        return value
    if isinstance(coltype, DateTime):
        return coerce_datetime(col.key, value)
    if isinstance(coltype, (String, Text)):
        text = str(value).strip()
        if not text and not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank")
        if isinstance(coltype, String) and coltype.length and len(text) > coltype.length:
            raise ValidationError(f"{col.key} exceeds max length {coltype.length}")
        return text
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Clean a JSON body into a patch dict of writable columns.

    partial=False is create semantics (required fields enforced); partial=True
    validates only the keys that were sent.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in columns:
            raise ValidationError(f"Field not allowed: {key}")
        col = columns[key]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        else:
            patch[key] = _coerce_column(col, raw)
    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "price_cents" in patch:
        price = patch["price_cents"]
        if price is None or price <= 0:
            raise ValidationError("price_cents must be > 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")

    if "stock_quantity" in patch and patch["stock_quantity"] is not None:
        if patch["stock_quantity"] < 0:
            raise ValidationError("stock_quantity must be >= 0")


def validate_stock_adjustment(payload: dict) -> dict:
    """ADJUST accepts any signed integer (zero records a count confirmation)."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(payload) - {"product_id", "adjustment_quantity", "notes"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    for field in ("product_id", "adjustment_quantity"):
        if field not in payload or payload[field] is None:
            raise ValidationError(f"{field} is required")
    return {
        "product_id": coerce_int("product_id", payload["product_id"]),
        "adjustment_quantity": coerce_int("adjustment_quantity", payload["adjustment_quantity"]),
        "notes": _optional_text(payload.get("notes")),
    }


def validate_restock(payload: dict) -> dict:
    """RESTOCK requires quantity > 0."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    for field in ("product_id", "quantity"):
        if field not in payload or payload[field] is None:
            raise ValidationError(f"{field} is required")
    quantity = coerce_int("quantity", payload["quantity"])
    if quantity <= 0:
        raise ValidationError("quantity must be > 0 for RESTOCK")
    return {
        "product_id": coerce_int("product_id", payload["product_id"]),
        "quantity": quantity,
        "notes": _optional_text(payload.get("notes")),
    }


def validate_sale(payload: dict) -> dict:
    """
    Shape check for checkout requests. An empty items list passes here so the
    service can report it as EmptyOrder.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    items = payload.get("items")
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    lines = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        if "product_id" not in raw or "quantity" not in raw:
            raise ValidationError(f"items[{idx}] requires product_id and quantity")
        quantity = coerce_int(f"items[{idx}].quantity", raw["quantity"])
        if quantity <= 0:
            raise ValidationError(f"items[{idx}].quantity must be > 0")
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(f"items[{idx}].quantity cannot exceed {MAX_LINE_QUANTITY}")
        lines.append({
            "product_id": coerce_int(f"items[{idx}].product_id", raw["product_id"]),
            "quantity": quantity,
        })

    method = payload.get("payment_method")
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")

    if payload.get("payment_amount_cents") is None:
        raise ValidationError("payment_amount_cents is required")
    amount = coerce_int("payment_amount_cents", payload["payment_amount_cents"])
    if amount <= 0:
        raise ValidationError("payment_amount_cents must be > 0")

    return {
        "items": lines,
        "payment_method": method,
        "payment_amount_cents": amount,
        "notes": _optional_text(payload.get("notes")),
    }


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None
