# Overview: Human-readable document numbers for sales transactions.

from __future__ import annotations

import random
import secrets
from datetime import datetime

from ..extensions import db
from ..models import Transaction
from kasir.time_utils import utcnow


class DocumentNumberError(Exception):
    """Raised when no unused document number could be allocated."""
    pass


class _SystemRandom:
    """Default random-bits source backed by the secrets module."""

    def getrandbits(self, k: int) -> int:
        return secrets.randbits(k)


def generate_transaction_number(
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
    prefix: str = "TRX",
) -> str:
    """
    Build "<prefix>-<YYYYMMDDHHMMSSffffff>-<4 hex>".

    Microsecond timestamp plus 16 random bits; collisions need two sales in
    the same microsecond drawing the same suffix.
    """
    now = now or utcnow()
    rng = rng or _SystemRandom()
    suffix = rng.getrandbits(16)
    return f"{prefix}-{now.strftime('%Y%m%d%H%M%S%f')}-{suffix:04X}"


def next_transaction_number(
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
    prefix: str = "TRX",
    attempts: int = 3,
) -> str:
    """
    Allocate a transaction number not already present in the table.

    The unique constraint on transactions.transaction_number stays the final
    guard; this only avoids a wasted insert on a visible collision.
    """
    for _ in range(attempts):
        candidate = generate_transaction_number(now=now, rng=rng, prefix=prefix)
        taken = db.session.query(
            db.session.query(Transaction.id).filter_by(transaction_number=candidate).exists()
        ).scalar()
        if not taken:
            return candidate
    raise DocumentNumberError(f"could not allocate a unique transaction number after {attempts} attempts")
