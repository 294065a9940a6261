# Overview: Closed set of business-rule failures raised by the service layer.

"""
Every business-rule failure raised by a service is a PosError carrying one
ErrorKind. The HTTP layer maps kinds to status codes; callers and tests match
on ``exc.kind`` rather than on message text.

Storage faults (connection loss, deadlocks) are NOT PosErrors; they propagate
as SQLAlchemy exceptions.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "NotFound"
    PRODUCT_INACTIVE = "ProductInactive"
    INSUFFICIENT_STOCK = "InsufficientStock"
    NEGATIVE_STOCK_RESULT = "NegativeStockResult"
    DUPLICATE_BARCODE = "DuplicateBarcode"
    EMPTY_ORDER = "EmptyOrder"
    REFERENCED_BY_PENDING_TRANSACTION = "ReferencedByPendingTransaction"
    INVALID_PERIOD = "InvalidPeriod"


class PosError(Exception):
    """Base class for business-rule failures."""
    kind: ErrorKind

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "kind": self.kind.value, "details": self.details}


class NotFoundError(PosError):
    kind = ErrorKind.NOT_FOUND


class ProductInactiveError(PosError):
    kind = ErrorKind.PRODUCT_INACTIVE


class InsufficientStockError(PosError):
    kind = ErrorKind.INSUFFICIENT_STOCK


class NegativeStockError(PosError):
    kind = ErrorKind.NEGATIVE_STOCK_RESULT


class DuplicateBarcodeError(PosError):
    kind = ErrorKind.DUPLICATE_BARCODE


class EmptyOrderError(PosError):
    kind = ErrorKind.EMPTY_ORDER


class PendingReferenceError(PosError):
    kind = ErrorKind.REFERENCED_BY_PENDING_TRANSACTION


class InvalidPeriodError(PosError):
    kind = ErrorKind.INVALID_PERIOD


# 404 / 409 / 400 split used by every blueprint
HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DUPLICATE_BARCODE: 409,
    ErrorKind.REFERENCED_BY_PENDING_TRANSACTION: 409,
}


def http_status_for(exc: PosError) -> int:
    return HTTP_STATUS_BY_KIND.get(exc.kind, 400)
