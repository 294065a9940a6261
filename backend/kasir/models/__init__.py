from .catalog import Product
from .sales import Transaction, TransactionItem, PAYMENT_METHODS, TRANSACTION_STATUSES
from .inventory import StockMovement, MOVEMENT_TYPES, REFERENCE_TYPES

__all__ = [
    'Product',
    'Transaction', 'TransactionItem', 'PAYMENT_METHODS', 'TRANSACTION_STATUSES',
    'StockMovement', 'MOVEMENT_TYPES', 'REFERENCE_TYPES',
]
