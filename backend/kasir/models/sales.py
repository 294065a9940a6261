from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z, utcnow


PAYMENT_METHODS = ("cash", "transfer", "e_wallet")
TRANSACTION_STATUSES = ("pending", "completed", "cancelled")


class Transaction(db.Model):
    """
    Sale document.

    total_amount_cents is fixed at creation as the sum of its line totals and
    is never recomputed; lines are immutable once written.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("transaction_number", name="uq_transactions_number"),
        db.CheckConstraint(
            "payment_method IN ('cash', 'transfer', 'e_wallet')",
            name="ck_transactions_payment_method",
        ),
        db.CheckConstraint(
            "status IN ('pending', 'completed', 'cancelled')",
            name="ck_transactions_status",
        ),
        # Reporting scans completed sales by date
        db.Index("ix_transactions_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "TRX-20240131093015123456-4F2A")
    transaction_number = db.Column(db.String(64), nullable=False)

    # All amounts in cents
    total_amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False, index=True)
    payment_amount_cents = db.Column(db.Integer, nullable=False)
    change_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="TransactionItem.id",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "payment_amount_cents": self.payment_amount_cents,
            "change_amount_cents": self.change_amount_cents,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class TransactionItem(db.Model):
    """Line item; product name and unit price are copied at sale time."""
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.Integer,
        db.ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "created_at": to_utc_z(self.created_at),
        }
