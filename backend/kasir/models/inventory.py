from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z, utcnow


MOVEMENT_TYPES = ("in", "out", "adjustment")
REFERENCE_TYPES = ("transaction", "adjustment", "restock")


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    quantity is signed: positive increases stock, negative decreases it
    (adjustments may be zero). For any product,
    opening stock + SUM(quantity) == Product.stock_quantity.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint(
            "movement_type IN ('in', 'out', 'adjustment')",
            name="ck_stock_movements_type",
        ),
        db.CheckConstraint(
            "reference_type IN ('transaction', 'adjustment', 'restock')",
            name="ck_stock_movements_reference_type",
        ),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(16), nullable=False)
    # Transaction id when reference_type == "transaction", otherwise NULL
    reference_id = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
