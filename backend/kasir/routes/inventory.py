# backend/kasir/routes/inventory.py
"""
Inventory management routes.

- POST /adjust:  signed correction, recorded as an "adjustment" movement
- POST /restock: goods received, recorded as an "in"/"restock" movement
- GET /movements: the stock ledger, newest first
- GET /reconcile: ledger vs. stored stock check
- GET /summary/<id>: stock plus most recent movement

Time semantics:
- Responses serialize datetimes as ISO-8601 'Z' strings.
"""
from flask import Blueprint, request

from ..services import inventory_service
from ..services.ledger_service import reconcile
from ..errors import PosError, http_status_for
from ..validation import ValidationError, validate_stock_adjustment, validate_restock


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/adjust")
def adjust_stock_route():
    payload = request.get_json(silent=True) or {}

    try:
        data = validate_stock_adjustment(payload)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        product = inventory_service.adjust_stock(
            data["product_id"],
            data["adjustment_quantity"],
            data["notes"],
        )
    except PosError as e:
        return e.to_dict(), http_status_for(e)

    return product.to_dict(), 200


@inventory_bp.post("/restock")
def restock_route():
    payload = request.get_json(silent=True) or {}

    try:
        data = validate_restock(payload)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        product = inventory_service.restock_product(data["product_id"], data["quantity"], data["notes"])
    except PosError as e:
        return e.to_dict(), http_status_for(e)

    return product.to_dict(), 200


@inventory_bp.get("/movements")
def list_movements_route():
    product_id = request.args.get("product_id", type=int)
    limit = request.args.get("limit", type=int)
    if limit is not None:
        limit = max(1, min(limit, 1000))

    movements = inventory_service.get_stock_movements(product_id=product_id, limit=limit)
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}


@inventory_bp.get("/reconcile")
def reconcile_route():
    product_id = request.args.get("product_id", type=int)
    if product_id is None:
        return {"items": inventory_service.reconcile_all()}

    opening_stock = request.args.get("opening_stock", default=0, type=int)
    try:
        return reconcile(product_id, opening_stock)
    except PosError as e:
        return e.to_dict(), http_status_for(e)


@inventory_bp.get("/summary/<int:product_id>")
def inventory_summary_route(product_id: int):
    """Current stock, active flag and the latest ledger row for one product."""
    try:
        return inventory_service.get_inventory_summary(product_id)
    except PosError as e:
        return e.to_dict(), http_status_for(e)
