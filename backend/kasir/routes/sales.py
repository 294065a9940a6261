# Overview: Flask API routes for sales transactions; parses input and returns JSON responses.

# backend/kasir/routes/sales.py
"""Checkout and transaction history routes."""

from flask import Blueprint, request, current_app

from ..services import sales_service
from ..errors import PosError, http_status_for
from ..validation import ValidationError, validate_sale, coerce_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/transactions")


@sales_bp.post("")
def create_transaction_route():
    """
    Complete a sale in one call.

    Body: {"items": [{"product_id", "quantity"}], "payment_method",
           "payment_amount_cents", "notes"}
    """
    payload = request.get_json(silent=True) or {}

    try:
        data = validate_sale(payload)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        sale = sales_service.create_sale(
            data["items"],
            data["payment_method"],
            data["payment_amount_cents"],
            data["notes"],
        )
    except PosError as e:
        return e.to_dict(), http_status_for(e)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return {"error": "Internal server error"}, 500

    return sale.to_dict(include_items=True), 201


@sales_bp.get("")
def list_transactions_route():
    try:
        start_date = coerce_datetime("start_date", request.args.get("start_date"))
        end_date = coerce_datetime("end_date", request.args.get("end_date"))
        transactions = sales_service.list_transactions(
            start_date=start_date,
            end_date=end_date,
            status=request.args.get("status"),
            payment_method=request.args.get("payment_method"),
            limit=request.args.get("limit", default=20, type=int),
            offset=request.args.get("offset", default=0, type=int),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return {"items": [tx.to_dict() for tx in transactions], "count": len(transactions)}


@sales_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        sale = sales_service.get_transaction_details(transaction_id)
    except PosError as e:
        return e.to_dict(), http_status_for(e)
    return sale.to_dict(include_items=True)
