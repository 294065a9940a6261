# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/kasir/routes/products.py
"""
Product catalog routes.

- Listing, barcode lookup and low-stock queries are read-only.
- Create/update enforce barcode uniqueness (409 on conflict).
- Delete is a soft delete, refused (409) while a pending transaction
  references the product.
"""
from flask import Blueprint, request, current_app

from ..services import catalog_service
from ..models import Product
from ..errors import PosError, http_status_for
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "description", "barcode", "category", "price_cents", "stock_quantity", "is_active"}),
    required_on_create=frozenset({"name", "price_cents"}),
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _bool_arg(name: str, default: bool) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes")


@products_bp.get("")
def list_products():
    """
    List products.

    Query params:
    - search: substring of name, description or barcode (case-insensitive)
    - category: exact category
    - is_active: true (default) / false
    - order_by: name | price | stock_quantity | created_at (default)
    - order_direction: asc | desc (default)
    - limit (default 100), offset (default 0)
    """
    try:
        products = catalog_service.list_products(
            search=request.args.get("search"),
            category=request.args.get("category"),
            is_active=_bool_arg("is_active", True),
            order_by=request.args.get("order_by", "created_at"),
            order_direction=request.args.get("order_direction", "desc"),
            limit=request.args.get("limit", default=100, type=int),
            offset=request.args.get("offset", default=0, type=int),
        )
    except ValueError as e:
        return {"error": str(e)}, 400

    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
    except PosError as e:
        return e.to_dict(), http_status_for(e)
    return product.to_dict()


@products_bp.get("/barcode/<path:barcode>")
def search_by_barcode_route(barcode: str):
    """Scanner lookup; 404 when no ACTIVE product carries the barcode."""
    product = catalog_service.find_active_by_barcode(barcode)
    if product is None:
        return {"error": "Product not found", "kind": "NotFound", "details": {"barcode": barcode}}, 404
    return product.to_dict()


@products_bp.get("/low-stock")
def low_stock_route():
    threshold = request.args.get(
        "threshold",
        default=current_app.config["LOW_STOCK_THRESHOLD"],
        type=int,
    )
    products = catalog_service.get_low_stock_products(threshold)
    return {"items": [p.to_dict() for p in products], "count": len(products), "threshold": threshold}


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = catalog_service.create_product(patch=patch)
    except PosError as e:
        return e.to_dict(), http_status_for(e)

    return created.to_dict(), 201


@products_bp.route("/<int:product_id>", methods=["PUT", "PATCH"])
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        updated = catalog_service.update_product(product_id=product_id, patch=patch)
    except PosError as e:
        return e.to_dict(), http_status_for(e)

    return updated.to_dict()


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(product_id=product_id)
    except PosError as e:
        return e.to_dict(), http_status_for(e)
    return {"deleted": True, "product_id": product_id}
