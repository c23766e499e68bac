# Overview: Flask API routes for catalog operations; parses input and returns JSON responses.

# backend/retail_pos/routes/products.py
"""
Product catalog routes.

Products are addressed by their DDMMYY##### code. The code and in_stock are
never client-writable: the code comes from the sequence service and in_stock
is derived from quantity.
"""
from flask import Blueprint, current_app, jsonify, request

from ..models import Product
from ..responses import error_response, internal_error
from ..services import products_service
from ..services.sequence_service import GenerationFailed
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "import_price", "retail_price",
        "category_id", "quantity", "images",
    },
    required_on_create={"name", "import_price", "retail_price", "category_id", "quantity", "images"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products with search, filters and pagination.

    Query params:
    - page: int (default 1)
    - limit: int (default 10, max 100)
    - search: str - matches name, description or code
    - category_id: int
    - min_price / max_price: int (retail price, inclusive)
    - sort: name | price | quantity | created_at (default name)
    - order: asc | desc (default asc)
    """
    result = products_service.list_products(
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 10, type=int),
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        min_price=request.args.get("min_price", type=int),
        max_price=request.args.get("max_price", type=int),
        sort_field=request.args.get("sort", "name"),
        sort_order=request.args.get("order", "asc"),
    )
    return jsonify(result), 200


@products_bp.get("/<code>")
def get_product_route(code: str):
    product = products_service.find_by_code(code)
    if not product:
        return error_response("Product not found", "not_found", 404)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("")
def create_product_route():
    """
    Create a product. The code is allocated server-side.

    Body: name, description?, import_price, retail_price, category_id,
    quantity (>= 1), images (1-4 {data, content_type} objects).
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch, creating=True)
    except ValidationError as e:
        return error_response(str(e), "invalid_request", 400, e.details)

    try:
        created = products_service.create_product(patch=patch)
    except ValidationError as e:
        return error_response(str(e), "invalid_request", 400, e.details)
    except GenerationFailed as e:
        current_app.logger.error("Product code allocation failed: %s", e)
        return error_response("Could not generate a product code", "generation_failed", 500, e.details)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return internal_error()

    current_app.logger.info("Product %s created", created.code)
    return jsonify({"product": created.to_dict()}), 201


@products_bp.put("/<code>")
def update_product_route(code: str):
    """Partial update by code. Quantity may be set to 0; in_stock follows."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch, creating=False)
    except ValidationError as e:
        return error_response(str(e), "invalid_request", 400, e.details)

    try:
        updated = products_service.update_product(code=code, patch=patch)
    except ValidationError as e:
        return error_response(str(e), "invalid_request", 400, e.details)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return internal_error()

    if not updated:
        return error_response("Product not found", "not_found", 404)

    return jsonify({"product": updated.to_dict()}), 200


@products_bp.delete("/<code>")
def delete_product_route(code: str):
    try:
        deleted = products_service.delete_product(code=code)
    except ConflictError as e:
        return error_response(str(e), "conflict", 409, {"code": code})
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return internal_error()

    if not deleted:
        return error_response("Product not found", "not_found", 404)

    return jsonify({"ok": True}), 200
