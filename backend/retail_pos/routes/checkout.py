# Overview: Flask API routes for checkout and orders; parses input and returns JSON responses.

# backend/retail_pos/routes/checkout.py
"""
Checkout API routes.

The employee_id in the checkout body is taken as already authenticated by
the identity service in front of this API; it is recorded, not verified.
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..models import Order
from ..responses import error_response, internal_error
from ..services import checkout_service, products_service
from ..services.checkout_service import CheckoutError
from ..services.products_service import InsufficientStock, ProductNotFound
from ..validation import ValidationError, coerce_int


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")
orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@checkout_bp.post("")
def checkout_route():
    """
    Complete a sale.

    Body:
    {
      "customerPhone": "0901234567",
      "customerName": "...",        # required for a new phone
      "customerAddress": "...",     # required for a new phone
      "products": [{"product_id": 1, "name": "...", "quantity": 2, "unitPrice": 120000}],
      "amountPaid": 300000,
      "employee_id": 1
    }

    Returns 201 with the order; post-commit problems are listed in
    "warnings" and do not change the status code.
    """
    data = request.get_json(silent=True) or {}

    try:
        result = checkout_service.checkout(
            cart=data.get("products"),
            customer_phone=data.get("customerPhone"),
            customer_name=data.get("customerName"),
            customer_address=data.get("customerAddress"),
            amount_paid=data.get("amountPaid"),
            employee_id=data.get("employee_id"),
        )
    except CheckoutError as e:
        return error_response(e.message, e.code, 400, e.details)
    except InsufficientStock as e:
        return error_response(str(e), "insufficient_stock", 400, e.details)
    except Exception:
        current_app.logger.exception("Failed to complete checkout")
        return internal_error()

    body = result.to_dict()
    body["message"] = "Payment successful"
    return jsonify(body), 201


@checkout_bp.post("/cart/items")
def add_cart_item_route():
    """
    Resolve a scanned code or typed name to a one-unit cart line.

    Body: {"query": "<code or name>"}
    """
    data = request.get_json(silent=True) or {}

    try:
        item = products_service.lookup_cart_item(data.get("query"))
    except ValidationError as e:
        return error_response(str(e), "invalid_request", 400, e.details)

    if item is None:
        return error_response("Product not found", "not_found", 404)
    if item["available"] < 1:
        return error_response(
            f"Product {item['name']} is out of stock.",
            "insufficient_stock",
            400,
            {"product_id": item["product_id"], "available": item["available"]},
        )

    return jsonify({"item": item}), 200


@checkout_bp.put("/cart/items")
def update_cart_item_route():
    """
    Recompute a cart line after a quantity change.

    Body: {"product_id": 1, "quantity": 3}
    """
    data = request.get_json(silent=True) or {}

    try:
        product_id = coerce_int("product_id", data.get("product_id"))
        quantity = coerce_int("quantity", data.get("quantity"))
        line = products_service.quote_line(product_id, quantity)
    except ValidationError as e:
        return error_response(str(e), "invalid_request", 400, e.details)
    except ProductNotFound as e:
        return error_response(str(e), "not_found", 404, e.details)

    return jsonify(line), 200


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    order = db.session.get(Order, order_id)
    if not order:
        return error_response("Order not found", "not_found", 404)

    body = order.to_dict()
    customer = order.customer
    body["customer"] = customer.to_dict() if customer else None
    return jsonify({"order": body}), 200
