# Overview: Flask API routes for customer lookup; parses input and returns JSON responses.

# backend/retail_pos/routes/customers.py
"""Customer lookup routes used by the checkout screen."""

from flask import Blueprint, jsonify, request

from ..extensions import db
from ..models import Customer
from ..responses import error_response
from ..services import customer_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
def search_customer_route():
    """
    Find a customer by phone number.

    Query params:
    - phone: str (required)

    An unknown phone is a 404 so the cashier knows to collect name and
    address before checking out.
    """
    phone = customer_service.normalize_phone(request.args.get("phone"))
    if not phone:
        return error_response("phone query parameter is required", "invalid_request", 400)

    customer = customer_service.find_by_phone(phone)
    if not customer:
        return error_response("Customer not found", "not_found", 404, {"phone": phone})

    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.get("/<int:customer_id>/orders")
def purchase_history_route(customer_id: int):
    customer = db.session.get(Customer, customer_id)
    if not customer:
        return error_response("Customer not found", "not_found", 404)

    return jsonify({
        "customer": customer.to_dict(),
        "orders": customer_service.purchase_history(customer_id),
    }), 200
