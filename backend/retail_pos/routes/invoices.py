# Overview: Flask API routes for invoice download and regeneration.

# backend/retail_pos/routes/invoices.py
"""
Invoice routes.

Download never renders: a missing document is a 404 and the caller can
request regeneration explicitly.
"""

from flask import Blueprint, current_app, jsonify, send_file

from ..responses import error_response, internal_error
from ..services import invoice_service
from ..services.invoice_service import InvoiceNotFound, OrderNotFound, RenderError, StorageError


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("/<int:order_id>")
def download_invoice_route(order_id: int):
    try:
        path = invoice_service.get_invoice_path(order_id)
    except InvoiceNotFound as e:
        return error_response("Invoice not found", "not_found", 404, e.details)

    return send_file(
        path,
        mimetype="application/pdf",
        as_attachment=True,
        download_name=f"invoice-{order_id}.pdf",
    )


@invoices_bp.post("/<int:order_id>/regenerate")
def regenerate_invoice_route(order_id: int):
    """Render the invoice again from the stored order, replacing any previous file."""
    try:
        path = invoice_service.generate_invoice(order_id)
    except OrderNotFound as e:
        return error_response("Order not found", "not_found", 404, e.details)
    except RenderError as e:
        current_app.logger.error("Invoice render failed for order %s: %s", order_id, e)
        return error_response(str(e), "render_error", 500, e.details)
    except StorageError as e:
        current_app.logger.error("Invoice storage failed for order %s: %s", order_id, e)
        return error_response(str(e), "storage_error", 500, e.details)
    except Exception:
        current_app.logger.exception("Failed to regenerate invoice")
        return internal_error()

    return jsonify({"order_id": order_id, "path": path.name}), 200
