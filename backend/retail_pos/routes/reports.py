# Overview: Flask API routes for sales reports; parses query parameters and returns JSON.

from flask import Blueprint, current_app, jsonify, request

from ..responses import error_response, internal_error
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("")
def sales_report_route():
    """
    Sales report for a date window.

    Query params:
    - dateRange: all | today | yesterday | last_7_days | this_month | custom (default this_month)
    - startDate / endDate: YYYY-MM-DD, required for custom, both inclusive
    - page: int (default 1)
    - limit: int (default 10, max 100)
    """
    try:
        report = reporting_service.sales_report(
            date_range=request.args.get("dateRange", "this_month"),
            start_date=request.args.get("startDate"),
            end_date=request.args.get("endDate"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 10, type=int),
        )
    except reporting_service.ReportError as e:
        return error_response(str(e), "invalid_request", 400, e.details)
    except Exception:
        current_app.logger.exception("Failed to build sales report")
        return internal_error()

    return jsonify(report), 200
