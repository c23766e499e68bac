from __future__ import annotations

from flask import jsonify


def error_response(message: str, code: str, status: int, details: dict | None = None):
    """JSON error body shared by every route: {error, code, details}."""
    return jsonify({"error": message, "code": code, "details": details or {}}), status


def internal_error():
    return error_response("Internal server error", "internal_error", 500)
