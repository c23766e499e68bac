# backend/retail_pos/routes/system.py
"""
Liveness and build information for the till and for deploy scripts.

/health reports on what a sale depends on: the database answering queries
and the invoice directory accepting files. The database failing is fatal
(503); an unwritable invoice directory only degrades the service because
orders still commit without a PDF.
"""

import os
import sys
import time

from flask import Blueprint, current_app
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Customer, Order, Product
from ..services.invoice_service import invoice_dir
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"

# Worst status wins
_SEVERITY = {"healthy": 0, "degraded": 1, "unhealthy": 2}


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def database_check() -> dict:
    started = time.perf_counter()
    try:
        counts = {
            name: db.session.scalar(select(func.count()).select_from(model))
            for name, model in (("products", Product), ("customers", Customer), ("orders", Order))
        }
    except SQLAlchemyError:
        current_app.logger.exception("Health check: database query failed")
        db.session.rollback()
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(started), "error": "Database error"}
    return {"status": "healthy", "latency_ms": _elapsed_ms(started), "details": counts}


def invoice_storage_check() -> dict:
    # Missing is fine: the directory is created on the first render
    path = invoice_dir()
    exists = path.exists()
    if exists and not os.access(path, os.W_OK):
        current_app.logger.warning("Health check: invoice directory %s is not writable", path)
        return {"status": "degraded", "warning": "Invoice directory is not writable", "details": {"exists": True}}
    return {"status": "healthy", "details": {"exists": exists}}


@system_bp.get("/health")
def health():
    started = time.perf_counter()
    checks = {"database": database_check(), "invoice_storage": invoice_storage_check()}
    overall = max((c["status"] for c in checks.values()), key=_SEVERITY.__getitem__)

    body = {
        "status": overall,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": _elapsed_ms(started),
        "checks": checks,
    }
    return body, 503 if overall == "unhealthy" else 200


@system_bp.get("/version")
def version():
    """Build and runtime facts only; never configuration secrets or paths."""
    return {
        "api_version": API_VERSION,
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "inventory_mode": current_app.config.get("CHECKOUT_INVENTORY_MODE"),
        "server_time": utcnow().isoformat() + "Z",
    }
