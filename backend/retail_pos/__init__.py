# backend/retail_pos/__init__.py
from flask import Flask, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate
from .responses import error_response


def create_app(overrides: dict | None = None) -> Flask:
    """Application factory. `overrides` is applied on top of Config before the engine binds."""
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    if app.config["CHECKOUT_INVENTORY_MODE"] not in ("atomic", "post_commit"):
        raise ValueError(f"Unknown CHECKOUT_INVENTORY_MODE: {app.config['CHECKOUT_INVENTORY_MODE']!r}")

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    migrate.init_app(app, db)

    # Models must be imported for metadata (create_all, Alembic autogenerate)
    from . import models  # noqa: F401

    from .routes.checkout import checkout_bp, orders_bp
    from .routes.customers import customers_bp
    from .routes.invoices import invoices_bp
    from .routes.products import products_bp
    from .routes.reports import reports_bp
    from .routes.system import system_bp

    for blueprint in (system_bp, products_bp, customers_bp, checkout_bp, orders_bp, invoices_bp, reports_bp):
        app.register_blueprint(blueprint)

    _register_error_handlers(app)

    cors_origins = set(app.config["CORS_ORIGINS"])

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in cors_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    from .cli import register_commands
    register_commands(app)

    return app


def _register_error_handlers(app: Flask) -> None:
    # Unmatched URLs and wrong methods answer in the same JSON shape as the routes
    @app.errorhandler(HTTPException)
    def http_error(e):
        code = (e.name or "error").lower().replace(" ", "_")
        return error_response(e.description or e.name, code, e.code or 500)

    @app.errorhandler(Exception)
    def unhandled_error(e):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return error_response("Internal server error", "internal_error", 500)
