# backend/retail_pos/config.py
from __future__ import annotations
import os


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Relative sqlite paths resolve against the working directory
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///retail_pos.sqlite3")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Generated invoices: <INVOICE_DIR>/<order_id>.pdf
    INVOICE_DIR = os.environ.get("INVOICE_DIR", os.path.join(os.getcwd(), "invoices"))
    # Optional TTF font (e.g. Roboto) for full Vietnamese glyph coverage
    INVOICE_FONT_PATH = os.environ.get("INVOICE_FONT_PATH")

    STORE_NAME = os.environ.get("STORE_NAME", "Retail POS")
    STORE_TIMEZONE = os.environ.get("STORE_TIMEZONE", "Asia/Ho_Chi_Minh")
    CURRENCY_SUFFIX = os.environ.get("CURRENCY_SUFFIX", "VND")

    # "atomic": order insert and stock decrements share one transaction.
    # "post_commit": order is committed first, decrement failures become warnings.
    CHECKOUT_INVENTORY_MODE = os.environ.get("CHECKOUT_INVENTORY_MODE", "atomic")

    # Browser origins of the till frontends (dev servers by default)
    CORS_ORIGINS = _csv(os.environ.get(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
    ))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
