from __future__ import annotations

from flask import current_app, has_app_context


def group_thousands(value: int) -> str:
    """
    Vietnamese digit grouping for whole-dong amounts.

        1234567 -> "1.234.567"
        -5000   -> "-5.000"
    """
    return f"{int(value):,}".replace(",", ".")


def format_money(value: int, suffix: str | None = None) -> str:
    if suffix is None:
        suffix = current_app.config.get("CURRENCY_SUFFIX", "VND") if has_app_context() else "VND"
    return f"{group_thousands(value)} {suffix}".rstrip()
