from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Maximum unit price: 10,000,000,000 VND
MAX_PRICE = 10_000_000_000

# Signed 64-bit range of BigInteger columns
DB_INT_MAX = 2**63 - 1

MIN_IMAGES = 1
MAX_IMAGES = 4


class ValidationError(ValueError):
    """400-level input problem. `field` names the offending key when there is one."""
    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    @property
    def details(self) -> dict:
        return {"field": self.field} if self.field else {}


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., deleting a sold product)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which payload keys a route accepts for a model:
    - writable_fields: what clients may set; anything else is rejected
    - required_on_create: must be present and non-blank on create
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "writable_fields", frozenset(self.writable_fields))
        object.__setattr__(self, "required_on_create", frozenset(self.required_on_create or ()))


def coerce_int(key: str, value: Any) -> int:
    """
    Strict integer coercion: rejects booleans, fractional numbers and
    scientific notation so money and quantities never round silently.
    Values outside the database integer range are rejected too.
    """
    number = _parse_int(key, value)
    if not -DB_INT_MAX <= number <= DB_INT_MAX:
        raise ValidationError(f"{key} is out of range", key)
    return number


def _parse_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer", key)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        # JSON clients often send 120000.0 for whole amounts
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{key} must be an integer, not a decimal", key)
    if isinstance(value, str):
        text = value.strip()
        if "e" in text.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)", key)
        if "." in text:
            raise ValidationError(f"{key} must be an integer (no decimals)", key)
        try:
            return int(text)
        except ValueError:
            raise ValidationError(f"{key} must be an integer", key) from None
    raise ValidationError(f"{key} must be an integer", key)


def _coerce_column(col, value: Any):
    coltype = col.type
    if isinstance(coltype, Boolean):
        if not isinstance(value, bool):
            raise ValidationError(f"{col.key} must be true or false", col.key)
        return value
    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)
    if isinstance(coltype, (String, Text)):
        text = str(value).strip()
        if not text and not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank", col.key)
        if isinstance(coltype, String) and coltype.length and len(text) > coltype.length:
            raise ValidationError(f"{col.key} exceeds max length {coltype.length}", col.key)
        return text
    if isinstance(coltype, JSON):
        return value
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Check a JSON body against the model's columns and the route's policy and
    return a patch holding only writable, type-coerced fields.

    partial=False: create semantics (required_on_create enforced)
    partial=True: update semantics (only the keys sent are checked)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    columns = {c.key: c for c in model.__mapper__.columns}

    for key in payload:
        if key not in policy.writable_fields or key not in columns:
            raise ValidationError(f"Field not allowed: {key}", key)

    if not partial:
        missing = sorted(k for k in policy.required_on_create if payload.get(k) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing[0])

    patch: dict = {}
    for key, raw in payload.items():
        col = columns[key]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null", key)
            patch[key] = None
        else:
            patch[key] = _coerce_column(col, raw)
    return patch


def enforce_rules_product(patch: dict, *, creating: bool) -> None:
    """Catalog rules the column types cannot express."""
    for key in ("import_price", "retail_price"):
        price = patch.get(key)
        if price is None:
            continue
        if price <= 0:
            raise ValidationError(f"{key} must be > 0", key)
        if price > MAX_PRICE:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE:,}", key)

    if patch.get("quantity") is not None:
        # New products start with stock; edits may zero it out
        minimum = 1 if creating else 0
        if patch["quantity"] < minimum:
            raise ValidationError(f"quantity must be >= {minimum}", "quantity")

    if "images" in patch or creating:
        images = patch.get("images")
        if not isinstance(images, list) or not (MIN_IMAGES <= len(images) <= MAX_IMAGES):
            raise ValidationError(f"A product needs between {MIN_IMAGES} and {MAX_IMAGES} images", "images")
        for image in images:
            if not isinstance(image, dict) or not image.get("data") or not image.get("content_type"):
                raise ValidationError("Each image needs 'data' and 'content_type'", "images")
