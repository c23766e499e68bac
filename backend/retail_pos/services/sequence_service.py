# Overview: Service-layer operations for product code sequences; encapsulates business logic and database work.

"""
Product Code Sequence Service

Product codes have the form DDMMYY##### : the store-local calendar date
followed by a 5-digit zero padded counter that restarts every day.

ALLOCATION:
The counter lives in ProductCodeSequence (one row per prefix) and is handed
out by an atomic UPDATE ... SET next_number = next_number + 1. The first
allocation of a day seeds the row from the greatest existing code with that
prefix, so codes created before the row existed (imports, manual fixes) are
never reused. The unique constraint on Product.code stays the final arbiter:
products_service retries with a fresh code after resync_sequence() when an
insert still collides.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Product, ProductCodeSequence
from retail_pos.time_utils import store_today
from .concurrency import run_with_retry


PREFIX_FORMAT = "%d%m%y"
COUNTER_WIDTH = 5
MAX_COUNTER = 10 ** COUNTER_WIDTH - 1


class GenerationFailed(Exception):
    """Raised when a product code cannot be allocated. Callers must abort product creation."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def code_prefix(day: date) -> str:
    return day.strftime(PREFIX_FORMAT)


def format_code(prefix: str, counter: int) -> str:
    return f"{prefix}{counter:0{COUNTER_WIDTH}d}"


def _max_existing_counter(prefix: str) -> int:
    """Counter of the lexicographically greatest existing code for prefix, 0 if none."""
    pattern = prefix + "_" * COUNTER_WIDTH
    last_code = (
        db.session.query(Product.code)
        .filter(Product.code.like(pattern))
        .order_by(Product.code.desc())
        .limit(1)
        .scalar()
    )
    if not last_code:
        return 0
    suffix = last_code[len(prefix):]
    return int(suffix) if suffix.isdigit() else 0


def _increment(prefix: str):
    return (
        update(ProductCodeSequence)
        .where(ProductCodeSequence.prefix == prefix)
        .values(next_number=ProductCodeSequence.next_number + 1)
    )


def _current_next_number(prefix: str) -> int:
    return (
        db.session.query(ProductCodeSequence.next_number)
        .filter_by(prefix=prefix)
        .scalar()
    )


def next_product_code(today: date | None = None) -> str:
    """
    Atomically allocate the next product code for today's prefix.

    The allocation joins the caller's transaction: if the caller rolls back,
    the counter increment is rolled back with it.

    Raises GenerationFailed if the date cannot be computed, the lookup fails,
    or the day's counter space is exhausted.
    """
    try:
        day = today or store_today()
        prefix = code_prefix(day)
    except (ValueError, KeyError) as exc:
        raise GenerationFailed("Could not determine the current date for product codes") from exc

    def _op() -> int:
        result = db.session.execute(_increment(prefix))
        if result.rowcount:
            db.session.flush()
            return _current_next_number(prefix) - 1

        seeded = _max_existing_counter(prefix) + 1
        seq = ProductCodeSequence(prefix=prefix, next_number=seeded + 1)
        db.session.add(seq)
        try:
            db.session.flush()
            return seeded
        except IntegrityError:
            # Another caller created today's row first; use the increment path.
            db.session.rollback()
            result = db.session.execute(_increment(prefix))
            if not result.rowcount:
                raise
            db.session.flush()
            return _current_next_number(prefix) - 1

    try:
        counter = run_with_retry(_op)
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise GenerationFailed(
            "Could not allocate a product code",
            details={"prefix": prefix},
        ) from exc

    if counter > MAX_COUNTER:
        db.session.rollback()
        raise GenerationFailed(
            "Product code space for today is exhausted",
            details={"prefix": prefix, "max_counter": MAX_COUNTER},
        )

    return format_code(prefix, counter)


def resync_sequence(prefix: str) -> int:
    """
    Move the stored counter past the greatest existing code for prefix.

    Used after an insert collided on Product.code, i.e. when a code was
    written without going through the sequence. Returns the new next_number.
    """
    floor = _max_existing_counter(prefix) + 1
    db.session.execute(
        update(ProductCodeSequence)
        .where(
            ProductCodeSequence.prefix == prefix,
            ProductCodeSequence.next_number < floor,
        )
        .values(next_number=floor)
    )
    db.session.flush()
    return _current_next_number(prefix) or floor
