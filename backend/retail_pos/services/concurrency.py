# Overview: Locking and retry helpers shared by the write paths (checkout, stock, code allocation).

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

RETRYABLE = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on backends with row locks.

    SQLite drops the clause; callers there rely on begin_write_transaction.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Take the SQLite write lock before the first read of a read-check-write
    sequence. Must run before the session has issued any DML.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func(), rolling back and retrying on lock timeouts and
    version conflicts with exponential backoff. The last failure propagates.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE as exc:
            db.session.rollback()
            if attempt == attempts:
                current_app.logger.error(
                    "Giving up after %d attempts: %s", attempts, exc.__class__.__name__
                )
                raise
            delay = backoff_base * (2 ** (attempt - 1))
            current_app.logger.warning(
                "Write conflict (%s) on attempt %d/%d, retrying in %.2fs",
                exc.__class__.__name__, attempt, attempts, delay,
            )
            time.sleep(delay)
