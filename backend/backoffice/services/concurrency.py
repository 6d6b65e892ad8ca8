# Overview: Row locking and retry helpers shared by the order, return and inventory services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id columns still turn lost updates into StaleDataError there.
    """
    return query.with_for_update()


def run_with_retry(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float = 0.1,
    retry_on: tuple[type[BaseException], ...] = (),
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and any extra exception types in
    retry_on. The session is rolled back before every retry, so func must
    re-read whatever it needs.
    """
    if attempts is None:
        attempts = current_app.config.get("CONCURRENCY_RETRY_ATTEMPTS", 3)
    retryable = (OperationalError, StaleDataError) + tuple(retry_on)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retryable as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after %s (attempt %d of %d)", type(exc).__name__, attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
