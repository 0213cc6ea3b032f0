# Overview: Service-layer helpers for row locking, retries and transaction boundaries.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyTimeoutError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Rows that must stay consistent on SQLite also carry a version_id column.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock waits) and StaleDataError
    (optimistic locking conflicts). The whole operation is re-run from the
    start after a rollback; once attempts are exhausted the failure surfaces
    as ConcurrencyTimeoutError.
    """
    if attempts is None:
        attempts = current_app.config.get("DB_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("DB_RETRY_BACKOFF_BASE", 0.1)
    # Always run the operation at least once
    attempts = max(int(attempts), 1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning("Giving up after %d attempts: %s", attempts, exc)
                raise ConcurrencyTimeoutError(
                    "Database is busy; the operation was rolled back, please retry"
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))


def run_in_transaction(func, **retry_kwargs):
    """
    Run func as exactly one database transaction.

    Commits on success. Any error rolls back everything func wrote, so
    persisted state is exactly as before the call.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError):
            raise
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, **retry_kwargs)
