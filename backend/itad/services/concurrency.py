# Overview: Transaction, row-locking and retry helpers shared by all mutating services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LockTimeout
from ..extensions import db

# PostgreSQL SQLSTATEs that mean "someone else holds the row"
_PG_LOCK_CODES = {"55P03", "40P01", "40001"}


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the version_id columns on Booking/Job do the same job: the
    second writer's UPDATE matches no row and raises StaleDataError.
    """
    return query.with_for_update()


def is_lock_conflict(exc: Exception) -> bool:
    """True for errors caused by a concurrent writer rather than by bad data."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, OperationalError):
        if getattr(exc.orig, "pgcode", None) in _PG_LOCK_CODES:
            return True
        message = str(exc.orig).lower()
        return "database is locked" in message or "lock timeout" in message
    return False


def run_atomic(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run `func` and commit it as one transaction.

    - Any exception rolls the whole transaction back: callers never observe
      a half-applied operation.
    - Lock/version conflicts are retried with exponential backoff; `func` is
      re-run from scratch against fresh state. Once attempts are exhausted
      the conflict surfaces as LockTimeout.
    - Domain errors are never retried.
    """
    if attempts is None:
        attempts = current_app.config.get("LOCK_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LOCK_RETRY_BACKOFF_SECONDS", 0.05)

    for attempt in range(attempts):
        try:
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if not is_lock_conflict(exc):
                raise
            if attempt >= attempts - 1:
                raise LockTimeout(
                    f"Could not obtain a consistent lock after {attempts} attempts; retry the request"
                ) from exc
            current_app.logger.warning(
                "Lock conflict on attempt %s/%s, retrying: %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
