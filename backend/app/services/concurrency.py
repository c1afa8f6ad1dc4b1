# Overview: Row locking, retry and transaction helpers shared by the ledger, payment and session services.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class PersistenceError(Exception):
    """Database write failed; nothing from the attempted unit of work was kept."""

    def __init__(self, message: str, *, details: str | None = None):
        super().__init__(message)
        self.details = details


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    version_id columns still catch lost updates there (StaleDataError).
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). func must re-read everything it
    depends on, since each attempt starts from a rolled-back session.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_atomic(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    run_with_retry, then normalise any remaining database failure.

    Business exceptions raised by func pass through untouched (after a
    rollback, so a half-built unit of work never leaks into the next one).
    """
    try:
        return run_with_retry(func, attempts=attempts, backoff_base=backoff_base)
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError("Database write failed", details=str(exc)) from exc
    except Exception:
        db.session.rollback()
        raise

