# Overview: Row locking, savepoint-scoped retries and commit handling shared by the services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConcurrencyError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _configured_attempts() -> int:
    return int(current_app.config.get("RETRY_ATTEMPTS", 3))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation inside a SAVEPOINT, retrying on concurrency failures.

    Every attempt runs in its own savepoint (session.begin_nested), so a
    failed attempt rolls back only its own writes. Whatever the caller did
    earlier in the same transaction stays pending and is never replayed.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Once attempts are exhausted the
    failure surfaces as ConcurrencyError so callers can tell the client
    to retry. A unique-constraint IntegrityError is not retried; it
    surfaces as ConcurrencyError straight away. Any other exception
    rolls back the savepoint and propagates unchanged.
    """
    if attempts is None:
        attempts = _configured_attempts()
    last_exc = None
    for attempt in range(attempts):
        try:
            with db.session.begin_nested():
                return func()
        except IntegrityError as exc:
            raise ConcurrencyError(f"Conflicting concurrent write: {exc.orig}") from exc
        except (OperationalError, StaleDataError) as exc:
            last_exc = exc
            if attempt >= attempts - 1:
                break
            current_app.logger.info("Retrying after concurrency conflict (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
    raise ConcurrencyError(f"Operation failed after {attempts} attempts: {last_exc}") from last_exc


def commit_or_raise():
    """
    Commit the current session.

    A failed commit is never retried: the rollback that follows it has
    already discarded the pending work. The session is rolled back and the
    failure surfaces as ConcurrencyError, so the caller repeats the whole
    unit of work.
    """
    try:
        db.session.commit()
    except (IntegrityError, OperationalError, StaleDataError) as exc:
        db.session.rollback()
        current_app.logger.warning("Commit failed, transaction rolled back: %s", exc)
        raise ConcurrencyError(f"Commit failed: {exc}") from exc
