# Overview: Transaction runner shared by every service that writes stock, totals or payments.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConflictRetryExhausted


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    covers it there.
    """
    return query.with_for_update()


def begin_write_transaction() -> bool:
    """
    Take the database write lock before the read phase.

    On SQLite this serializes writers so the read snapshot cannot go stale
    before commit. Other databases rely on lock_for_update + version_id.

    Returns True when BEGIN IMMEDIATE was issued. If the session already
    holds an open transaction (a read earlier in the same request, or
    flushed but uncommitted writes) that transaction is reused and nothing
    is issued: SQLite then only upgrades to the write lock at the first
    write, and a concurrent writer surfaces as StaleDataError from the
    version_id counters (or a lock OperationalError), which run_with_retry
    rolls back and retries. Retries always start without a transaction, so
    the second attempt takes the lock up front.
    """
    if db.engine.dialect.name != "sqlite":
        return False
    if db.session().in_transaction():
        current_app.logger.debug("Write transaction already open; BEGIN IMMEDIATE skipped")
        return False
    db.session.execute(text("BEGIN IMMEDIATE"))
    return True


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a read-validate-write unit with retry on concurrency failures.

    Retries on OperationalError (locks, deadlocks) and StaleDataError
    (optimistic version conflicts), rolling back before every new attempt
    so func always starts from a fresh snapshot. Any other exception rolls
    back and propagates unchanged.

    func must be re-entrant: no state carried between attempts and no side
    effects outside the session.
    """
    if attempts is None:
        attempts = int(current_app.config.get("TX_RETRY_ATTEMPTS", 3))
    if backoff_base is None:
        backoff_base = float(current_app.config.get("TX_RETRY_BACKOFF_SECONDS", 0.1))

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            current_app.logger.warning(
                "Transaction conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            if attempt < attempts - 1:
                time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

    raise ConflictRetryExhausted(
        "Transaction could not complete because of concurrent changes. Retry the operation.",
        details={"attempts": attempts, "cause": str(last_exc) if last_exc else None},
    ) from last_exc
