# Overview: Storage-level serialization helpers shared by every ledger writer.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write on a ledger aggregate.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id_col on
    the aggregate turns a lost update into a StaleDataError instead.
    """
    return query.with_for_update()


def _default_attempts() -> int:
    try:
        return int(current_app.config.get("LEDGER_RETRY_ATTEMPTS", 2))
    except RuntimeError:
        return 2


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a DB unit of work, retrying on contention.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). func must be safe to re-run from the
    start: it re-reads everything it writes.
    """
    if attempts is None:
        attempts = _default_attempts()
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
