# Overview: Unit-of-work helpers: row locks and retry on lock / stale-row conflicts.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking and re-read the locked rows.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; Product.version_id then turns
    a lost update into StaleDataError, which run_with_retry absorbs.
    """
    return query.with_for_update().populate_existing()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute one unit of work, retrying on concurrency-related failures.

    func must do all of its reads and writes and commit. Any exception rolls
    the session back so no partial state survives; only OperationalError
    (deadlocks, locks) and StaleDataError (optimistic locking conflicts) are
    retried.
    """
    if attempts is None:
        attempts = current_app.config.get("RETRY_ATTEMPTS", 3)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning("Concurrency conflict, retrying (attempt %s/%s)", attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
