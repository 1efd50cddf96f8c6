# Overview: Retry and locking helpers shared by the write paths.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

# Storage-level failures worth a second attempt. ConflictError is NOT here:
# a lost stock race is reported to the client, which owns the retry.
TRANSIENT_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on backends that support it.

    SQLite ignores the clause; the flag claims in order_service are
    conditional UPDATEs and stay correct without it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func(), rolling back and retrying on transient storage errors.

    func must be safe to re-run from a clean session: it re-reads whatever
    it needs. Backoff doubles after each failed attempt. The last transient
    error is re-raised once attempts are exhausted.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except TRANSIENT_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                logger.error("Giving up after %d attempts: %s", attempts, exc)
                raise
            delay = backoff_base * (2 ** (attempt - 1))
            logger.warning("Transient storage error (attempt %d/%d), retrying in %.2fs: %s",
                           attempt, attempts, delay, exc)
            time.sleep(delay)
