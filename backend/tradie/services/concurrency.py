# Overview: Compare-and-set updates, row locks and bounded retry for writes that race.

"""
Concurrency helpers

Every write that two requests can attempt at once (claiming a sign-in code,
accepting a quote, paying an invoice, bumping a numbering counter) is a single
UPDATE ... WHERE <expected state>. The row count tells the caller whether it
won; losers either fail or retry the whole unit of work via run_with_retry.
"""

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# "database is locked", deadlocks, lock timeouts
RETRYABLE_ERRORS = (OperationalError, StaleDataError)

# Writes that insert a uniquely-keyed row (numbered documents, first-time
# accounts) can also lose an insert race.
INSERT_RACE_ERRORS = RETRYABLE_ERRORS + (IntegrityError,)


def conditional_update(model, criteria, values: dict) -> int:
    """
    UPDATE model SET values WHERE criteria, returning the matched row count.

    Bypasses the identity map; callers refresh or re-query afterwards.
    """
    stmt = (
        update(model)
        .where(*criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount


def lock_for_update(query):
    """SELECT ... FOR UPDATE where the backend supports it (SQLite ignores it)."""
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=RETRYABLE_ERRORS):
    """
    Call func until it succeeds or attempts run out.

    The session is rolled back before each retry, so func must be a complete
    unit of work that starts from a clean transaction.
    """
    for attempt in range(attempts):
        try:
            return func()
        except retry_on:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
