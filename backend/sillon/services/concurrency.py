# Overview: Transaction and concurrency helpers shared by every command.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrentConflict
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id column on Product still catches a stale write there.

    populate_existing() makes the locked read overwrite any copy of the row
    already loaded in this session.
    """
    return query.with_for_update().populate_existing()


def run_atomic(func, *, commit: bool = True):
    """
    Execute `func` as one unit of work.

    commit=True: commit on success, roll back everything on any failure.
    commit=False: the caller owns the transaction; only flush so ids and
    stale-version checks happen now.

    Lock/deadlock failures and optimistic-lock conflicts surface as
    ConcurrentConflict. Nothing is retried here.
    """
    if not commit:
        result = func()
        db.session.flush()
        return result

    try:
        result = func()
        db.session.commit()
        return result
    except (OperationalError, StaleDataError) as exc:
        db.session.rollback()
        raise ConcurrentConflict(f"concurrent update detected: {exc.__class__.__name__}") from exc
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Re-run a whole command when it loses a race.

    Used by callers of the core (the HTTP adapter, CLI), never inside it:
    each attempt re-reads state and re-validates preconditions, so a command
    whose precondition no longer holds fails with its own error instead of
    being retried.
    """
    for attempt in range(attempts):
        try:
            return func()
        except ConcurrentConflict:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
