# Overview: Row locking and retry helpers for stock-affecting writes.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """SELECT ... FOR UPDATE on backends that support it (SQLite ignores it)."""
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one unit of work, retrying lock and version conflicts.

    OperationalError (busy / deadlock) and StaleDataError (version_id
    mismatch) roll back and retry with exponential backoff. Any other
    error rolls back and propagates, so a half-applied checkout or import
    never reaches the next commit. func must start from a clean session.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
