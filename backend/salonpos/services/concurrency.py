# Overview: Row locking and retry helpers wrapped around settlement and stock writes.

from __future__ import annotations

import logging
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import scoped_session
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def begin_immediate(session=None):
    """
    On SQLite take the write lock up front so a whole settlement is
    serialized against other writers. Other dialects rely on row locks.
    """
    session = session if session is not None else db.session
    if isinstance(session, scoped_session):
        session = session()
    if session.get_bind().dialect.name == "sqlite" and not session.in_transaction():
        session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Anything else propagates untouched.
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
            logger.warning("Retrying after concurrency failure (attempt %d): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
