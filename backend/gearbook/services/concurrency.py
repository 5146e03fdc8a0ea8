# Overview: Transaction boundary and row-locking helpers shared by the lifecycle services.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..validation import ConflictError, GearbookError


RETRY_MESSAGE = "The data changed while your request was processed, please retry"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the version_id columns are what turns a lost race into a
    StaleDataError.
    """
    return query.with_for_update()


@contextmanager
def atomic(session):
    """
    One all-or-nothing unit of work.

    Commits when the block completes; rolls back on any error so no partial
    state is ever visible. Storage-level race failures (optimistic version
    mismatch, exclusion/unique constraint, lock contention) surface as
    ConflictError; the caller decides whether to retry.
    """
    try:
        yield session
        session.commit()
    except GearbookError:
        session.rollback()
        raise
    except (StaleDataError, IntegrityError, OperationalError) as exc:
        session.rollback()
        raise ConflictError(RETRY_MESSAGE, details={"reason": type(exc).__name__}) from exc
    except Exception:
        session.rollback()
        raise
