# Overview: Transaction and row-locking helpers shared by the ledger and payment services.

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Store-level failures that mean "another writer got there first"
CONFLICT_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id
    columns on mutable aggregates catch lost updates at flush time.
    """
    return query.with_for_update()


@contextmanager
def unit_of_work(scope, *, on_conflict: Callable[[Exception], Exception] | None = None) -> Iterator[None]:
    """
    Run one operation as a single database transaction.

    - Binds the tenant scope to the transaction before anything else runs
    - Commits when the block finishes, rolls back on any exception
    - Never retries: retry policy belongs to the caller

    on_conflict translates a store conflict (lock failure, stale version)
    into the domain error of the guard it raced against, so callers see one
    error class whose `retryable` flag tells them a re-read may succeed.
    """
    scope.activate()
    try:
        yield
        db.session.commit()
    except CONFLICT_ERRORS as exc:
        db.session.rollback()
        if on_conflict is None:
            raise
        raise on_conflict(exc) from exc
    except Exception:
        db.session.rollback()
        raise
