# Overview: Row locking and conditional-write helpers for lifecycle changes.

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConcurrencyConflictError


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write sequences.

    Rows already in the session are refreshed from the locked read, so the
    caller checks the state the lock protects, not a cached copy.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update().populate_existing()


@contextmanager
def stale_write_guard(message: str):
    """
    Turn a version_id mismatch on flush/commit into ConcurrencyConflictError.

    The session is rolled back before raising, so it stays usable.
    """
    try:
        yield
    except StaleDataError as exc:
        db.session.rollback()
        logger.warning("%s (%s)", message, exc)
        raise ConcurrencyConflictError(message) from exc


def conditional_update(model, *, row_id: int, expected: dict, values: dict) -> int:
    """
    UPDATE model SET values WHERE id = row_id AND <column == value for expected>.

    This is the optimistic-concurrency guard: the write only lands if the row
    still holds the expected values at write time. Returns the affected row
    count (0 means the row changed or does not exist). Does not commit.

    Models mapped with a version_id column get the counter bumped so that
    stale ORM copies of the row fail their next flush.
    """
    stmt = update(model).where(model.id == row_id)
    for column_name, value in expected.items():
        stmt = stmt.where(getattr(model, column_name) == value)

    values = dict(values)
    if "version_id" in model.__table__.c:
        values["version_id"] = model.version_id + 1

    result = db.session.execute(
        stmt.values(**values).execution_options(synchronize_session=False)
    )
    return result.rowcount
