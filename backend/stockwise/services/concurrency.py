# Overview: Storage transaction boundary and row locking for ledger operations.

from __future__ import annotations

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import StorageUnavailable


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_in_transaction(func):
    """
    Execute one unit of work as a single storage transaction.

    - func runs inside the current session; it must not commit itself.
    - On success the session is committed exactly once.
    - On ANY error the session is rolled back, so nothing func wrote survives.
    - Connection/lock failures (OperationalError, InterfaceError) and optimistic
      version conflicts (StaleDataError) surface as StorageUnavailable.

    NO RETRY: a failed mutation is reported, not replayed. Mutations carry no
    idempotency key, so only the caller can decide whether resubmitting is safe.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except (OperationalError, InterfaceError, StaleDataError) as exc:
        db.session.rollback()
        raise StorageUnavailable(detail=str(exc.__class__.__name__)) from exc
    except Exception:
        db.session.rollback()
        raise
