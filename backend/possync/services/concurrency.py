# Overview: Row locking, transaction scoping and retry helpers shared by the stock and sale services.

from __future__ import annotations

import math
import time
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError


# PostgreSQL SQLSTATEs
PG_LOCK_NOT_AVAILABLE = "55P03"
PG_RETRY_ERRCODES = {"40001", "40P01"}  # serialization failure, deadlock

# MySQL / MariaDB error numbers
MYSQL_LOCK_WAIT_TIMEOUT = 1205
MYSQL_DEADLOCK = 1213

# session.info key holding the connection's innodb_lock_wait_timeout to restore
RESTORE_LOCK_WAIT_KEY = "possync.restore_lock_wait_timeout"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_locked_transaction
    takes the database write lock up front there instead.
    """
    return query.with_for_update()


def dialect_name(session: Session) -> str:
    return session.get_bind().dialect.name


def begin_locked_transaction(session: Session, lock_timeout_ms: int | None = None) -> None:
    """
    Open the transaction a sale runs in and bound its lock waits.

    Must be the first statement of the unit of work.
    """
    dialect = dialect_name(session)
    if dialect == "sqlite":
        # Busy timeout (set on connect) bounds the wait for this lock
        session.execute(text("BEGIN IMMEDIATE"))
        return
    if not lock_timeout_ms:
        return
    if dialect == "postgresql":
        session.execute(text(f"SET LOCAL lock_timeout = '{int(lock_timeout_ms)}ms'"))
    elif dialect in ("mysql", "mariadb"):
        # MySQL has no per-transaction lock timeout; transaction() puts the old value back
        previous = session.execute(text("SELECT @@SESSION.innodb_lock_wait_timeout")).scalar()
        session.info.setdefault(RESTORE_LOCK_WAIT_KEY, previous)
        seconds = max(1, math.ceil(int(lock_timeout_ms) / 1000))
        session.execute(text(f"SET SESSION innodb_lock_wait_timeout = {seconds}"))


@contextmanager
def transaction(session: Session):
    """
    Commit on success, roll back everything on any exception.

    Session-level settings changed by begin_locked_transaction are reset
    before the connection goes back to the pool.
    """
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        _restore_lock_wait_timeout(session)


def _restore_lock_wait_timeout(session: Session) -> None:
    previous = session.info.pop(RESTORE_LOCK_WAIT_KEY, None)
    if previous is None:
        return
    session.execute(text(f"SET SESSION innodb_lock_wait_timeout = {int(previous)}"))
    session.commit()


def _driver_code(exc: Exception):
    orig = getattr(exc, "orig", None) or getattr(exc, "__cause__", None)
    if orig is None:
        return None
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code:
        return code
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


def is_lock_timeout(exc: Exception) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    code = _driver_code(exc)
    if code in (PG_LOCK_NOT_AVAILABLE, MYSQL_LOCK_WAIT_TIMEOUT):
        return True
    msg = str(getattr(exc, "orig", exc)).lower()
    return "database is locked" in msg or "lock timeout" in msg


def is_deadlock(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if not isinstance(exc, DBAPIError):
        return False
    code = _driver_code(exc)
    if code in PG_RETRY_ERRCODES or code == MYSQL_DEADLOCK:
        return True
    msg = str(getattr(exc, "orig", exc)).lower()
    return "deadlock" in msg or "could not serialize access" in msg


def is_disconnect(exc: Exception) -> bool:
    """True when the store itself is unreachable (not a per-row conflict)."""
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def run_with_retry(
    func,
    *,
    session: Session,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_if=is_deadlock,
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries deadlocks and serialization failures (and StaleDataError from
    optimistic version checks). Lock-wait timeouts are not retried: the
    caller has already waited as long as it is allowed to.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, DBAPIError, StaleDataError) as exc:
            session.rollback()
            if attempt >= attempts - 1 or not retry_if(exc):
                raise
            time.sleep(backoff_base * (2 ** attempt))

