"""PostgreSQL advisory locks for coordinating one command across hosts.

The lock is a session-level advisory lock: once acquired it stays held until
the database session that took it ends. There is deliberately no release call
here; callers keep the connection open for as long as they need the lock and
close it afterwards (see ``pglock.lib.database.lock_session``).

Two strategies are available:

- try: ``pg_try_advisory_lock`` answers immediately with true or false.
- wait: ``pg_advisory_lock`` blocks until the lock is granted. A timer sends
  the server a cancel request when the wait expires, and a ``query_canceled``
  error from the server is reported as "not acquired" rather than a failure.

If the server grants the lock just before the cancel arrives, the server may
still report the query as cancelled. The session then holds a lock the caller
believes it does not have, until the connection closes. The server's answer
is taken as final.
"""
from __future__ import annotations

import sys
import threading
from typing import Optional

from psycopg2 import errorcodes
from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from pglock.lib.errors import LockQueryError
from pglock.models.lock import LockOutcome, LockRequest

TRY_LOCK_SQL = text("SELECT pg_try_advisory_lock(:lock_id)")
WAIT_LOCK_SQL = text("SELECT pg_advisory_lock(:lock_id)")


def is_query_canceled(exc: BaseException) -> bool:
    """True when ``exc`` is the server reporting a cancelled statement (57014).

    Accepts either a SQLAlchemy wrapper or the raw driver exception.
    """
    orig = getattr(exc, "orig", None) or exc
    return getattr(orig, "pgcode", None) == errorcodes.QUERY_CANCELED


class AdvisoryLock:
    """Acquire one advisory lock on an open connection.

    Usage:
        with lock_session(engine) as conn:
            outcome = AdvisoryLock(conn, LockRequest(42, wait_seconds=5)).acquire()
            if outcome.is_acquired:
                ...

    ``acquire`` never raises for database errors; they come back as a
    ``FAILED`` outcome carrying a ``LockQueryError``.
    """

    def __init__(self, connection: Connection, request: LockRequest):
        self.connection = connection
        self.request = request
        self.outcome: Optional[LockOutcome] = None

    def acquire(self) -> LockOutcome:
        if self.outcome is not None:
            raise RuntimeError(f"lock {self.request.lock_id} was already requested on this connection")
        if self.request.waits:
            self.outcome = self._wait()
        else:
            self.outcome = self._try()
        return self.outcome

    def _try(self) -> LockOutcome:
        lock_id = self.request.lock_id
        try:
            got = self.connection.execute(TRY_LOCK_SQL, {"lock_id": lock_id}).scalar()
        except SQLAlchemyError as e:
            return LockOutcome.failed(LockQueryError(lock_id, e))
        return LockOutcome.acquired() if got else LockOutcome.not_acquired()

    def _wait(self) -> LockOutcome:
        lock_id = self.request.lock_id
        try:
            dbapi_conn = self.connection.connection.dbapi_connection
        except SQLAlchemyError as e:
            return LockOutcome.failed(LockQueryError(lock_id, e))

        timer = threading.Timer(self.request.wait_seconds, _send_cancel, args=(dbapi_conn, lock_id))
        timer.daemon = True
        timer.start()
        try:
            # pg_advisory_lock returns void; getting a row back means we hold it
            self.connection.execute(WAIT_LOCK_SQL, {"lock_id": lock_id}).fetchall()
        except SQLAlchemyError as e:
            if is_query_canceled(e):
                return LockOutcome.not_acquired()
            return LockOutcome.failed(LockQueryError(lock_id, e))
        finally:
            timer.cancel()
        return LockOutcome.acquired()


def _send_cancel(dbapi_conn, lock_id: int) -> None:
    # Runs on the timer thread. psycopg2's cancel() opens its own short
    # connection to the server, so it is safe while the query is in flight.
    try:
        dbapi_conn.cancel()
    except Exception as e:
        print(f"ERROR: could not cancel wait for lock ID {lock_id}: {e}", file=sys.stderr, flush=True)


def try_acquire(connection: Connection, lock_id: int) -> LockOutcome:
    return AdvisoryLock(connection, LockRequest(lock_id)).acquire()


def wait_acquire(connection: Connection, lock_id: int, wait_seconds: int) -> LockOutcome:
    if wait_seconds <= 0:
        raise ValueError("wait_acquire needs a positive wait_seconds; use try_acquire instead")
    return AdvisoryLock(connection, LockRequest(lock_id, wait_seconds)).acquire()


def acquire_lock(connection: Connection, request: LockRequest) -> LockOutcome:
    """Acquire ``request`` on ``connection`` with the strategy it asks for."""
    if request.waits:
        print(f"Obtaining lock with {request.wait_seconds} seconds timeout..", file=sys.stderr, flush=True)
    else:
        print("Trying to obtain lock.", file=sys.stderr, flush=True)
    return AdvisoryLock(connection, request).acquire()
