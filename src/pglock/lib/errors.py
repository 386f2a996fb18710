"""Error types raised by pglock.

Timeouts while waiting for a lock are not errors and have no type here: a
cancelled wait is reported as a ``NOT_ACQUIRED`` outcome.
"""
from __future__ import annotations

from typing import Optional


class PgLockError(Exception):
    """Base class for all pglock errors."""
    exit_code = 1


class ConfigurationError(PgLockError):
    """Raised for bad or missing configuration, before any database access."""
    exit_code = 2


class DatabaseConnectionError(PgLockError):
    """Raised when the database session cannot be established."""
    pass


class LockQueryError(PgLockError):
    """The lock query failed for a reason other than cancellation."""

    def __init__(self, lock_id: int, cause: BaseException):
        super().__init__(f"lock query for lock ID {lock_id} failed: {cause}")
        self.lock_id = lock_id
        self.cause = cause


class CommandError(PgLockError):
    """The guarded command could not be started or exited abnormally.

    ``exit_code`` is the status pglock itself should exit with.
    """

    def __init__(self, message: str, exit_code: int, returncode: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code
        self.returncode = returncode
