"""Lock request and outcome values passed between the coordinator and executor."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from pglock.lib.errors import ConfigurationError

# Lock IDs live in PostgreSQL's bigint advisory key space; pglock only hands
# out the unsigned 32-bit range.
MAX_LOCK_ID = 2**32 - 1


@dataclass(frozen=True)
class LockRequest:
    """A request for one advisory lock.

    ``wait_seconds`` of 0 means "try once and return immediately".
    """
    lock_id: int
    wait_seconds: int = 0

    def __post_init__(self):
        if not isinstance(self.lock_id, int) or isinstance(self.lock_id, bool):
            raise ConfigurationError(f"lock ID must be an integer, got {self.lock_id!r}")
        if not 0 <= self.lock_id <= MAX_LOCK_ID:
            raise ConfigurationError(f"lock ID must be between 0 and {MAX_LOCK_ID}, got {self.lock_id}")
        if not isinstance(self.wait_seconds, int) or isinstance(self.wait_seconds, bool):
            raise ConfigurationError(f"wait seconds must be an integer, got {self.wait_seconds!r}")
        if self.wait_seconds < 0:
            raise ConfigurationError(f"wait seconds cannot be negative, got {self.wait_seconds}")

    @property
    def waits(self) -> bool:
        return self.wait_seconds > 0


class LockStatus(enum.Enum):
    ACQUIRED = "acquired"
    NOT_ACQUIRED = "not_acquired"
    FAILED = "failed"


@dataclass(frozen=True)
class LockOutcome:
    """Result of one acquisition attempt.

    ``cause`` is only set when ``status`` is ``FAILED``.
    """
    status: LockStatus
    cause: Optional[BaseException] = None

    @classmethod
    def acquired(cls) -> LockOutcome:
        return cls(LockStatus.ACQUIRED)

    @classmethod
    def not_acquired(cls) -> LockOutcome:
        return cls(LockStatus.NOT_ACQUIRED)

    @classmethod
    def failed(cls, cause: BaseException) -> LockOutcome:
        return cls(LockStatus.FAILED, cause)

    @property
    def is_acquired(self) -> bool:
        return self.status is LockStatus.ACQUIRED
