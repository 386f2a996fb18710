from .lock import LockRequest, LockStatus, LockOutcome, MAX_LOCK_ID  # noqa: F401
