"""Utility modules for depositflow."""

from depositflow.utils.locks import DepositLock, LockTimeoutError, get_lock, keyed_lock, lock_count

__all__ = ["DepositLock", "LockTimeoutError", "get_lock", "keyed_lock", "lock_count"]
