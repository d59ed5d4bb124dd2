"""In-process locks serializing writers to the same deposit or account.

The database is the source of truth (row locks, the open-deposit index and
the deposit version column); these locks only keep concurrent requests in
one process from racing each other into avoidable conflicts.

Keys are unbounded (one per deposit), so a lock lives in the registry only
while some holder or waiter has it checked out.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

logger = logging.getLogger(__name__)

# Global lock registry: key -> asyncio.Lock
_locks: dict[str, asyncio.Lock] = {}
# key -> number of holders and waiters using the lock
_users: dict[str, int] = {}
_registry_lock = asyncio.Lock()


def deposit_key(deposit_id: int) -> str:
    return f"deposit:{deposit_id}"


def account_key(account_id: int, purpose: str) -> str:
    return f"account:{account_id}:{purpose}"


async def get_lock(key: str) -> asyncio.Lock:
    """Get or create the lock for a key (inspection only, not reference counted)."""
    async with _registry_lock:
        if key not in _locks:
            _locks[key] = asyncio.Lock()
        return _locks[key]


def _checkout(key: str) -> asyncio.Lock:
    lock = _locks.get(key)
    if lock is None:
        lock = _locks[key] = asyncio.Lock()
    _users[key] = _users.get(key, 0) + 1
    return lock


def _checkin(key: str) -> None:
    remaining = _users.get(key, 0) - 1
    if remaining > 0:
        _users[key] = remaining
    else:
        _users.pop(key, None)
        _locks.pop(key, None)


def lock_count() -> int:
    """Number of keys currently in the registry."""
    return len(_locks)


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


class DepositLock:
    """Context manager for exclusive access to one deposit.

    Example:
        async with DepositLock(deposit_id, operation="confirmation"):
            async with get_db() as session:
                ...
    """

    def __init__(
        self,
        deposit_id: int,
        timeout: Optional[float] = 30.0,
        operation: str = "deposit_update",
    ):
        self.key = deposit_key(deposit_id)
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "DepositLock":
        self._lock = _checkout(self.key)

        try:
            if self.timeout:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
            self._acquired = True
            logger.debug(f"Lock acquired for {self.key}: {self.operation}")
            return self

        except asyncio.TimeoutError:
            _checkin(self.key)
            logger.warning(f"Lock timeout for {self.key} after {self.timeout}s: {self.operation}")
            raise LockTimeoutError(f"Could not acquire lock for {self.key} within {self.timeout}s")
        except BaseException:
            _checkin(self.key)
            raise

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            _checkin(self.key)
            logger.debug(f"Lock released for {self.key}: {self.operation}")
        return False


@asynccontextmanager
async def keyed_lock(key: str, timeout: Optional[float] = 30.0, operation: str = "lock"):
    """Functional lock for arbitrary keys, e.g. an (account, purpose) submission.

    Example:
        async with keyed_lock(account_key(account_id, "activation"), operation="submit"):
            ...
    """
    lock = _checkout(key)

    try:
        if timeout:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        else:
            await lock.acquire()
    except asyncio.TimeoutError:
        _checkin(key)
        logger.warning(f"Lock timeout for {key}: {operation}")
        raise LockTimeoutError(f"Could not acquire lock for {key} within {timeout}s")
    except BaseException:
        _checkin(key)
        raise

    logger.debug(f"Lock acquired for {key}: {operation}")
    try:
        yield
    finally:
        lock.release()
        _checkin(key)
        logger.debug(f"Lock released for {key}: {operation}")


def clear_locks() -> None:
    """Clear all locks (useful for testing)."""
    _locks.clear()
    _users.clear()
