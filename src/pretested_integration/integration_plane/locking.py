"""In-process mutual exclusion keyed by (repository, integration branch)."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator

LockKey = tuple[str, str]

_LOGGER = structlog.get_logger(__name__)


class BranchLocks:
    """Re-entrant locks serializing finalization against one integration branch.

    Only builds sharing this object are serialized; there is no cross-process
    coordination.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[LockKey, threading.RLock] = {}

    def _lock_for(self, key: LockKey) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @property
    def keys(self) -> tuple[LockKey, ...]:
        with self._guard:
            return tuple(sorted(self._locks))

    @contextmanager
    def hold(self, key: LockKey, timeout: float | None = None) -> Iterator[None]:
        if timeout is not None and timeout < 0:
            raise ValueError("timeout must be >= 0")
        lock = self._lock_for(key)
        acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            raise TimeoutError(f"timed out waiting for lock on {key[0]} {key[1]}")
        _LOGGER.debug("branch_lock_acquired", repository=key[0], branch=key[1])
        try:
            yield
        finally:
            lock.release()
            _LOGGER.debug("branch_lock_released", repository=key[0], branch=key[1])


__all__ = ["BranchLocks", "LockKey"]
