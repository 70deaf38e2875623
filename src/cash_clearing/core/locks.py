"""Per-key mutual exclusion for batch, approval item and alert mutations."""

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from cash_clearing.core.errors import InvalidTransitionError
from cash_clearing.core.logging import get_logger

logger = get_logger(__name__)


class KeyedLock:
    """A registry of locks, one per key.

    Callers for the same key are serialized; callers for different keys never
    contend with each other.
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        """Initialize the registry.

        Args:
            timeout_seconds: Maximum wait for a key; ``None`` waits forever.
        """
        self.timeout_seconds = timeout_seconds
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        Raises:
            InvalidTransitionError: If the lock could not be acquired in time.
        """
        lock = self._lock_for(key)
        timeout = -1 if self.timeout_seconds is None else self.timeout_seconds
        if not lock.acquire(timeout=timeout):
            logger.warning("lock_acquire_timeout", key=key, timeout_seconds=self.timeout_seconds)
            raise InvalidTransitionError(
                f"Another mutation of {key} is in progress",
                entity_id=key,
                attempted="mutate",
            )
        try:
            yield
        finally:
            lock.release()

    def is_locked(self, key: str) -> bool:
        """Return True if the lock for ``key`` is currently held."""
        with self._registry_lock:
            lock = self._locks.get(key)
        return lock is not None and lock.locked()
