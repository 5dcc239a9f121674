"""Keyed locks for serializing per-user updates.

Aggregate updates are read-modify-write. Two completions for the same user
must not interleave, while completions for different users must not wait on
each other. A keyed lock gives each user id its own critical section.

Two backends are provided:

- ``InProcessKeyedLock``: asyncio locks, enough when a single worker process
  handles all requests.
- ``RedisKeyedLock``: Redis-backed locks, for several worker processes.

Both are async context managers obtained through ``lock(key)``.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import LockError

from labsync.shared.config import Settings

logger = logging.getLogger(__name__)


class LockAcquisitionError(Exception):
    """Raised when a keyed lock cannot be acquired in time."""


class KeyedLock(ABC):
    """Interface for a family of locks addressed by key."""

    @abstractmethod
    def lock(self, key: str):
        """Return an async context manager holding the lock for ``key``."""


class InProcessKeyedLock(KeyedLock):
    """asyncio-based keyed lock.

    Lock objects exist only while some coroutine holds or waits for them,
    so the registry does not grow with the number of users ever seen.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class RedisKeyedLock(KeyedLock):
    """Redis-backed keyed lock shared by every process using the same Redis."""

    def __init__(
        self,
        client: Redis,
        timeout: float = 10.0,
        blocking_timeout: Optional[float] = None,
        prefix: str = "labsync:lock:",
    ):
        """Initialize the lock family.

        Args:
            client: Redis client
            timeout: Seconds after which a held lock expires on its own
            blocking_timeout: Seconds to wait for the lock, defaults to ``timeout``
            prefix: Key prefix for lock names
        """
        self._client = client
        self._timeout = timeout
        self._blocking_timeout = blocking_timeout if blocking_timeout is not None else timeout
        self._prefix = prefix

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        redis_lock = self._client.lock(
            f"{self._prefix}{key}",
            timeout=self._timeout,
            blocking_timeout=self._blocking_timeout,
        )
        acquired = await redis_lock.acquire()
        if not acquired:
            raise LockAcquisitionError(f"Timed out waiting for lock on {key}")
        try:
            yield
        finally:
            try:
                await redis_lock.release()
            except LockError as e:
                # Lock expired while held; the next holder already owns it
                logger.warning(f"Lock on {key} expired before release: {e}")


def create_keyed_lock(settings: Settings) -> KeyedLock:
    """Build the keyed lock configured by ``settings.lock_backend``."""
    if settings.lock_backend == "redis":
        from labsync.shared.redis_client import get_redis_client
        return RedisKeyedLock(get_redis_client(), timeout=settings.lock_timeout_seconds)
    return InProcessKeyedLock()
