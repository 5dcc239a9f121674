"""Tests for keyed locks."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import LockError

from labsync.shared.config import override_settings
from labsync.shared.locks import (
    InProcessKeyedLock,
    LockAcquisitionError,
    RedisKeyedLock,
    create_keyed_lock,
)


class TestInProcessKeyedLock:
    """Test cases for the asyncio keyed lock."""

    async def test_same_key_is_serialized(self):
        keyed_lock = InProcessKeyedLock()
        events = []

        async def worker(name):
            async with keyed_lock.lock("user"):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    async def test_different_keys_do_not_wait(self):
        keyed_lock = InProcessKeyedLock()
        inside = asyncio.Event()

        async def holder():
            async with keyed_lock.lock("a"):
                await asyncio.wait_for(inside.wait(), timeout=1)

        async def other():
            async with keyed_lock.lock("b"):
                inside.set()

        await asyncio.gather(holder(), other())

        assert inside.is_set()

    async def test_registry_is_emptied_after_release(self):
        keyed_lock = InProcessKeyedLock()

        async with keyed_lock.lock("user"):
            assert len(keyed_lock) == 1

        assert len(keyed_lock) == 0

    async def test_released_on_exception(self):
        keyed_lock = InProcessKeyedLock()

        with pytest.raises(RuntimeError):
            async with keyed_lock.lock("user"):
                raise RuntimeError("boom")

        assert len(keyed_lock) == 0
        async with keyed_lock.lock("user"):
            pass


def make_redis_client(acquired=True):
    redis_lock = MagicMock()
    redis_lock.acquire = AsyncMock(return_value=acquired)
    redis_lock.release = AsyncMock()
    client = MagicMock()
    client.lock.return_value = redis_lock
    return client, redis_lock


class TestRedisKeyedLock:
    async def test_acquires_and_releases_prefixed_lock(self):
        client, redis_lock = make_redis_client()
        keyed_lock = RedisKeyedLock(client, timeout=5.0)

        async with keyed_lock.lock("user-1"):
            redis_lock.release.assert_not_awaited()

        client.lock.assert_called_once_with("labsync:lock:user-1", timeout=5.0, blocking_timeout=5.0)
        redis_lock.release.assert_awaited_once()

    async def test_timeout_raises_lock_acquisition_error(self):
        client, redis_lock = make_redis_client(acquired=False)
        keyed_lock = RedisKeyedLock(client, timeout=1.0, blocking_timeout=0.1)

        with pytest.raises(LockAcquisitionError):
            async with keyed_lock.lock("user-1"):
                pass

        redis_lock.release.assert_not_awaited()

    async def test_expired_lock_release_is_logged(self, caplog):
        client, redis_lock = make_redis_client()
        redis_lock.release.side_effect = LockError("expired")
        keyed_lock = RedisKeyedLock(client)

        async with keyed_lock.lock("user-1"):
            pass

        assert "expired before release" in caplog.text


class TestCreateKeyedLock:
    def test_memory_backend(self):
        settings = override_settings(lock_backend="memory")

        assert isinstance(create_keyed_lock(settings), InProcessKeyedLock)

    def test_redis_backend(self):
        settings = override_settings(lock_backend="redis", lock_timeout_seconds=3.0)

        with patch("labsync.shared.redis_client.get_redis_client", return_value=MagicMock()):
            keyed_lock = create_keyed_lock(settings)

        assert isinstance(keyed_lock, RedisKeyedLock)
