"""Keyed locks serializing progress writes and rollup recomputes.

``KeyedLockManager.hold(key)`` always takes an in-process ``asyncio.Lock``
for the key. When a Redis client is configured it also takes a Redis lock
with the same name, so several API workers serialize on the key too. If
Redis errors out the manager logs a warning and continues with the local
lock only; rollups are idempotent, so the next recompute repairs anything
a race left behind.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from .exceptions import ProgressLockTimeoutError


logger = structlog.get_logger(__name__)


@dataclass
class _LocalLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class KeyedLockManager:
    """Per-key mutual exclusion; different keys never block each other."""

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        timeout: float = 10.0,
        blocking_timeout: float = 5.0,
    ):
        self._redis = redis_client
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self._locks: dict[str, _LocalLock] = {}

    @property
    def distributed(self) -> bool:
        return self._redis is not None

    def active_keys(self) -> list[str]:
        """Keys currently held or waited on in this process."""
        return list(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        Raises:
            ProgressLockTimeoutError: Redis lock not acquired in time
        """
        entry = self._locks.setdefault(key, _LocalLock())
        entry.holders += 1
        try:
            async with entry.lock, self._hold_distributed(key):
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._locks.pop(key, None)

    @asynccontextmanager
    async def _hold_distributed(self, key: str) -> AsyncIterator[None]:
        if self._redis is None:
            yield
            return

        lock = self._redis.lock(
            key,
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )

        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.warning("distributed_lock_unavailable", key=key, error=str(e))
            acquired = None

        if acquired is False:
            logger.warning(
                "distributed_lock_timeout",
                key=key,
                blocking_timeout=self.blocking_timeout,
            )
            raise ProgressLockTimeoutError

        try:
            yield
        finally:
            if acquired:
                try:
                    await lock.release()
                except RedisError as e:
                    # Lock expired under us; the TTL already freed it
                    logger.warning(
                        "distributed_lock_release_failed", key=key, error=str(e)
                    )
