"""
Redis-based distributed locks.

Two uses:

* ``DistributedLock`` -- one named lock; the settlement worker takes it
  non-blocking so only one instance runs a cycle at a time.
* ``AggregateLocks`` -- serialises writers per aggregate (``ride:{id}``,
  ``user:{id}``).  Every mutating operation holds the locks of all the
  aggregates it touches for its whole read-modify-write unit.  Keys are
  acquired in sorted order so two operations can never deadlock, and the
  wait is bounded: a timeout surfaces as ``Conflict``.

Implementation uses SET NX EX for acquire and a Lua script for
atomic check-and-delete on release.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis

from carpool.domain.errors import Conflict

logger = logging.getLogger(__name__)

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, key: str, ttl_seconds: int = 30
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try once. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def acquire_within(self, timeout: float, poll_interval: float = 0.05) -> bool:
        """Retry until acquired or *timeout* seconds have passed."""
        deadline = time.monotonic() + timeout
        while True:
            if await self.acquire():
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(poll_interval)

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)


def ride_key(ride_id: int) -> str:
    return f"ride:{ride_id}"


def user_key(user_id: int) -> str:
    return f"user:{user_id}"


class AggregateLocks:
    def __init__(
        self,
        client: aioredis.Redis,
        ttl_seconds: int = 10,
        wait_seconds: float = 5.0,
        poll_interval: float = 0.05,
    ):
        self.redis = client
        self.ttl = ttl_seconds
        self.wait = wait_seconds
        self.poll_interval = poll_interval

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """Hold every lock in *keys* (deduplicated, sorted) for the block."""
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                lock = DistributedLock(self.redis, key, ttl_seconds=self.ttl)
                if not await lock.acquire_within(self.wait, self.poll_interval):
                    logger.warning("Timed out waiting for lock %s", key)
                    raise Conflict(f"{key.split(':')[0].capitalize()} is busy, try again")
                stack.push_async_callback(lock.release)
                logger.debug("Acquired %s", lock.key)
            yield
