"""
Redis-based distributed lock.

Serialises transitions on one trip across API processes: whoever holds
``lock:trip:{id}`` is the only writer of that trip until it releases.
The in-process ``TripStateMachine`` lock covers coroutines inside one
process; this covers everything else.

Implementation uses SET NX EX for acquire and a Lua script for
atomic check-and-delete on release.  Acquire polls for up to
``wait_seconds`` before giving up.
"""

from __future__ import annotations

import asyncio
import uuid

import redis.asyncio as aioredis

_RELEASE_LUA = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquired(RuntimeError):
    pass


class DistributedLock:
    def __init__(
        self,
        client: aioredis.Redis,
        key: str,
        ttl_seconds: int = 10,
        wait_seconds: float = 0.0,
        poll_interval: float = 0.05,
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.wait_seconds = wait_seconds
        self.poll_interval = poll_interval
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try to acquire, polling up to ``wait_seconds``. True on success."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.wait_seconds
        while True:
            if await self.redis.set(self.key, self.token, nx=True, ex=self.ttl):
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self.poll_interval)

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        await self.redis.eval(_RELEASE_LUA, 1, self.key, self.token)

    # context-manager support
    async def __aenter__(self):
        if not await self.acquire():
            raise LockNotAcquired(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()


def trip_lock(
    client: aioredis.Redis, trip_id: str, ttl_seconds: int = 10
) -> DistributedLock:
    return DistributedLock(
        client, f"trip:{trip_id}", ttl_seconds=ttl_seconds, wait_seconds=ttl_seconds
    )
