"""Redis-backed fixed-window counter store.

Counters live in Redis so every service instance shares the same budget.
Increment, expiry and TTL read run in one Lua script, which Redis executes
atomically, so concurrent requests never lose counts.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.adapters.rate_limit.base import AbstractWindowStore, WindowCount
from app.core.errors import StoreAppError

logger = logging.getLogger(__name__)


# KEYS[1] = counter key
# ARGV[1] = window_ms
# Returns: {count, pttl_ms}
FIXED_WINDOW_LUA = r"""
local count = redis.call('INCR', KEYS[1])
local ttl = redis.call('PTTL', KEYS[1])
if count == 1 or ttl < 0 then
  redis.call('PEXPIRE', KEYS[1], ARGV[1])
  ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""


class RedisWindowStore(AbstractWindowStore):
    """Counter store using Redis keys with a TTL equal to the window."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        prefix: str = "rate_limit:",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._clock = clock

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisWindowStore":
        return cls(redis.Redis.from_url(url), **kwargs)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def increment(self, key: str, window_ms: int) -> WindowCount:
        """Count one request for key.

        Raises:
            ValueError: If key is empty or window_ms is invalid.
            StoreAppError: If Redis cannot be reached.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        try:
            count, ttl_ms = await self._client.eval(
                FIXED_WINDOW_LUA, 1, self._key(key), window_ms
            )
        except RedisError as exc:
            raise StoreAppError(
                code="rate_limit_store_unavailable",
                message="Rate limit counter store is unavailable",
                details={"backend": "redis", "hint": type(exc).__name__},
            ) from exc

        now_ms = int(self._clock() * 1000)
        return WindowCount(count=int(count), reset_at_ms=now_ms + max(0, int(ttl_ms)))

    async def reset(self, key: str) -> None:
        try:
            await self._client.delete(self._key(key))
        except RedisError as exc:
            raise StoreAppError(
                code="rate_limit_store_unavailable",
                message="Rate limit counter store is unavailable",
                details={"backend": "redis", "hint": type(exc).__name__},
            ) from exc

    async def close(self) -> None:
        await self._client.aclose()
