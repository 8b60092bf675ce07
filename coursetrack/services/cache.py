"""Read-through cache for progress views.

GET /v1/progress/{course_id} is the hottest path in the service (dashboards
poll it), while the underlying enrollment only changes on enrollment,
completion, reconciliation or purge.  Views are cached per (user, course)
with a TTL as a safety net.

A reader that loaded an enrollment just before a write must not put its
now outdated view back after the writer invalidated.  So every write bumps
a per-(user, course) generation counter, and views are stored under the
generation the reader saw before loading.  A late set lands on a key no
one reads any more.

Keys:
  progress_gen:{user_id}:{course_id}          generation counter, no TTL
  progress:{user_id}:{course_id}:{generation}  one ProgressView
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from coursetrack.db.redis import redis_pool


def progress_key(user_id: str, course_id: str, generation: int) -> str:
    return f"progress:{user_id}:{course_id}:{generation}"


def progress_generation_key(user_id: str, course_id: str) -> str:
    return f"progress_gen:{user_id}:{course_id}"


async def progress_generation(
    cache: CacheService, user_id: str, course_id: str
) -> int:
    raw = await cache.get(progress_generation_key(user_id, course_id))
    return int(raw) if raw is not None else 0


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL (time to live)."""
        ...

    async def delete(self, key: str) -> None:
        """Explicitly invalidate a cached entry."""
        ...

    async def incr(self, key: str) -> int:
        """Atomically increment an integer counter; returns the new value."""
        ...


class InMemoryCacheService:
    """In-memory cache for dev and tests; TTLs are accepted but not enforced."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = value

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def incr(self, key: str) -> int:
        value = int(self._store.get(key, "0")) + 1
        self._store[key] = str(value)
        return value


class RedisCacheService:
    """Redis-backed cache shared by all API instances and the worker."""

    # Key prefix prevents collisions with the task queue lists
    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")

    async def incr(self, key: str) -> int:
        return await self._redis.incr(f"{self._PREFIX}{key}")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
