"""Per-reader budget for unknown digital IDs.

A reader that keeps submitting identifiers the store has never heard of
is either misconfigured or being used to enumerate badges.  Each
not-found lookup spends one unit of the reader's budget; once
``limit`` misses land inside one fixed window of ``window_seconds``,
further scans on that reader are refused until the window expires.
Successful lookups do not spend budget.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class ThrottleConfig:
    limit: int = 5
    window_seconds: int = 60


@dataclass(frozen=True, slots=True)
class ThrottleStatus:
    blocked: bool
    misses: int
    retry_after: float  # seconds until the window resets (0 when not blocked)


@runtime_checkable
class LookupThrottle(Protocol):
    async def status(self, key: str) -> ThrottleStatus: ...
    async def record_miss(self, key: str) -> ThrottleStatus: ...
    async def reset(self, key: str) -> None: ...


class InMemoryLookupThrottle:
    """Single-process fixed-window counters for dev/test."""

    def __init__(self, config: ThrottleConfig | None = None) -> None:
        self._config = config or ThrottleConfig()
        # key -> (misses, window_started_at)
        self._windows: dict[str, tuple[int, float]] = {}

    def _current(self, key: str, now: float) -> tuple[int, float]:
        misses, started = self._windows.get(key, (0, now))
        if now - started >= self._config.window_seconds:
            return 0, now
        return misses, started

    def _status(self, misses: int, started: float, now: float) -> ThrottleStatus:
        blocked = misses >= self._config.limit
        retry_after = self._config.window_seconds - (now - started) if blocked else 0.0
        return ThrottleStatus(blocked=blocked, misses=misses, retry_after=retry_after)

    async def status(self, key: str) -> ThrottleStatus:
        now = time.monotonic()
        misses, started = self._current(key, now)
        return self._status(misses, started, now)

    async def record_miss(self, key: str) -> ThrottleStatus:
        now = time.monotonic()
        misses, started = self._current(key, now)
        misses += 1
        self._windows[key] = (misses, started)
        return self._status(misses, started, now)

    async def reset(self, key: str) -> None:
        self._windows.pop(key, None)


class RedisLookupThrottle:
    """Redis-backed counters, shared by every API instance."""

    _PREFIX = "lookup-miss:"

    def __init__(self, redis_client, config: ThrottleConfig | None = None) -> None:
        self._redis = redis_client
        self._config = config or ThrottleConfig()

    async def status(self, key: str) -> ThrottleStatus:
        redis_key = f"{self._PREFIX}{key}"
        raw = await self._redis.get(redis_key)
        misses = int(raw) if raw else 0
        return await self._status(redis_key, misses)

    async def record_miss(self, key: str) -> ThrottleStatus:
        redis_key = f"{self._PREFIX}{key}"
        # INCR and EXPIRE NX in one round trip; the TTL is only set when the
        # window opens so later misses don't extend it.
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(redis_key)
            pipe.expire(redis_key, self._config.window_seconds, nx=True)
            misses, _ = await pipe.execute()
        return await self._status(redis_key, int(misses))

    async def reset(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")

    async def _status(self, redis_key: str, misses: int) -> ThrottleStatus:
        if misses < self._config.limit:
            return ThrottleStatus(blocked=False, misses=misses, retry_after=0.0)
        ttl = await self._redis.ttl(redis_key)
        return ThrottleStatus(
            blocked=True,
            misses=misses,
            retry_after=float(ttl if ttl > 0 else self._config.window_seconds),
        )
