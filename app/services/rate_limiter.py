"""Fixed-window rate limiting.

HOW IT WORKS
------------
Each key (e.g. ``org_signup:203.0.113.7``) owns one counter and the time
its window opened.  The first hit opens a window of ``window_seconds``;
every hit inside it increments the counter; hits beyond ``max_requests``
are denied until the window closes and the counter starts again at 1.

WHY FIXED WINDOW HERE
---------------------
The limits we enforce are small and coarse: three signups per ten minutes,
three OTP mails per minute.  The known weakness of fixed windows, a burst
straddling the boundary, lets an abuser get at most 2x the limit once,
which is acceptable for a handful of emails.  In exchange the Redis side
is a single INCR with an expiry, and the window and threshold are static
configuration rather than per-tenant state.

BACKENDS
--------
Same Protocol/InMemory/Redis split as the repositories:
  - InMemoryRateLimiter: one dict per process, for dev and tests.
  - RedisRateLimiter: shared by every API instance, atomic via Lua.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """max_requests allowed per window_seconds, per key."""

    max_requests: int
    window_seconds: int


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """The outcome of one hit.

    allowed:      True if the request may proceed.
    remaining:    Hits left in the current window.
    limit:        The window's max_requests.
    retry_after:  Seconds until the window resets (0 if allowed).
    """

    allowed: bool
    remaining: int
    limit: int
    retry_after: float


SIGNUP_LIMIT = RateLimitConfig(max_requests=3, window_seconds=600)
OTP_SEND_LIMIT = RateLimitConfig(max_requests=3, window_seconds=60)


@runtime_checkable
class RateLimiter(Protocol):
    async def hit(self, key: str, config: RateLimitConfig) -> RateLimitResult: ...
    async def reset(self, key: str) -> None: ...


class InMemoryRateLimiter:
    """Per-process windows.  Not shared across API instances."""

    def __init__(self, clock=time.monotonic) -> None:
        # key -> (count, window_started_at)
        self._windows: dict[str, tuple[int, float]] = {}
        self._clock = clock

    async def hit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        count, started = self._windows.get(key, (0, now))

        if now - started >= config.window_seconds:
            count, started = 0, now

        count += 1
        self._windows[key] = (count, started)

        if count > config.max_requests:
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=config.max_requests,
                retry_after=max(started + config.window_seconds - now, 0.0),
            )
        return RateLimitResult(
            allowed=True,
            remaining=config.max_requests - count,
            limit=config.max_requests,
            retry_after=0,
        )

    async def reset(self, key: str) -> None:
        self._windows.pop(key, None)


class RedisRateLimiter:
    """Redis-backed fixed window, shared by all API instances.

    INCR and PEXPIRE must happen together: if two instances both saw the
    key missing and only one set the expiry, a crash in between would
    leave a counter that never resets.  Lua runs atomically in Redis, so
    the expiry is attached exactly when the counter is created.
    """

    # KEYS[1] = counter key, ARGV[1] = window in ms
    # Returns: {count, ttl_ms}
    _LUA_SCRIPT = """
    local count = redis.call('INCR', KEYS[1])
    if count == 1 then
        redis.call('PEXPIRE', KEYS[1], ARGV[1])
    end
    local ttl = redis.call('PTTL', KEYS[1])
    return {count, ttl}
    """

    def __init__(self, redis_client) -> None:
        self._redis = redis_client
        self._script = None

    async def _get_script(self):
        if self._script is None:
            self._script = self._redis.register_script(self._LUA_SCRIPT)
        return self._script

    async def hit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        script = await self._get_script()
        count, ttl_ms = await script(
            keys=[f"ratelimit:{key}"],
            args=[config.window_seconds * 1000],
        )
        count = int(count)
        if count > config.max_requests:
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=config.max_requests,
                retry_after=max(int(ttl_ms), 0) / 1000,
            )
        return RateLimitResult(
            allowed=True,
            remaining=config.max_requests - count,
            limit=config.max_requests,
            retry_after=0,
        )

    async def reset(self, key: str) -> None:
        await self._redis.delete(f"ratelimit:{key}")


def retry_after_header(result: RateLimitResult) -> str:
    return str(max(math.ceil(result.retry_after), 1))
