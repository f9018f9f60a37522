"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured we create one shared
connection pool; when it is unset (local dev, tests) redis_pool is None
and the rate limiter falls back to its in-process implementation.

WHAT LIVES IN REDIS
-------------------
Only the rate-limit windows for signup and OTP dispatch.  They are
ephemeral, must be shared by every API instance (otherwise each replica
grants its own three attempts), and expire on their own through PEXPIRE.
Users, organizations, codes and sessions stay in PostgreSQL.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


async def ping_redis() -> bool:
    if redis_pool is None:
        return False
    return bool(await redis_pool.ping())  # type: ignore[misc]


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis, nested inside lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured; rate limits are per-process")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected")
    except Exception:
        # Keep serving; the limiter will fail those requests with 500s and
        # /health reports redis as down.
        logger.exception("Redis connection failed on startup")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
