"""Rate limiting dependency for FastAPI routes.

WHAT IS LIMITED
---------------
Only two flows are limited, both of which send email:

  POST /api/org-signup                         3 per 10 minutes per address
  POST /api/auth/email-otp/send-verification-otp  3 per minute per address

Signup checks the limit inside the provisioning service, because the
denial is part of its ``{status, message}`` result.  OTP dispatch uses the
``require_rate_limit`` dependency below.  Everything else is unlimited.

KEYS
----
Callers here are anonymous by definition, so the key is always the client
network address, prefixed by scope so the two limits never share a
counter.  Behind a proxy, run uvicorn with ``--proxy-headers`` so
``request.client`` is the real client.
"""

from __future__ import annotations

import logging

from fastapi import Request

from app.core.metrics import RATE_LIMIT_HITS
from app.db.redis import redis_pool
from app.services.errors import RateLimitedError
from app.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RedisRateLimiter,
    retry_after_header,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton: Redis when configured, else per-process
# ---------------------------------------------------------------------------

if redis_pool is not None:
    rate_limiter = RedisRateLimiter(redis_pool)
else:
    rate_limiter = InMemoryRateLimiter()


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def require_rate_limit(config: RateLimitConfig, scope: str, message: str):
    """Dependency factory: deny the request once *scope* is exhausted.

    Usage::

        @router.post(
            "/send",
            dependencies=[Depends(require_rate_limit(OTP_SEND_LIMIT, "otp_send", "..."))],
        )
    """

    async def _check(request: Request) -> None:
        key = f"{scope}:{client_ip(request)}"
        result = await rate_limiter.hit(key, config)
        if not result.allowed:
            RATE_LIMIT_HITS.labels(scope=scope).inc()
            logger.warning("Rate limit exceeded scope=%s key=%s", scope, key)
            raise RateLimitedError(
                message,
                headers={"Retry-After": retry_after_header(result)},
            )

    return _check
