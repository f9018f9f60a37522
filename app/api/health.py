"""Health and readiness endpoints.

  /health (liveness)
    "Is this process alive?"  Always 200; the body reports each backing
    store so dashboards can show a degraded instance without the
    orchestrator restarting it.

  /ready (readiness)
    "Can this instance serve auth traffic?"  PostgreSQL is the system of
    record, so a configured-but-unreachable database answers 503 and the
    load balancer stops routing here.  Redis only backs rate limiting,
    so it never fails readiness.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response

from app.db.engine import async_session_factory, ping_database
from app.db.redis import ping_redis, redis_pool

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_redis() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await ping_redis()
    except Exception:
        logger.warning("Redis health check failed", exc_info=True)
        return "degraded"
    return "ok"


async def _check_database() -> str:
    if async_session_factory is None:
        return "not_configured"
    try:
        await ping_database()
    except Exception:
        logger.warning("Database health check failed", exc_info=True)
        return "degraded"
    return "ok"


@router.get("/health")
async def health() -> dict:
    """Liveness probe plus dependency status.

    Returns 200 even when degraded; the status field carries the verdict.
    """
    checks = {
        "database": await _check_database(),
        "redis": await _check_redis(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await _check_database() == "degraded":
        return Response(status_code=503)
    return Response(status_code=200)
