"""GET /metrics in Prometheus text exposition format.

Besides the HTTP request series, this exposes the auth counters declared
in app.core.metrics: signups by outcome, code exchanges, email dispatch
results, sessions issued and rate-limit rejections.  Keep it reachable
only from the Prometheus scraper in production.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
