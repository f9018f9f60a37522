"""Request context middleware: request id, caller identity, timing, last-resort errors.

Every log line emitted while a request is in flight carries:

  request_id       from X-Request-ID, or a fresh uuid4
  user_id          set by require_session once the caller is resolved
  organization_id  the caller's organization, when they have one

The values live in ContextVars declared in app.core.logging, where a
handler filter copies them onto every record.  ContextVars rather than
thread-locals, since many requests share one event-loop thread.

This middleware is also the outermost safety net.  Domain errors are
mapped to ``{error}`` responses by the handlers in app.main; anything
that still escapes is logged with its traceback here and the client gets
a generic 500 ``{"error": "Internal server error"}``, never a stack trace.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.core.logging import organization_id_var, request_id_var, user_id_var

logger = logging.getLogger(__name__)


def bind_caller(user_id: object, organization_id: object | None) -> None:
    """Attach the resolved caller to this request's log context."""
    user_id_var.set(str(user_id))
    organization_id_var.set(str(organization_id) if organization_id else None)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)
        user_id_var.set(None)
        organization_id_var.set(None)

        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled error on %s %s", request.method, request.url.path
            )
            response = JSONResponse(
                status_code=500, content={"error": "Internal server error"}
            )
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        logger.info(
            "%s %s → %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
