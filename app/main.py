from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from app.api.email_otp import router as email_otp_router
from app.api.github import router as github_router
from app.api.health import router as health_router
from app.api.metrics_endpoint import router as metrics_router
from app.api.org_signup import router as org_signup_router
from app.api.organization import router as organization_router
from app.api.session import router as session_router
from app.api.verify_signup import router as verify_signup_router
from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.db.engine import lifespan_db
from app.db.redis import lifespan_redis
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import RequestContextMiddleware
from app.services.errors import AuthServiceError

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Teardown runs in reverse order: Redis closes before the engine.
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="lms-auth-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)


# --- Error envelope: every failure body is {"error": "<message>"} ---------


@app.exception_handler(AuthServiceError)
async def auth_service_error_handler(
    _request: Request, exc: AuthServiceError
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message},
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info(
        "Rejected request body on %s: %d error(s)",
        request.url.path,
        len(exc.errors()),
    )
    return JSONResponse(status_code=400, content={"error": "Invalid input data"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(
    _request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=[SETTINGS.base_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Authlib keeps the OAuth state and the GitHub callbackURL here.
app.add_middleware(
    SessionMiddleware,
    secret_key=SETTINGS.auth_secret,
    session_cookie="lms_oauth_state",
    max_age=600,
    same_site="lax",
    https_only=SETTINGS.is_prod,
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) → Metrics → Session → CORS → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(org_signup_router)
app.include_router(verify_signup_router)
app.include_router(email_otp_router)
app.include_router(github_router)
app.include_router(session_router)
app.include_router(organization_router)

logger.info(
    "lms-auth-service started  env=%s log_level=%s port=%d docs=%s github=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
    "on" if SETTINGS.github_enabled else "off",
)
