"""GitHub sign-in.

  GET /api/auth/sign-in/github?callbackURL=/courses   start the flow
  GET /api/auth/callback/github                       finish it

Flow:
  1. Stash callbackURL (relative paths only) in the Starlette session and
     redirect to GitHub.  Authlib stores the CSRF state alongside it.
  2. On callback, exchange the code for a token (Authlib checks state).
  3. Read the primary verified email; reject accounts without one.
  4. Find or create the user by email, issue a session, set cookies and
     redirect to the stashed callbackURL.

Any failure after step 1 lands on /login?error=oauth_failed.
"""

from __future__ import annotations

import logging
from typing import Annotated

import httpx
from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from app.api.ratelimit import client_ip
from app.repos.unit_of_work import UnitOfWork, get_uow
from app.services import session_service, users_service
from app.services.errors import NotFoundError
from app.services.github_oauth import get_github_identity, github_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["github"])

_FAILED = "/login?error=oauth_failed"
_CALLBACK_KEY = "github_callback_url"


def safe_callback_url(raw: str | None) -> str:
    """Allow only same-site relative paths; anything else becomes '/'."""
    if not raw or not raw.startswith("/") or raw.startswith("//") or "\\" in raw:
        return "/"
    return raw


def _require_client():
    client = github_client()
    if client is None:
        raise NotFoundError("Provider not configured")
    return client


@router.get("/sign-in/github")
async def sign_in_github(
    request: Request,
    callbackURL: Annotated[str | None, Query()] = None,  # noqa: N803
):
    client = _require_client()
    request.session[_CALLBACK_KEY] = safe_callback_url(callbackURL)
    redirect_uri = str(request.url_for("github_callback"))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/callback/github", name="github_callback")
async def github_callback(
    request: Request,
    uow: Annotated[UnitOfWork, Depends(get_uow)],
) -> RedirectResponse:
    client = _require_client()
    next_url = safe_callback_url(request.session.pop(_CALLBACK_KEY, None))

    try:
        token = await client.authorize_access_token(request)
    except (OAuthError, httpx.HTTPError):
        logger.exception("GitHub token exchange failed")
        return RedirectResponse(_FAILED, status_code=302)

    try:
        identity = await get_github_identity(client, token)
    except ValueError:
        logger.warning("GitHub sign-in rejected: no primary verified email")
        return RedirectResponse(_FAILED, status_code=302)
    except httpx.HTTPError:
        logger.exception("GitHub profile lookup failed")
        return RedirectResponse(_FAILED, status_code=302)

    try:
        async with uow.transaction():
            user = await users_service.find_or_create_user(
                uow, identity.email, name=identity.name, image=identity.avatar_url
            )
            session = await session_service.issue_session(
                uow,
                user_id=user.id,
                method="github",
                ip_address=client_ip(request),
                user_agent=request.headers.get("user-agent"),
            )
    except Exception:
        logger.exception("GitHub sign-in could not persist session email=%s", identity.email)
        return RedirectResponse(_FAILED, status_code=302)

    logger.info("GitHub sign-in user_id=%s github_id=%s", user.id, identity.subject_id)
    resp = RedirectResponse(next_url, status_code=302)
    session_service.set_session_cookies(resp, session)
    resp.headers["Cache-Control"] = "no-store"
    return resp
