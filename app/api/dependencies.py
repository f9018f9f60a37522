"""Post-authentication dependencies.

``optional_session`` is the one place a request is mapped to a caller:

  1. read the session token from the ``better-auth.session_token`` cookie
     (or an ``Authorization: Bearer <token>`` header for non-browser clients)
  2. resolve it through session_service (cookie cache, expiry, rolling update)
  3. load the User and compose its SessionUser (organization, live seat
     count, combined role)

``require_session`` is the same but answers 401 when there is no caller.
Routes declare whichever they need; nothing else touches cookies on the
way in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request, Response

from app.middleware.request_context import bind_caller
from app.models.session import Session
from app.models.session_user import SessionUser
from app.models.user import User
from app.repos.unit_of_work import UnitOfWork, get_uow
from app.services import session_service
from app.services.errors import UnauthenticatedError
from app.services.session_context import load_session_context

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuthContext:
    user: User
    session_user: SessionUser
    session: Session


def session_token_from(request: Request) -> tuple[str | None, bool]:
    """(token, came_from_cookie)."""
    cookie = request.cookies.get(session_service.SESSION_COOKIE)
    if cookie:
        return cookie, True
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None, False
    return None, False


async def optional_session(
    request: Request,
    response: Response,
    uow: Annotated[UnitOfWork, Depends(get_uow)],
) -> AuthContext | None:
    token, from_cookie = session_token_from(request)
    if token is None:
        return None

    cache_cookie = (
        request.cookies.get(session_service.SESSION_DATA_COOKIE) if from_cookie else None
    )
    resolved = await session_service.resolve_session(uow, token, cache_cookie)
    if resolved is None:
        logger.debug("Session token did not resolve")
        return None

    user = await uow.users.get_by_id(resolved.session.user_id)
    if user is None:
        logger.warning("Session points at missing user_id=%s", resolved.session.user_id)
        return None

    if from_cookie:
        if resolved.rolled:
            session_service.set_session_cookies(response, resolved.session)
        elif not resolved.from_cache:
            session_service.set_cache_cookie(response, resolved.session)

    session_user = await load_session_context(uow, user)
    bind_caller(user.id, session_user.organization_id)
    return AuthContext(user=user, session_user=session_user, session=resolved.session)


async def require_session(
    ctx: Annotated[AuthContext | None, Depends(optional_session)],
) -> AuthContext:
    if ctx is None:
        raise UnauthenticatedError()
    return ctx
