"""Session issuance and resolution, shared by every sign-in path.

Email OTP, GitHub and the organization-signup verification exchange all
mint sessions through ``issue_session`` and set cookies through
``set_session_cookies``.  There is no second cookie-writing code path.

LIFETIMES
---------
  SESSION_TTL       30 days from issue (or from the last rolling update)
  UPDATE_AGE        once a session is older than 1 day, the next request
                    pushes expires_at to now + 30 days
  COOKIE_CACHE_TTL  5 minutes; a signed ``better-auth.session_data``
                    cookie lets resolution skip the session-table lookup

THE COOKIE CACHE
----------------
The cache cookie is an HS256 JWT (PyJWT, signed with AUTH_SECRET) holding
the session id, user id, session expiry and a SHA-256 of the session
token.  It is only honoured next to the token it was minted for, so a
cache cookie copied into another browser is useless on its own.
The cost: a revoked session keeps working for up to five minutes in a
browser that still holds both cookies.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
from fastapi import Response

from app.core.config import SETTINGS
from app.core.metrics import SESSIONS_ISSUED
from app.models.session import Session
from app.repos.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

SESSION_COOKIE = "better-auth.session_token"
SESSION_DATA_COOKIE = "better-auth.session_data"

SESSION_TTL = timedelta(days=30)
UPDATE_AGE = timedelta(days=1)
COOKIE_CACHE_TTL = timedelta(minutes=5)

_CACHE_ALGORITHM = "HS256"
_CACHE_AUDIENCE = "session-cache"


@dataclass(frozen=True, slots=True)
class ResolvedSession:
    session: Session
    from_cache: bool = False
    rolled: bool = False


async def issue_session(
    uow: UnitOfWork,
    *,
    user_id: UUID,
    method: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> Session:
    """Create a session row for *user_id*.

    Call inside ``uow.transaction()`` together with whatever state change
    authenticated the user (code consumed, user created).
    """
    session = Session.new(
        user_id=user_id,
        ttl=SESSION_TTL,
        ip_address=ip_address,
        user_agent=user_agent,
        now=now,
    )
    await uow.sessions.add(session)
    SESSIONS_ISSUED.labels(method=method).inc()
    logger.info("Session issued user_id=%s method=%s", user_id, method)
    return session


async def resolve_session(
    uow: UnitOfWork,
    token: str | None,
    cache_cookie: str | None = None,
    *,
    now: datetime | None = None,
) -> ResolvedSession | None:
    """Map a session token to a live session, or None."""
    if not token:
        return None
    now = now or datetime.now(UTC)

    if cache_cookie:
        cached = decode_cookie_cache(cache_cookie, token, now=now)
        if cached is not None:
            return ResolvedSession(session=cached, from_cache=True)

    session = await uow.sessions.get_by_token(token)
    if session is None:
        return None
    if session.is_expired(now):
        async with uow.transaction():
            await uow.sessions.delete_by_token(token)
        logger.debug("Expired session removed user_id=%s", session.user_id)
        return None

    last_update = session.updated_at or session.created_at or now
    if now - last_update >= UPDATE_AGE:
        session = replace(session, expires_at=now + SESSION_TTL, updated_at=now)
        async with uow.transaction():
            await uow.sessions.update(session)
        return ResolvedSession(session=session, rolled=True)

    return ResolvedSession(session=session)


async def revoke_session(uow: UnitOfWork, token: str) -> bool:
    async with uow.transaction():
        deleted = await uow.sessions.delete_by_token(token)
    if deleted:
        logger.info("Session revoked")
    return deleted


# ---------------------------------------------------------------------------
# Cookies
# ---------------------------------------------------------------------------


def set_session_cookies(
    response: Response, session: Session, *, now: datetime | None = None
) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session.token,
        max_age=int(SESSION_TTL.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=SETTINGS.is_prod,
        path="/",
    )
    set_cache_cookie(response, session, now=now)


def set_cache_cookie(
    response: Response, session: Session, *, now: datetime | None = None
) -> None:
    response.set_cookie(
        key=SESSION_DATA_COOKIE,
        value=encode_cookie_cache(session, now=now),
        max_age=int(COOKIE_CACHE_TTL.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=SETTINGS.is_prod,
        path="/",
    )


def clear_session_cookies(response: Response) -> None:
    for name in (SESSION_COOKIE, SESSION_DATA_COOKIE):
        response.delete_cookie(
            name, path="/", httponly=True, samesite="lax", secure=SETTINGS.is_prod
        )


def _token_digest(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def encode_cookie_cache(session: Session, *, now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    payload = {
        "sid": str(session.id),
        "sub": str(session.user_id),
        "th": _token_digest(session.token),
        "sexp": int(session.expires_at.timestamp()),
        "aud": _CACHE_AUDIENCE,
        "iat": now,
        "exp": min(now + COOKIE_CACHE_TTL, session.expires_at),
    }
    return jwt.encode(payload, SETTINGS.auth_secret, algorithm=_CACHE_ALGORITHM)


def decode_cookie_cache(
    cache_cookie: str, token: str, *, now: datetime | None = None
) -> Session | None:
    """Rebuild the Session from a fresh cache cookie, or None."""
    now = now or datetime.now(UTC)
    try:
        claims = jwt.decode(
            cache_cookie,
            SETTINGS.auth_secret,
            algorithms=[_CACHE_ALGORITHM],
            audience=_CACHE_AUDIENCE,
            options={"require": ["sid", "sub", "th", "sexp", "exp"]},
        )
    except jwt.InvalidTokenError:
        return None

    if claims["th"] != _token_digest(token):
        return None
    expires_at = datetime.fromtimestamp(claims["sexp"], tz=UTC)
    if expires_at <= now:
        return None
    return Session(
        id=UUID(claims["sid"]),
        token=token,
        user_id=UUID(claims["sub"]),
        expires_at=expires_at,
    )
