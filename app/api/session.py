"""Session endpoints: GET /api/auth/get-session and POST /api/auth/sign-out."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel

from app.api.dependencies import AuthContext, optional_session, session_token_from
from app.models.session import Session
from app.models.session_user import SessionUser
from app.repos.unit_of_work import UnitOfWork, get_uow
from app.services import session_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["session"])


# --- Response schemas -----------------------------------------------------


class OrganizationContextOut(BaseModel):
    id: str
    name: str
    slug: str
    role: str | None
    maxSeats: int
    usedSeats: int
    status: str
    trialEndsAt: datetime | None


class SessionUserOut(BaseModel):
    id: str
    email: str
    name: str
    image: str | None
    emailVerified: bool
    role: str | None
    combinedRole: str
    organizationId: str | None
    organization: OrganizationContextOut | None


class SessionOut(BaseModel):
    id: str
    userId: str
    expiresAt: datetime


class GetSessionOut(BaseModel):
    session: SessionOut
    user: SessionUserOut


def session_user_out(user: SessionUser) -> SessionUserOut:
    org = user.organization
    return SessionUserOut(
        id=str(user.id),
        email=user.email,
        name=user.name,
        image=user.image,
        emailVerified=user.email_verified,
        role=user.role.value if user.role else None,
        combinedRole=user.combined_role.value,
        organizationId=str(user.organization_id) if user.organization_id else None,
        organization=(
            OrganizationContextOut(
                id=str(org.id),
                name=org.name,
                slug=org.slug,
                role=org.role.value if org.role else None,
                maxSeats=org.max_seats,
                usedSeats=org.used_seats,
                status=org.status.value,
                trialEndsAt=org.trial_ends_at,
            )
            if org is not None
            else None
        ),
    )


def session_out(session: Session) -> SessionOut:
    return SessionOut(
        id=str(session.id), userId=str(session.user_id), expiresAt=session.expires_at
    )


# --- GET /api/auth/get-session --------------------------------------------


@router.get("/get-session", response_model=GetSessionOut | None)
async def get_session(
    ctx: Annotated[AuthContext | None, Depends(optional_session)],
) -> GetSessionOut | None:
    if ctx is None:
        return None
    return GetSessionOut(
        session=session_out(ctx.session), user=session_user_out(ctx.session_user)
    )


# --- POST /api/auth/sign-out ----------------------------------------------


@router.post("/sign-out")
async def sign_out(
    request: Request,
    response: Response,
    uow: Annotated[UnitOfWork, Depends(get_uow)],
) -> dict[str, bool]:
    # Idempotent: an unknown or missing token still clears the cookies.
    token, _ = session_token_from(request)
    if token:
        await session_service.revoke_session(uow, token)
    session_service.clear_session_cookies(response)
    return {"success": True}
