"""POST /api/auth/verify-organization-signup

Exchanges the welcome email's code for a verified address and a session.
The new organization owner has never had a password or a session, so this
endpoint signs them in directly, through the same session_service entry
point the other sign-in flows use.

Wrong, expired and already-used codes all produce the same 400 message.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from app.api.ratelimit import client_ip
from app.core.metrics import VERIFICATION_ATTEMPTS
from app.models.user import normalize_email
from app.repos.unit_of_work import UnitOfWork, get_uow
from app.services import session_service, users_service, verification_service
from app.services.errors import AuthServiceError, NotFoundError, ValidationFailed
from app.services.provisioning_service import is_valid_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

MSG_INVALID_CODE = "Invalid or expired verification code"


class VerifySignupIn(BaseModel):
    email: str
    code: str = Field(min_length=6, max_length=6)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        if not is_valid_email(v.strip()):
            raise ValueError("invalid email")
        return normalize_email(v)


class VerifySignupOut(BaseModel):
    success: bool
    message: str
    redirectTo: str


@router.post("/verify-organization-signup", response_model=VerifySignupOut)
async def verify_organization_signup(
    payload: VerifySignupIn,
    request: Request,
    response: Response,
    uow: Annotated[UnitOfWork, Depends(get_uow)],
) -> VerifySignupOut | JSONResponse:
    try:
        verification = await verification_service.find_valid_code(
            uow, payload.email, payload.code
        )
        if verification is None:
            VERIFICATION_ATTEMPTS.labels(flow="org_signup", outcome="invalid").inc()
            logger.info("Signup verification rejected email=%s", payload.email)
            raise ValidationFailed(MSG_INVALID_CODE)

        user = await uow.users.get_by_email(payload.email)
        if user is None:
            raise NotFoundError("User not found")

        async with uow.transaction():
            if not await verification_service.consume_code(uow, verification):
                raise ValidationFailed(MSG_INVALID_CODE)
            user = await users_service.mark_email_verified(uow, user)
            session = await session_service.issue_session(
                uow,
                user_id=user.id,
                method="org_signup",
                ip_address=client_ip(request),
                user_agent=request.headers.get("user-agent"),
            )
    except AuthServiceError:
        raise
    except Exception:
        logger.exception("Signup verification failed email=%s", payload.email)
        return JSONResponse(status_code=500, content={"error": "Failed to verify email"})

    VERIFICATION_ATTEMPTS.labels(flow="org_signup", outcome="ok").inc()
    logger.info("Signup email verified user_id=%s", user.id)

    session_service.set_session_cookies(response, session)
    return VerifySignupOut(
        success=True,
        message="Email verified successfully",
        redirectTo="/dashboard",
    )
