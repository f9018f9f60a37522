"""Passwordless email sign-in.

  POST /api/auth/email-otp/send-verification-otp   mail a six-digit code
  POST /api/auth/sign-in/email-otp                 exchange it for a session

``type`` selects what the code is for:

  sign-in             stored under ``sign-in-otp-<email>``; any address may
                      request one, and the first exchange creates the account.
  email-verification  re-sends the organization-signup code (stored under
                      ``<email>``), only when an unverified user exists.  It
                      answers success either way so the endpoint cannot be
                      used to probe which addresses have accounts.
"""

from __future__ import annotations

import logging
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field, field_validator

from app.api.ratelimit import client_ip, require_rate_limit
from app.api.session import SessionUserOut, session_user_out
from app.core.metrics import VERIFICATION_ATTEMPTS
from app.models.user import normalize_email
from app.repos.unit_of_work import UnitOfWork, get_uow
from app.services import session_service, users_service, verification_service
from app.services.email_service import dispatch, email_client, otp_email
from app.services.errors import EmailDispatchError, ValidationFailed
from app.services.provisioning_service import is_valid_email
from app.services.rate_limiter import OTP_SEND_LIMIT
from app.services.session_context import load_session_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["email-otp"])

MSG_INVALID_CODE = "Invalid or expired verification code"
MSG_SEND_FAILED = "Failed to send verification code"


class _EmailField(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        if not is_valid_email(v.strip()):
            raise ValueError("invalid email")
        return normalize_email(v)


class SendOtpIn(_EmailField):
    type: Literal["sign-in", "email-verification"]


class SignInOtpIn(_EmailField):
    otp: str = Field(min_length=6, max_length=6)


class SignInOut(BaseModel):
    token: str
    user: SessionUserOut


_otp_send_limit = require_rate_limit(
    OTP_SEND_LIMIT,
    scope="otp_send",
    message="Too many code requests. Please try again later.",
)


@router.post(
    "/email-otp/send-verification-otp",
    dependencies=[Depends(_otp_send_limit)],
)
async def send_verification_otp(
    payload: SendOtpIn,
    uow: Annotated[UnitOfWork, Depends(get_uow)],
) -> dict[str, bool]:
    if payload.type == "sign-in":
        identifier = verification_service.sign_in_identifier(payload.email)
    else:
        user = await uow.users.get_by_email(payload.email)
        if user is None or user.email_verified:
            logger.info("Verification resend skipped email=%s", payload.email)
            return {"success": True}
        identifier = payload.email

    async with uow.transaction():
        verification = await verification_service.issue_code(uow, identifier)

    try:
        await dispatch(email_client, otp_email(to=payload.email, code=verification.value))
    except EmailDispatchError as exc:
        raise EmailDispatchError(MSG_SEND_FAILED) from exc
    return {"success": True}


@router.post("/sign-in/email-otp", response_model=SignInOut)
async def sign_in_email_otp(
    payload: SignInOtpIn,
    request: Request,
    response: Response,
    uow: Annotated[UnitOfWork, Depends(get_uow)],
) -> SignInOut:
    identifier = verification_service.sign_in_identifier(payload.email)
    verification = await verification_service.find_valid_code(
        uow, identifier, payload.otp
    )
    if verification is None:
        VERIFICATION_ATTEMPTS.labels(flow="sign_in", outcome="invalid").inc()
        logger.info("OTP sign-in rejected email=%s", payload.email)
        raise ValidationFailed(MSG_INVALID_CODE)

    async with uow.transaction():
        if not await verification_service.consume_code(uow, verification):
            raise ValidationFailed(MSG_INVALID_CODE)
        user = await users_service.find_or_create_user(uow, payload.email)
        session = await session_service.issue_session(
            uow,
            user_id=user.id,
            method="email_otp",
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )

    VERIFICATION_ATTEMPTS.labels(flow="sign_in", outcome="ok").inc()
    session_service.set_session_cookies(response, session)
    session_user = await load_session_context(uow, user)
    return SignInOut(token=session.token, user=session_user_out(session_user))
