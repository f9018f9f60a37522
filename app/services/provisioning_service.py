"""Organization self-service signup.

``create_organization_with_admin`` is the whole provisioning flow behind
POST /api/org-signup.  It never raises: every outcome, including internal
errors, is a SignupResult carrying ``{status, message}`` and the HTTP
status the endpoint should use.

Order of checks (each short-circuits):

  1. rate limit      3 attempts per 10 minutes per client address
  2. validation      first failing field's message
  3. slug unused
  4. email unused
  5. one transaction: Organization + owner User + Verification + Activity
  6. after commit:   welcome email carrying the verification code

Steps 3 and 4 are advisory; two concurrent signups can both pass them.
The unique constraints on slug and email decide the race inside step 5,
and the loser gets the generic "already exists" message with nothing
written.

If step 6 fails the organization stays created but unnotified.  The
caller gets a 502 telling them to request a new code, which
POST /api/auth/email-otp/send-verification-otp (type email-verification)
reissues for any unverified user.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from app.core.metrics import ORG_SIGNUPS, RATE_LIMIT_HITS
from app.models.activity import ActivityAction, OrganizationActivity
from app.models.organization import (
    DESCRIPTION_MAX_LENGTH,
    MAX_SEATS_LIMIT,
    Organization,
    OrganizationRole,
)
from app.models.user import SystemRole, User, normalize_email
from app.repos.errors import DuplicateKeyError
from app.repos.unit_of_work import UnitOfWork
from app.services import verification_service
from app.services.email_service import EmailClient, dispatch, welcome_email
from app.services.errors import EmailDispatchError
from app.services.rate_limiter import SIGNUP_LIMIT, RateLimiter

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
SLUG_RE = re.compile(r"^[a-z0-9-]+$")
PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")

MSG_RATE_LIMITED = "Too many signup attempts. Please try again later."
MSG_SLUG_TAKEN = "Organization slug is already taken. Please choose another."
MSG_EMAIL_TAKEN = "An account with this email already exists. Please sign in instead."
MSG_RACE = "Organization or email already exists. Please try different values."
MSG_UNNOTIFIED = (
    "Your organization was created, but we could not send the verification "
    "email. Request a new code from the verification page."
)
MSG_FAILED = "Failed to create organization. Please try again later."
MSG_CREATED = (
    "Organization created successfully! Please check your email for verification."
)


def _fail(message: str) -> PydanticCustomError:
    return PydanticCustomError("org_signup", message)


def _length(value: str, lo: int, hi: int, too_short: str, too_long: str) -> str:
    value = value.strip()
    if len(value) < lo:
        raise _fail(too_short)
    if len(value) > hi:
        raise _fail(too_long)
    return value


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value)) and len(value) <= 320


class OrganizationSignupForm(BaseModel):
    """The signup wizard payload.  Field order is the order errors report in."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    organization_name: str = Field(alias="organizationName")
    organization_slug: str = Field(alias="organizationSlug")
    organization_description: str | None = Field(
        default=None, alias="organizationDescription"
    )
    admin_name: str = Field(alias="adminName")
    admin_email: str = Field(alias="adminEmail")
    contact_email: str | None = Field(default=None, alias="contactEmail")
    contact_phone: str | None = Field(default=None, alias="contactPhone")
    website: str | None = Field(default=None, alias="website")
    max_seats: int = Field(alias="maxSeats")
    accept_terms: bool = Field(alias="acceptTerms")

    @field_validator("organization_name")
    @classmethod
    def _org_name(cls, v: str) -> str:
        return _length(
            v, 2, 100,
            "Organization name must be at least 2 characters",
            "Organization name must be at most 100 characters",
        )

    @field_validator("organization_slug")
    @classmethod
    def _slug(cls, v: str) -> str:
        v = _length(
            v, 2, 50,
            "Slug must be at least 2 characters",
            "Slug must be at most 50 characters",
        )
        if not SLUG_RE.match(v):
            raise _fail("Slug can only contain lowercase letters, numbers, and hyphens")
        return v

    @field_validator("organization_description")
    @classmethod
    def _description(cls, v: str | None) -> str | None:
        if not v:
            return None
        if len(v) > DESCRIPTION_MAX_LENGTH:
            raise _fail("Description must be at most 500 characters")
        return v

    @field_validator("admin_name")
    @classmethod
    def _admin_name(cls, v: str) -> str:
        return _length(
            v, 2, 100,
            "Name must be at least 2 characters",
            "Name must be at most 100 characters",
        )

    @field_validator("admin_email")
    @classmethod
    def _admin_email(cls, v: str) -> str:
        if not is_valid_email(v):
            raise _fail("Please enter a valid email address")
        return normalize_email(v)

    @field_validator("contact_email")
    @classmethod
    def _contact_email(cls, v: str | None) -> str | None:
        if not v:
            return None
        if not is_valid_email(v):
            raise _fail("Please enter a valid contact email")
        return normalize_email(v)

    @field_validator("contact_phone")
    @classmethod
    def _phone(cls, v: str | None) -> str | None:
        if not v:
            return None
        if not PHONE_RE.match(v):
            raise _fail("Please enter a valid phone number")
        return v

    @field_validator("website")
    @classmethod
    def _website(cls, v: str | None) -> str | None:
        if not v:
            return None
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise _fail("Please enter a valid URL")
        return v

    @field_validator("max_seats", mode="before")
    @classmethod
    def _max_seats(cls, v: Any) -> int:
        try:
            seats = int(v)
        except (TypeError, ValueError):
            raise _fail("Please enter a valid number of seats") from None
        if seats < 1:
            raise _fail("Must have at least 1 seat")
        if seats > MAX_SEATS_LIMIT:
            raise _fail("Maximum 1000 seats allowed")
        return seats

    @field_validator("accept_terms", mode="before")
    @classmethod
    def _terms(cls, v: Any) -> bool:
        if v is not True:
            raise _fail("You must accept the terms and conditions")
        return True


@dataclass(frozen=True, slots=True)
class SignupResult:
    status: str  # success | error
    message: str
    http_status: int = 200

    @staticmethod
    def ok(message: str) -> SignupResult:
        return SignupResult(status="success", message=message)

    @staticmethod
    def error(message: str, http_status: int = 400) -> SignupResult:
        return SignupResult(status="error", message=message, http_status=http_status)

    def as_dict(self) -> dict[str, str]:
        return {"status": self.status, "message": self.message}


def first_error_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid form data"
    return errors[0].get("msg") or "Invalid form data"


async def create_organization_with_admin(
    uow: UnitOfWork,
    values: Mapping[str, Any],
    *,
    client_key: str,
    rate_limiter: RateLimiter,
    email_client: EmailClient,
    now: datetime | None = None,
) -> SignupResult:
    now = now or datetime.now(UTC)

    try:
        limit = await rate_limiter.hit(f"org_signup:{client_key}", SIGNUP_LIMIT)
        if not limit.allowed:
            RATE_LIMIT_HITS.labels(scope="org_signup").inc()
            ORG_SIGNUPS.labels(outcome="rate_limited").inc()
            logger.warning("Signup rate limited client=%s", client_key)
            return SignupResult.error(MSG_RATE_LIMITED)

        try:
            form = OrganizationSignupForm.model_validate(dict(values))
        except ValidationError as exc:
            ORG_SIGNUPS.labels(outcome="invalid").inc()
            return SignupResult.error(first_error_message(exc))

        if await uow.organizations.get_by_slug(form.organization_slug) is not None:
            ORG_SIGNUPS.labels(outcome="conflict").inc()
            return SignupResult.error(MSG_SLUG_TAKEN)

        if await uow.users.get_by_email(form.admin_email) is not None:
            ORG_SIGNUPS.labels(outcome="conflict").inc()
            return SignupResult.error(MSG_EMAIL_TAKEN)

        async with uow.transaction():
            owner = User.new(
                email=form.admin_email,
                name=form.admin_name,
                email_verified=False,
                # Organization owners are also platform admins.
                role=SystemRole.ADMIN,
                now=now,
            )
            org = Organization.new_trial(
                name=form.organization_name,
                slug=form.organization_slug,
                owner_id=owner.id,
                max_seats=form.max_seats,
                description=form.organization_description,
                contact_email=form.contact_email or form.admin_email,
                contact_phone=form.contact_phone,
                website=form.website,
                billing_email=form.admin_email,
                now=now,
            )
            owner = owner.join(org.id, OrganizationRole.OWNER, now=now)

            await uow.organizations.add(org)
            await uow.users.add(owner)
            verification = await verification_service.issue_code(
                uow, form.admin_email, now=now
            )
            await uow.activity.add(
                OrganizationActivity.record(
                    organization_id=org.id,
                    action=ActivityAction.ORGANIZATION_CREATED,
                    user_id=owner.id,
                    entity_type="organization",
                    entity_id=org.id,
                    metadata={"createdBy": "signup", "initialSeats": form.max_seats},
                    now=now,
                )
            )
    except DuplicateKeyError:
        ORG_SIGNUPS.labels(outcome="conflict").inc()
        logger.warning("Signup lost a uniqueness race client=%s", client_key)
        return SignupResult.error(MSG_RACE)
    except Exception:
        ORG_SIGNUPS.labels(outcome="error").inc()
        logger.exception("Organization signup failed client=%s", client_key)
        return SignupResult.error(MSG_FAILED, http_status=500)

    logger.info(
        "Organization created org_id=%s slug=%s owner_id=%s seats=%d",
        org.id,
        org.slug,
        owner.id,
        org.max_seats,
    )

    message = welcome_email(
        to=owner.email,
        admin_name=owner.name,
        organization_name=org.name,
        slug=org.slug,
        code=verification.value,
        max_seats=org.max_seats,
    )
    try:
        await dispatch(email_client, message)
    except EmailDispatchError:
        ORG_SIGNUPS.labels(outcome="unnotified").inc()
        logger.warning("Organization created but welcome email failed org_id=%s", org.id)
        return SignupResult.error(MSG_UNNOTIFIED, http_status=502)

    ORG_SIGNUPS.labels(outcome="created").inc()
    return SignupResult.ok(MSG_CREATED)


async def check_slug_availability(uow: UnitOfWork, slug: str) -> SignupResult:
    if not slug or len(slug) < 2:
        return SignupResult.error("Slug must be at least 2 characters")
    if await uow.organizations.get_by_slug(slug) is not None:
        return SignupResult.error("This slug is already taken")
    return SignupResult.ok("Slug is available")


async def check_email_availability(uow: UnitOfWork, email: str) -> SignupResult:
    if not is_valid_email(email.strip()):
        return SignupResult.error("Please enter a valid email address")
    if await uow.users.get_by_email(normalize_email(email)) is not None:
        return SignupResult.error("This email is already registered")
    return SignupResult.ok("Email is available")
