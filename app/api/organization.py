"""Organization membership endpoints under /api/auth/organization.

Every route requires a session (401 otherwise).  Role rules live in
membership_service; this module only validates bodies and serializes.

  POST /create              caller founds an organization and becomes OWNER
  POST /invite              OWNER/ADMIN invite by email (seat-limited)
  POST /accept-invitation   invited user joins
  POST /leave               non-owners leave
  POST /remove-member       OWNER/ADMIN remove a non-owner
  PUT  /update              OWNER changes settings
  GET  ""                   caller's organization with usedSeats, or null
  GET  /members             members, most recently joined first
  GET  /invitations         pending invitations, newest first
  POST /invitation/cancel   OWNER/ADMIN withdraw a pending invitation
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator, model_validator

from app.api.dependencies import AuthContext, require_session
from app.models.invitation import OrganizationInvitation
from app.models.organization import (
    DESCRIPTION_MAX_LENGTH,
    MAX_SEATS_LIMIT,
    Organization,
    OrganizationRole,
)
from app.repos.unit_of_work import UnitOfWork, get_uow
from app.services import membership_service
from app.services.email_service import email_client
from app.services.provisioning_service import SLUG_RE, is_valid_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth/organization", tags=["organization"])

Auth = Annotated[AuthContext, Depends(require_session)]
Uow = Annotated[UnitOfWork, Depends(get_uow)]


# --- Request schemas ------------------------------------------------------


def _check_email(v: str | None) -> str | None:
    if v is not None and not is_valid_email(v.strip()):
        raise ValueError("invalid email")
    return v.strip() if v is not None else None


class CreateOrganizationIn(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    slug: str = Field(min_length=2, max_length=50)
    description: str | None = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    contactEmail: str | None = None
    maxSeats: int = Field(default=5, ge=1, le=MAX_SEATS_LIMIT)

    @field_validator("slug")
    @classmethod
    def _slug(cls, v: str) -> str:
        if not SLUG_RE.match(v):
            raise ValueError("slug may only contain a-z, 0-9 and hyphens")
        return v

    check_contact_email = field_validator("contactEmail")(_check_email)


class InviteIn(BaseModel):
    email: str
    role: Literal["OWNER", "ADMIN", "MEMBER"]
    message: str | None = None
    courseIds: list[str] = Field(default_factory=list)

    check_email = field_validator("email")(_check_email)


class AcceptInvitationIn(BaseModel):
    token: UUID


class RemoveMemberIn(BaseModel):
    memberId: UUID


class CancelInvitationIn(BaseModel):
    invitationId: UUID


_NON_NULLABLE_SETTINGS = (
    "name",
    "maxSeats",
    "allowSelfSignup",
    "domains",
    "requireAdminApproval",
)


class UpdateOrganizationIn(BaseModel):
    """Partial update: omitted fields stay as they are.

    Only description and contactEmail may be cleared with null; the other
    settings always hold a value.
    """

    name: str | None = Field(default=None, min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    contactEmail: str | None = None
    maxSeats: int | None = Field(default=None, ge=1, le=MAX_SEATS_LIMIT)
    allowSelfSignup: bool | None = None
    domains: list[str] | None = None
    requireAdminApproval: bool | None = None

    check_contact_email = field_validator("contactEmail")(_check_email)

    @model_validator(mode="before")
    @classmethod
    def _reject_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            nulled = [k for k in _NON_NULLABLE_SETTINGS if k in data and data[k] is None]
            if nulled:
                raise ValueError(f"{', '.join(nulled)} cannot be null")
        return data


_UPDATE_FIELD_NAMES = {
    "name": "name",
    "description": "description",
    "contactEmail": "contact_email",
    "maxSeats": "max_seats",
    "allowSelfSignup": "allow_self_signup",
    "domains": "domains",
    "requireAdminApproval": "require_admin_approval",
}


# --- Response schemas -----------------------------------------------------


class OrganizationOut(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None
    contactEmail: str | None
    contactPhone: str | None
    website: str | None
    maxSeats: int
    ownerId: str
    status: str
    trialEndsAt: datetime | None
    allowSelfSignup: bool
    requireAdminApproval: bool
    domains: list[str]
    createdAt: datetime | None
    usedSeats: int | None = None


class InvitationSenderOut(BaseModel):
    name: str
    email: str


class InvitationOut(BaseModel):
    id: str
    organizationId: str
    email: str
    role: str
    status: str
    token: str
    message: str | None
    courseIds: list[str]
    expiresAt: datetime
    createdAt: datetime | None
    sender: InvitationSenderOut | None = None


class MemberOut(BaseModel):
    id: str
    name: str
    email: str
    image: str | None
    organizationRole: str | None
    joinedOrganizationAt: datetime | None


def organization_out(org: Organization, used_seats: int | None = None) -> OrganizationOut:
    return OrganizationOut(
        id=str(org.id),
        name=org.name,
        slug=org.slug,
        description=org.description,
        contactEmail=org.contact_email,
        contactPhone=org.contact_phone,
        website=org.website,
        maxSeats=org.max_seats,
        ownerId=str(org.owner_id),
        status=org.status.value,
        trialEndsAt=org.trial_ends_at,
        allowSelfSignup=org.allow_self_signup,
        requireAdminApproval=org.require_admin_approval,
        domains=list(org.domains),
        createdAt=org.created_at,
        usedSeats=used_seats,
    )


def invitation_out(
    invitation: OrganizationInvitation, sender: InvitationSenderOut | None = None
) -> InvitationOut:
    return InvitationOut(
        id=str(invitation.id),
        organizationId=str(invitation.organization_id),
        email=invitation.email,
        role=invitation.role.value,
        status=invitation.status.value,
        token=invitation.token,
        message=invitation.message,
        courseIds=list(invitation.course_ids),
        expiresAt=invitation.expires_at,
        createdAt=invitation.created_at,
        sender=sender,
    )


# --- Routes ---------------------------------------------------------------


@router.post("/create")
async def create_organization(
    payload: CreateOrganizationIn, auth: Auth, uow: Uow
) -> dict[str, OrganizationOut]:
    org = await membership_service.create_organization(
        uow,
        auth.user,
        name=payload.name.strip(),
        slug=payload.slug,
        description=payload.description,
        contact_email=payload.contactEmail,
        max_seats=payload.maxSeats,
    )
    return {"organization": organization_out(org, used_seats=1)}


@router.post("/invite")
async def invite_member(
    payload: InviteIn, auth: Auth, uow: Uow
) -> dict[str, InvitationOut]:
    invitation = await membership_service.invite_member(
        uow,
        auth.user,
        email=payload.email,
        role=OrganizationRole(payload.role),
        message=payload.message,
        course_ids=payload.courseIds,
        email_client=email_client,
    )
    return {"invitation": invitation_out(invitation)}


@router.post("/accept-invitation")
async def accept_invitation(
    payload: AcceptInvitationIn, auth: Auth, uow: Uow
) -> dict[str, bool | OrganizationOut]:
    org = await membership_service.accept_invitation(
        uow, auth.user, token=str(payload.token)
    )
    return {"success": True, "organization": organization_out(org)}


@router.post("/leave")
async def leave_organization(auth: Auth, uow: Uow) -> dict[str, bool]:
    await membership_service.leave_organization(uow, auth.user)
    return {"success": True}


@router.post("/remove-member")
async def remove_member(
    payload: RemoveMemberIn, auth: Auth, uow: Uow
) -> dict[str, bool]:
    await membership_service.remove_member(uow, auth.user, member_id=payload.memberId)
    return {"success": True}


@router.put("/update")
async def update_organization(
    payload: UpdateOrganizationIn, auth: Auth, uow: Uow
) -> dict[str, OrganizationOut]:
    changes = {
        _UPDATE_FIELD_NAMES[key]: value
        for key, value in payload.model_dump(exclude_unset=True).items()
    }
    org = await membership_service.update_organization(uow, auth.user, changes)
    return {"organization": organization_out(org)}


@router.get("")
async def get_organization(auth: Auth, uow: Uow) -> dict[str, OrganizationOut | None]:
    found = await membership_service.get_organization(uow, auth.user)
    if found is None:
        return {"organization": None}
    org, used_seats = found
    return {"organization": organization_out(org, used_seats=used_seats)}


@router.get("/members")
async def list_members(auth: Auth, uow: Uow) -> dict[str, list[MemberOut]]:
    members = await membership_service.list_members(uow, auth.user)
    return {
        "members": [
            MemberOut(
                id=str(m.id),
                name=m.name,
                email=m.email,
                image=m.image,
                organizationRole=m.organization_role.value if m.organization_role else None,
                joinedOrganizationAt=m.joined_organization_at,
            )
            for m in members
        ]
    }


@router.get("/invitations")
async def list_invitations(auth: Auth, uow: Uow) -> dict[str, list[InvitationOut]]:
    pending = await membership_service.list_pending_invitations(uow, auth.user)
    return {
        "invitations": [
            invitation_out(
                p.invitation,
                InvitationSenderOut(name=p.sender.name, email=p.sender.email)
                if p.sender is not None
                else None,
            )
            for p in pending
        ]
    }


@router.post("/invitation/cancel")
async def cancel_invitation(
    payload: CancelInvitationIn, auth: Auth, uow: Uow
) -> dict[str, bool]:
    await membership_service.cancel_invitation(
        uow, auth.user, invitation_id=payload.invitationId
    )
    return {"success": True}
