"""Organization membership: create, invite, accept, leave, remove, update.

Every function takes the caller as a freshly loaded User and raises an
AuthServiceError subclass on any rule violation, so the API layer only
serializes.  Writes go through ``uow.transaction()`` together with their
activity row.

Invitation lifecycle:

    PENDING ──accept──▶ ACCEPTED
       │ ──cancel──▶ REJECTED
       └─(read past expires_at)─▶ EXPIRED

All three outcomes are terminal.  EXPIRED is written lazily, whenever a
PENDING row past its expiry is touched by invite, accept or list.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from app.models.activity import ActivityAction, OrganizationActivity
from app.models.invitation import OrganizationInvitation
from app.models.organization import DEFAULT_MAX_SEATS, Organization, OrganizationRole
from app.models.user import User, normalize_email
from app.repos.errors import DuplicateKeyError
from app.repos.unit_of_work import UnitOfWork
from app.services.email_service import EmailClient, dispatch, invitation_email
from app.services.errors import (
    ConflictError,
    EmailDispatchError,
    ForbiddenError,
    NotFoundError,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

MSG_NO_ORG = "User is not part of an organization"
MSG_ALREADY_IN_ORG = "User is already part of an organization"

# Settings an owner may change through PUT /organization/update.
UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "contact_email",
        "max_seats",
        "allow_self_signup",
        "domains",
        "require_admin_approval",
    }
)

# The only settings that may be set back to None.
CLEARABLE_FIELDS = frozenset({"description", "contact_email"})

@dataclass(frozen=True, slots=True)
class PendingInvitation:
    invitation: OrganizationInvitation
    sender: User | None


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(UTC)


async def _require_org(uow: UnitOfWork, actor: User) -> Organization:
    if actor.organization_id is None:
        raise ValidationFailed(MSG_NO_ORG)
    org = await uow.organizations.get_by_id(actor.organization_id)
    if org is None:
        raise ValidationFailed(MSG_NO_ORG)
    return org


def _require_manager(actor: User) -> None:
    if actor.organization_role is None or not actor.organization_role.can_manage_members:
        logger.warning(
            "Access denied: user=%s org_role=%s needs OWNER|ADMIN",
            actor.id,
            actor.organization_role,
        )
        raise ForbiddenError("Insufficient permissions")


async def create_organization(
    uow: UnitOfWork,
    actor: User,
    *,
    name: str,
    slug: str,
    description: str | None = None,
    contact_email: str | None = None,
    max_seats: int = DEFAULT_MAX_SEATS,
    now: datetime | None = None,
) -> Organization:
    now = _now(now)
    if actor.organization_id is not None:
        raise ConflictError(MSG_ALREADY_IN_ORG)
    if await uow.organizations.get_by_slug(slug) is not None:
        raise ConflictError("Organization slug already exists")

    org = Organization.new_trial(
        name=name,
        slug=slug,
        owner_id=actor.id,
        max_seats=max_seats,
        description=description,
        contact_email=normalize_email(contact_email) if contact_email else None,
        now=now,
    )
    try:
        async with uow.transaction():
            await uow.organizations.add(org)
            await uow.users.update(actor.join(org.id, OrganizationRole.OWNER, now=now))
            await uow.activity.add(
                OrganizationActivity.record(
                    organization_id=org.id,
                    action=ActivityAction.ORGANIZATION_CREATED,
                    user_id=actor.id,
                    entity_type="organization",
                    entity_id=org.id,
                    now=now,
                )
            )
    except DuplicateKeyError:
        raise ConflictError("Organization slug already exists") from None

    logger.info("Organization created org_id=%s slug=%s owner_id=%s", org.id, slug, actor.id)
    return org


async def invite_member(
    uow: UnitOfWork,
    actor: User,
    *,
    email: str,
    role: OrganizationRole,
    message: str | None = None,
    course_ids: Sequence[str] = (),
    email_client: EmailClient | None = None,
    now: datetime | None = None,
) -> OrganizationInvitation:
    now = _now(now)
    org = await _require_org(uow, actor)
    _require_manager(actor)

    if role is OrganizationRole.OWNER:
        raise ValidationFailed("Invitations cannot grant the OWNER role")

    used_seats = await uow.users.count_by_org(org.id)
    if used_seats >= org.max_seats:
        raise ValidationFailed("Organization has reached maximum seat limit")

    email = normalize_email(email)
    existing_user = await uow.users.get_by_email(email)
    if existing_user is not None and existing_user.organization_id == org.id:
        raise ConflictError("User is already a member of this organization")

    invitation = OrganizationInvitation.new(
        organization_id=org.id,
        email=email,
        role=role,
        sender_id=actor.id,
        message=message,
        course_ids=tuple(course_ids),
        now=now,
    )
    try:
        async with uow.transaction():
            pending = await uow.invitations.find_pending(org.id, email)
            if pending is not None:
                if not pending.is_expired(now):
                    raise ConflictError("Invitation already sent to this email")
                await uow.invitations.update(pending.expired())

            await uow.invitations.add(invitation)
            await uow.activity.add(
                OrganizationActivity.record(
                    organization_id=org.id,
                    action=ActivityAction.MEMBER_INVITED,
                    user_id=actor.id,
                    entity_type="invitation",
                    entity_id=invitation.id,
                    metadata={"email": email, "role": role.value},
                    now=now,
                )
            )
    except DuplicateKeyError:
        raise ConflictError("Invitation already sent to this email") from None

    logger.info(
        "Invitation created org_id=%s invitation_id=%s role=%s",
        org.id,
        invitation.id,
        role,
    )

    if email_client is not None:
        try:
            await dispatch(
                email_client,
                invitation_email(
                    to=email,
                    organization_name=org.name,
                    inviter_name=actor.name or actor.email,
                    token=invitation.token,
                    message=message,
                ),
            )
        except EmailDispatchError:
            # The invitation stands; the inviter can cancel and re-send.
            logger.warning("Invitation email failed invitation_id=%s", invitation.id)

    return invitation


async def accept_invitation(
    uow: UnitOfWork, actor: User, *, token: str, now: datetime | None = None
) -> Organization:
    now = _now(now)
    invitation = await uow.invitations.get_by_token(token)
    if invitation is None:
        raise NotFoundError("Invalid invitation")
    if not invitation.is_pending:
        raise ValidationFailed("Invitation is no longer valid")
    if invitation.is_expired(now):
        async with uow.transaction():
            await uow.invitations.update(invitation.expired())
        raise ValidationFailed("Invitation has expired")
    if normalize_email(actor.email) != normalize_email(invitation.email):
        raise ValidationFailed("Invitation email does not match user email")
    if actor.organization_id is not None:
        raise ConflictError(MSG_ALREADY_IN_ORG)

    org = await uow.organizations.get_by_id(invitation.organization_id)
    if org is None:
        raise NotFoundError("Invalid invitation")

    async with uow.transaction():
        await uow.users.update(actor.join(org.id, invitation.role, now=now))
        await uow.invitations.update(invitation.accepted(now))
        await uow.activity.add(
            OrganizationActivity.record(
                organization_id=org.id,
                action=ActivityAction.MEMBER_JOINED,
                user_id=actor.id,
                entity_type="user",
                entity_id=actor.id,
                metadata={"invitationId": str(invitation.id), "role": invitation.role.value},
                now=now,
            )
        )

    logger.info("Invitation accepted org_id=%s user_id=%s", org.id, actor.id)
    return org


async def leave_organization(
    uow: UnitOfWork, actor: User, *, now: datetime | None = None
) -> None:
    now = _now(now)
    if actor.organization_id is None:
        raise ValidationFailed(MSG_NO_ORG)
    if actor.organization_role is OrganizationRole.OWNER:
        raise ValidationFailed(
            "Organization owner cannot leave. Transfer ownership first."
        )

    org_id = actor.organization_id
    async with uow.transaction():
        await uow.users.update(actor.leave(now=now))
        await uow.activity.add(
            OrganizationActivity.record(
                organization_id=org_id,
                action=ActivityAction.MEMBER_LEFT,
                user_id=actor.id,
                entity_type="user",
                entity_id=actor.id,
                now=now,
            )
        )
    logger.info("Member left org_id=%s user_id=%s", org_id, actor.id)


async def remove_member(
    uow: UnitOfWork, actor: User, *, member_id: UUID, now: datetime | None = None
) -> None:
    now = _now(now)
    org = await _require_org(uow, actor)
    _require_manager(actor)

    member = await uow.users.get_by_id(member_id)
    if member is None or member.organization_id != org.id:
        raise NotFoundError("Member not found in organization")
    if member.organization_role is OrganizationRole.OWNER:
        raise ValidationFailed("Cannot remove organization owner")

    async with uow.transaction():
        await uow.users.update(member.leave(now=now))
        await uow.activity.add(
            OrganizationActivity.record(
                organization_id=org.id,
                action=ActivityAction.MEMBER_REMOVED,
                user_id=actor.id,
                entity_type="user",
                entity_id=member.id,
                metadata={"removedBy": str(actor.id), "removedUser": str(member.id)},
                now=now,
            )
        )
    logger.info(
        "Member removed org_id=%s member_id=%s by=%s", org.id, member.id, actor.id
    )


async def update_organization(
    uow: UnitOfWork,
    actor: User,
    changes: dict[str, Any],
    *,
    now: datetime | None = None,
) -> Organization:
    """Apply *changes* (snake_case Organization field names) as the owner."""
    now = _now(now)
    org = await _require_org(uow, actor)
    if actor.organization_role is not OrganizationRole.OWNER:
        raise ForbiddenError("Only organization owner can update settings")

    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationFailed(f"Unknown settings: {', '.join(sorted(unknown))}")
    nulled = sorted(k for k in changes if k not in CLEARABLE_FIELDS and changes[k] is None)
    if nulled:
        raise ValidationFailed(f"Settings cannot be cleared: {', '.join(nulled)}")

    values = dict(changes)
    if "max_seats" in values:
        used_seats = await uow.users.count_by_org(org.id)
        if values["max_seats"] < used_seats:
            raise ValidationFailed(
                "Max seats cannot be less than current member count"
            )
    if "domains" in values:
        values["domains"] = tuple(d.strip().lower() for d in values["domains"])
    if values.get("contact_email"):
        values["contact_email"] = normalize_email(values["contact_email"])

    updated = replace(org, **values, updated_at=now)
    async with uow.transaction():
        await uow.organizations.update(updated)
        await uow.activity.add(
            OrganizationActivity.record(
                organization_id=org.id,
                action=ActivityAction.ORGANIZATION_UPDATED,
                user_id=actor.id,
                entity_type="organization",
                entity_id=org.id,
                metadata={"changes": _jsonable(changes)},
                now=now,
            )
        )
    logger.info("Organization updated org_id=%s fields=%s", org.id, sorted(changes))
    return updated


def _jsonable(changes: dict[str, Any]) -> dict[str, Any]:
    return {k: list(v) if isinstance(v, tuple) else v for k, v in changes.items()}


async def get_organization(
    uow: UnitOfWork, actor: User
) -> tuple[Organization, int] | None:
    """The caller's organization and its live member count, or None."""
    if actor.organization_id is None:
        return None
    org = await uow.organizations.get_by_id(actor.organization_id)
    if org is None:
        return None
    return org, await uow.users.count_by_org(org.id)


async def list_members(uow: UnitOfWork, actor: User) -> list[User]:
    org = await _require_org(uow, actor)
    return await uow.users.list_by_org(org.id)


async def list_pending_invitations(
    uow: UnitOfWork, actor: User, *, now: datetime | None = None
) -> list[PendingInvitation]:
    now = _now(now)
    org = await _require_org(uow, actor)

    pending = await uow.invitations.list_pending(org.id)
    stale = [i for i in pending if i.is_expired(now)]
    if stale:
        async with uow.transaction():
            for invitation in stale:
                await uow.invitations.update(invitation.expired())
        logger.info("Marked %d invitation(s) expired org_id=%s", len(stale), org.id)

    result: list[PendingInvitation] = []
    senders: dict[UUID, User | None] = {}
    for invitation in pending:
        if invitation.is_expired(now):
            continue
        sender = None
        if invitation.sender_id is not None:
            if invitation.sender_id not in senders:
                senders[invitation.sender_id] = await uow.users.get_by_id(
                    invitation.sender_id
                )
            sender = senders[invitation.sender_id]
        result.append(PendingInvitation(invitation=invitation, sender=sender))
    return result


async def cancel_invitation(
    uow: UnitOfWork, actor: User, *, invitation_id: UUID, now: datetime | None = None
) -> None:
    now = _now(now)
    org = await _require_org(uow, actor)
    _require_manager(actor)

    invitation = await uow.invitations.get_by_id(invitation_id)
    if invitation is None or invitation.organization_id != org.id:
        raise NotFoundError("Invitation not found")
    if not invitation.is_pending:
        raise ValidationFailed("Invitation is no longer pending")

    async with uow.transaction():
        await uow.invitations.update(invitation.rejected(now))
        await uow.activity.add(
            OrganizationActivity.record(
                organization_id=org.id,
                action=ActivityAction.INVITATION_CANCELLED,
                user_id=actor.id,
                entity_type="invitation",
                entity_id=invitation.id,
                metadata={"email": invitation.email},
                now=now,
            )
        )
    logger.info("Invitation cancelled org_id=%s invitation_id=%s", org.id, invitation.id)
