"""Compose the per-request SessionUser from a User and its organization.

``compose_session_context`` is pure: given the user row, the organization
row and the live member count it returns the SessionUser every endpoint
authorizes against.  ``load_session_context`` does the two lookups and
runs on every authenticated request (see app.api.dependencies), so seat
counts and roles are never stale, at the price of one or two extra
queries per request.

Combined role priority:
  1. system role ``admin``                       -> admin
  2. organization role OWNER / ADMIN / MEMBER    -> org_owner / org_admin / org_member
  3. neither                                     -> individual
"""

from __future__ import annotations

from typing import assert_never

from app.models.organization import Organization, OrganizationRole
from app.models.session_user import CombinedRole, OrganizationContext, SessionUser
from app.models.user import SystemRole, User
from app.repos.unit_of_work import UnitOfWork


def derive_combined_role(
    system_role: SystemRole | None, org_role: OrganizationRole | None
) -> CombinedRole:
    if system_role is SystemRole.ADMIN:
        return CombinedRole.ADMIN

    match org_role:
        case OrganizationRole.OWNER:
            return CombinedRole.ORG_OWNER
        case OrganizationRole.ADMIN:
            return CombinedRole.ORG_ADMIN
        case OrganizationRole.MEMBER:
            return CombinedRole.ORG_MEMBER
        case None:
            return CombinedRole.INDIVIDUAL
        case _:
            assert_never(org_role)


def compose_session_context(
    user: User,
    organization: Organization | None = None,
    used_seats: int = 0,
) -> SessionUser:
    # A dangling organization_id (org deleted) counts as no organization.
    org_role = user.organization_role if organization is not None else None

    org_context = None
    if organization is not None:
        org_context = OrganizationContext(
            id=organization.id,
            name=organization.name,
            slug=organization.slug,
            role=org_role,
            max_seats=organization.max_seats,
            used_seats=used_seats,
            status=organization.status,
            trial_ends_at=organization.trial_ends_at,
        )

    return SessionUser(
        id=user.id,
        email=user.email,
        name=user.name,
        email_verified=user.email_verified,
        role=user.role,
        combined_role=derive_combined_role(user.role, org_role),
        image=user.image,
        organization_id=organization.id if organization is not None else None,
        organization=org_context,
    )


async def load_session_context(uow: UnitOfWork, user: User) -> SessionUser:
    if user.organization_id is None:
        return compose_session_context(user)

    organization = await uow.organizations.get_by_id(user.organization_id)
    if organization is None:
        return compose_session_context(user)
    used_seats = await uow.users.count_by_org(organization.id)
    return compose_session_context(user, organization, used_seats)
