from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from uuid import UUID

from app.models.organization import OrganizationRole, OrganizationStatus
from app.models.user import SystemRole


class CombinedRole(StrEnum):
    """Single label merging the system role and the organization role."""

    ADMIN = "admin"
    ORG_OWNER = "org_owner"
    ORG_ADMIN = "org_admin"
    ORG_MEMBER = "org_member"
    INDIVIDUAL = "individual"


@dataclass(frozen=True, slots=True)
class OrganizationContext:
    id: UUID
    name: str
    slug: str
    role: OrganizationRole | None
    max_seats: int
    used_seats: int
    status: OrganizationStatus
    trial_ends_at: datetime | None = None

    @property
    def seats_available(self) -> int:
        return max(self.max_seats - self.used_seats, 0)


@dataclass(frozen=True, slots=True)
class SessionUser:
    """Authenticated identity carried through a request.

    Built from a User row plus its organization by
    ``compose_session_context``.  Endpoints receive this rather than the
    raw row so authorization checks read one derived ``combined_role``.

    Organization fields are None for individual learners.
    """

    id: UUID
    email: str
    name: str
    email_verified: bool
    role: SystemRole | None
    combined_role: CombinedRole
    image: str | None = None
    organization_id: UUID | None = None
    organization: OrganizationContext | None = None

    def is_platform_admin(self) -> bool:
        return self.combined_role is CombinedRole.ADMIN

    def has_org_role(self, *roles: OrganizationRole) -> bool:
        return self.organization is not None and self.organization.role in roles
