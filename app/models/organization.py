from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from uuid import UUID, uuid4

TRIAL_PERIOD = timedelta(days=14)
DEFAULT_MAX_SEATS = 5
MAX_SEATS_LIMIT = 1000
DESCRIPTION_MAX_LENGTH = 500


class OrganizationRole(StrEnum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"

    @property
    def can_manage_members(self) -> bool:
        return self in (OrganizationRole.OWNER, OrganizationRole.ADMIN)


class OrganizationStatus(StrEnum):
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True, slots=True)
class Organization:
    id: UUID
    name: str
    slug: str
    owner_id: UUID
    max_seats: int = DEFAULT_MAX_SEATS
    status: OrganizationStatus = OrganizationStatus.TRIAL
    trial_ends_at: datetime | None = None
    description: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    website: str | None = None
    billing_email: str | None = None
    allow_self_signup: bool = False
    require_admin_approval: bool = True
    domains: tuple[str, ...] = field(default_factory=tuple)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @staticmethod
    def new_trial(
        *,
        name: str,
        slug: str,
        owner_id: UUID,
        max_seats: int = DEFAULT_MAX_SEATS,
        description: str | None = None,
        contact_email: str | None = None,
        contact_phone: str | None = None,
        website: str | None = None,
        billing_email: str | None = None,
        now: datetime | None = None,
    ) -> Organization:
        """New organization in its trial window, owned by *owner_id*."""
        now = now or datetime.now(UTC)
        return Organization(
            id=uuid4(),
            name=name,
            slug=slug,
            owner_id=owner_id,
            max_seats=max_seats,
            status=OrganizationStatus.TRIAL,
            trial_ends_at=now + TRIAL_PERIOD,
            description=description,
            contact_email=contact_email,
            contact_phone=contact_phone,
            website=website,
            billing_email=billing_email,
            created_at=now,
            updated_at=now,
        )
