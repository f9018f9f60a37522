from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from uuid import UUID, uuid4

from app.models.organization import OrganizationRole

INVITATION_TTL = timedelta(days=7)


class InvitationStatus(StrEnum):
    """PENDING moves to exactly one of the other three, which are terminal."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True, slots=True)
class OrganizationInvitation:
    id: UUID
    organization_id: UUID
    email: str
    role: OrganizationRole
    token: str
    expires_at: datetime
    status: InvitationStatus = InvitationStatus.PENDING
    sender_id: UUID | None = None
    message: str | None = None
    course_ids: tuple[str, ...] = field(default_factory=tuple)
    created_at: datetime | None = None
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None

    @staticmethod
    def new(
        *,
        organization_id: UUID,
        email: str,
        role: OrganizationRole,
        sender_id: UUID,
        message: str | None = None,
        course_ids: tuple[str, ...] = (),
        now: datetime | None = None,
    ) -> OrganizationInvitation:
        now = now or datetime.now(UTC)
        return OrganizationInvitation(
            id=uuid4(),
            organization_id=organization_id,
            email=email,
            role=role,
            token=str(uuid4()),
            expires_at=now + INVITATION_TTL,
            sender_id=sender_id,
            message=message,
            course_ids=course_ids,
            created_at=now,
        )

    @property
    def is_pending(self) -> bool:
        return self.status is InvitationStatus.PENDING

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def accepted(self, now: datetime) -> OrganizationInvitation:
        return replace(self, status=InvitationStatus.ACCEPTED, accepted_at=now)

    def rejected(self, now: datetime) -> OrganizationInvitation:
        return replace(self, status=InvitationStatus.REJECTED, rejected_at=now)

    def expired(self) -> OrganizationInvitation:
        return replace(self, status=InvitationStatus.EXPIRED)
