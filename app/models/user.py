from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID, uuid4

from app.models.organization import OrganizationRole


class SystemRole(StrEnum):
    """Platform-wide role, independent of any organization."""

    ADMIN = "admin"
    USER = "user"


@dataclass(frozen=True, slots=True)
class User:
    id: UUID
    email: str
    name: str = ""
    email_verified: bool = False
    image: str | None = None
    role: SystemRole | None = SystemRole.USER
    organization_id: UUID | None = None
    organization_role: OrganizationRole | None = None
    joined_organization_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @staticmethod
    def new(
        *,
        email: str,
        name: str = "",
        email_verified: bool = False,
        image: str | None = None,
        role: SystemRole | None = SystemRole.USER,
        now: datetime | None = None,
    ) -> User:
        now = now or datetime.now(UTC)
        return User(
            id=uuid4(),
            email=normalize_email(email),
            name=name.strip(),
            email_verified=email_verified,
            image=image,
            role=role,
            created_at=now,
            updated_at=now,
        )

    def join(
        self, organization_id: UUID, role: OrganizationRole, *, now: datetime
    ) -> User:
        return replace(
            self,
            organization_id=organization_id,
            organization_role=role,
            joined_organization_at=now,
            updated_at=now,
        )

    def leave(self, *, now: datetime) -> User:
        return replace(
            self,
            organization_id=None,
            organization_role=None,
            joined_organization_at=None,
            updated_at=now,
        )


def normalize_email(email: str) -> str:
    return email.strip().lower()
