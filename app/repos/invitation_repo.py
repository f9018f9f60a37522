from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from app.models.invitation import OrganizationInvitation
from app.repos.errors import DuplicateKeyError

_EPOCH = datetime.min.replace(tzinfo=UTC)


class InvitationRepo(Protocol):
    async def add(self, invitation: OrganizationInvitation) -> None: ...
    async def get_by_id(self, invitation_id: UUID) -> OrganizationInvitation | None: ...
    async def get_by_token(self, token: str) -> OrganizationInvitation | None: ...
    async def find_pending(
        self, org_id: UUID, email: str
    ) -> OrganizationInvitation | None: ...
    async def list_pending(self, org_id: UUID) -> list[OrganizationInvitation]: ...
    async def update(self, invitation: OrganizationInvitation) -> None: ...


class InMemoryInvitationRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, OrganizationInvitation] = {}

    async def add(self, invitation: OrganizationInvitation) -> None:
        for existing in self._by_id.values():
            if existing.token == invitation.token:
                raise DuplicateKeyError("invitation token already exists")
            if (
                invitation.is_pending
                and existing.is_pending
                and existing.organization_id == invitation.organization_id
                and existing.email == invitation.email
            ):
                raise DuplicateKeyError("pending invitation already exists")
        self._by_id[invitation.id] = invitation

    async def get_by_id(self, invitation_id: UUID) -> OrganizationInvitation | None:
        return self._by_id.get(invitation_id)

    async def get_by_token(self, token: str) -> OrganizationInvitation | None:
        for invitation in self._by_id.values():
            if invitation.token == token:
                return invitation
        return None

    async def find_pending(
        self, org_id: UUID, email: str
    ) -> OrganizationInvitation | None:
        for invitation in self._by_id.values():
            if (
                invitation.is_pending
                and invitation.organization_id == org_id
                and invitation.email == email
            ):
                return invitation
        return None

    async def list_pending(self, org_id: UUID) -> list[OrganizationInvitation]:
        """PENDING rows for *org_id*, newest first.  Expiry is the caller's job."""
        rows = [
            i
            for i in self._by_id.values()
            if i.is_pending and i.organization_id == org_id
        ]
        rows.sort(key=lambda i: i.created_at or _EPOCH, reverse=True)
        return rows

    async def update(self, invitation: OrganizationInvitation) -> None:
        if invitation.id not in self._by_id:
            raise KeyError("invitation not found")
        self._by_id[invitation.id] = invitation

    def snapshot(self) -> dict[UUID, OrganizationInvitation]:
        return dict(self._by_id)

    def restore(self, state: dict[UUID, OrganizationInvitation]) -> None:
        self._by_id = dict(state)

    def clear(self) -> None:
        self._by_id.clear()
