from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.activity import OrganizationActivity


class ActivityRepo(Protocol):
    """Append-only: there is no update or delete."""

    async def add(self, activity: OrganizationActivity) -> None: ...
    async def list_by_org(self, org_id: UUID) -> list[OrganizationActivity]: ...


class InMemoryActivityRepo:
    def __init__(self) -> None:
        self._entries: list[OrganizationActivity] = []

    async def add(self, activity: OrganizationActivity) -> None:
        self._entries.append(activity)

    async def list_by_org(self, org_id: UUID) -> list[OrganizationActivity]:
        return [a for a in reversed(self._entries) if a.organization_id == org_id]

    def snapshot(self) -> list[OrganizationActivity]:
        return list(self._entries)

    def restore(self, state: list[OrganizationActivity]) -> None:
        self._entries = list(state)

    def clear(self) -> None:
        self._entries.clear()
