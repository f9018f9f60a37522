from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.organization import Organization
from app.repos.errors import DuplicateKeyError


class OrgRepo(Protocol):
    async def get_by_id(self, org_id: UUID) -> Organization | None: ...
    async def get_by_slug(self, slug: str) -> Organization | None: ...
    async def add(self, org: Organization) -> None: ...
    async def update(self, org: Organization) -> None: ...


class InMemoryOrgRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Organization] = {}
        self._by_slug: dict[str, Organization] = {}

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        return self._by_id.get(org_id)

    async def get_by_slug(self, slug: str) -> Organization | None:
        return self._by_slug.get(slug)

    async def add(self, org: Organization) -> None:
        if org.slug in self._by_slug:
            raise DuplicateKeyError("slug already exists")
        self._by_id[org.id] = org
        self._by_slug[org.slug] = org

    async def update(self, org: Organization) -> None:
        existing = self._by_id.get(org.id)
        if existing is None:
            raise KeyError("organization not found")
        if existing.slug != org.slug:
            raise ValueError("slug is immutable")
        self._by_id[org.id] = org
        self._by_slug[org.slug] = org

    def snapshot(self) -> tuple[dict[UUID, Organization], dict[str, Organization]]:
        return dict(self._by_id), dict(self._by_slug)

    def restore(
        self, state: tuple[dict[UUID, Organization], dict[str, Organization]]
    ) -> None:
        by_id, by_slug = state
        self._by_id = dict(by_id)
        self._by_slug = dict(by_slug)

    def clear(self) -> None:
        self._by_id.clear()
        self._by_slug.clear()
