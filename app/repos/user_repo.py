from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from app.models.user import User
from app.repos.errors import DuplicateKeyError

_EPOCH = datetime.min.replace(tzinfo=UTC)


class UserRepo(Protocol):
    async def get_by_id(self, user_id: UUID) -> User | None: ...
    async def get_by_email(self, email: str) -> User | None: ...
    async def add(self, user: User) -> None: ...
    async def update(self, user: User) -> None: ...
    async def count_by_org(self, org_id: UUID) -> int: ...
    async def list_by_org(self, org_id: UUID) -> list[User]: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, User] = {}

    async def get_by_id(self, user_id: UUID) -> User | None:
        return self._by_id.get(user_id)

    async def get_by_email(self, email: str) -> User | None:
        for user in self._by_id.values():
            if user.email == email:
                return user
        return None

    async def add(self, user: User) -> None:
        if user.id in self._by_id or await self.get_by_email(user.email):
            raise DuplicateKeyError("email already exists")
        self._by_id[user.id] = user

    async def update(self, user: User) -> None:
        if user.id not in self._by_id:
            raise KeyError("user not found")
        self._by_id[user.id] = user

    async def count_by_org(self, org_id: UUID) -> int:
        return sum(1 for u in self._by_id.values() if u.organization_id == org_id)

    async def list_by_org(self, org_id: UUID) -> list[User]:
        """Members of *org_id*, most recently joined first."""
        members = [u for u in self._by_id.values() if u.organization_id == org_id]
        members.sort(key=lambda u: u.joined_organization_at or _EPOCH, reverse=True)
        return members

    def snapshot(self) -> dict[UUID, User]:
        return dict(self._by_id)

    def restore(self, state: dict[UUID, User]) -> None:
        self._by_id = dict(state)

    def clear(self) -> None:
        self._by_id.clear()

