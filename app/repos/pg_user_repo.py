"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import UserRow
from app.models.organization import OrganizationRole
from app.models.user import SystemRole, User
from app.repos.errors import DuplicateKeyError


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        stmt = select(UserRow).where(UserRow.id == user_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_user(row)

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(UserRow).where(UserRow.email == email)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_user(row)

    async def add(self, user: User) -> None:
        self._session.add(UserRow(id=user.id, **_user_values(user)))
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise DuplicateKeyError("email already exists") from exc

    async def update(self, user: User) -> None:
        stmt = update(UserRow).where(UserRow.id == user.id).values(**_user_values(user))
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("user not found")

    async def count_by_org(self, org_id: UUID) -> int:
        stmt = select(func.count()).select_from(UserRow).where(
            UserRow.organization_id == org_id
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def list_by_org(self, org_id: UUID) -> list[User]:
        stmt = (
            select(UserRow)
            .where(UserRow.organization_id == org_id)
            .order_by(UserRow.joined_organization_at.desc().nulls_last())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_user(r) for r in rows]


def _user_values(user: User) -> dict[str, Any]:
    return {
        "email": user.email,
        "name": user.name,
        "email_verified": user.email_verified,
        "image": user.image,
        "role": user.role.value if user.role else None,
        "organization_id": user.organization_id,
        "organization_role": (
            user.organization_role.value if user.organization_role else None
        ),
        "joined_organization_at": user.joined_organization_at,
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }


def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name or "",
        email_verified=row.email_verified,
        image=row.image,
        role=SystemRole(row.role) if row.role else None,
        organization_id=row.organization_id,
        organization_role=(
            OrganizationRole(row.organization_role) if row.organization_role else None
        ),
        joined_organization_at=row.joined_organization_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
