"""PostgreSQL implementation of SessionRepo."""

from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import SessionRow
from app.models.session import Session
from app.repos.errors import DuplicateKeyError


class PgSessionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, session: Session) -> None:
        self._session.add(
            SessionRow(
                id=session.id,
                token=session.token,
                user_id=session.user_id,
                expires_at=session.expires_at,
                ip_address=session.ip_address,
                user_agent=session.user_agent,
                created_at=session.created_at,
                updated_at=session.updated_at,
            )
        )
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise DuplicateKeyError("session token already exists") from exc

    async def get_by_token(self, token: str) -> Session | None:
        stmt = select(SessionRow).where(SessionRow.token == token)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return Session(
            id=row.id,
            token=row.token,
            user_id=row.user_id,
            expires_at=row.expires_at,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    async def update(self, session: Session) -> None:
        stmt = (
            update(SessionRow)
            .where(SessionRow.token == session.token)
            .values(expires_at=session.expires_at, updated_at=session.updated_at)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("session not found")

    async def delete_by_token(self, token: str) -> bool:
        result = await self._session.execute(
            delete(SessionRow).where(SessionRow.token == token)
        )
        return result.rowcount > 0
