"""PostgreSQL implementation of VerificationRepo."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import VerificationRow
from app.models.verification import Verification


class PgVerificationRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, verification: Verification) -> None:
        self._session.add(
            VerificationRow(
                id=verification.id,
                identifier=verification.identifier,
                value=verification.value,
                expires_at=verification.expires_at,
                created_at=verification.created_at,
            )
        )
        await self._session.flush()

    async def find_valid(
        self, identifier: str, value: str, now: datetime
    ) -> Verification | None:
        stmt = (
            select(VerificationRow)
            .where(
                VerificationRow.identifier == identifier,
                VerificationRow.value == value,
                VerificationRow.expires_at > now,
            )
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return Verification(
            id=row.id,
            identifier=row.identifier,
            value=row.value,
            expires_at=row.expires_at,
            created_at=row.created_at,
        )

    async def delete(self, verification_id: UUID) -> bool:
        stmt = delete(VerificationRow).where(VerificationRow.id == verification_id)
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def delete_by_identifier(self, identifier: str) -> int:
        stmt = delete(VerificationRow).where(VerificationRow.identifier == identifier)
        result = await self._session.execute(stmt)
        return result.rowcount
