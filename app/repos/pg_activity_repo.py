"""PostgreSQL implementation of ActivityRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import OrganizationActivityRow
from app.models.activity import ActivityAction, OrganizationActivity


class PgActivityRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, activity: OrganizationActivity) -> None:
        self._session.add(
            OrganizationActivityRow(
                id=activity.id,
                organization_id=activity.organization_id,
                user_id=activity.user_id,
                action=activity.action.value,
                entity_type=activity.entity_type,
                entity_id=activity.entity_id,
                metadata_json=activity.metadata,
                created_at=activity.created_at,
            )
        )
        await self._session.flush()

    async def list_by_org(self, org_id: UUID) -> list[OrganizationActivity]:
        stmt = (
            select(OrganizationActivityRow)
            .where(OrganizationActivityRow.organization_id == org_id)
            .order_by(OrganizationActivityRow.created_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [
            OrganizationActivity(
                id=r.id,
                organization_id=r.organization_id,
                action=ActivityAction(r.action),
                user_id=r.user_id,
                entity_type=r.entity_type,
                entity_id=r.entity_id,
                metadata=dict(r.metadata_json or {}),
                created_at=r.created_at,
            )
            for r in rows
        ]
