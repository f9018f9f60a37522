"""PostgreSQL implementation of OrgRepo."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import OrganizationRow
from app.models.organization import Organization, OrganizationStatus
from app.repos.errors import DuplicateKeyError


class PgOrgRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        stmt = select(OrganizationRow).where(OrganizationRow.id == org_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_org(row) if row is not None else None

    async def get_by_slug(self, slug: str) -> Organization | None:
        stmt = select(OrganizationRow).where(OrganizationRow.slug == slug)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_org(row) if row is not None else None

    async def add(self, org: Organization) -> None:
        self._session.add(OrganizationRow(id=org.id, slug=org.slug, **_org_values(org)))
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise DuplicateKeyError("slug already exists") from exc

    async def update(self, org: Organization) -> None:
        stmt = (
            update(OrganizationRow)
            .where(OrganizationRow.id == org.id)
            .values(**_org_values(org))
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("organization not found")


def _org_values(org: Organization) -> dict[str, Any]:
    # slug is written once on insert and never updated
    return {
        "name": org.name,
        "description": org.description,
        "contact_email": org.contact_email,
        "contact_phone": org.contact_phone,
        "website": org.website,
        "billing_email": org.billing_email,
        "max_seats": org.max_seats,
        "owner_id": org.owner_id,
        "status": org.status.value,
        "trial_ends_at": org.trial_ends_at,
        "allow_self_signup": org.allow_self_signup,
        "require_admin_approval": org.require_admin_approval,
        "domains": list(org.domains),
        "created_at": org.created_at,
        "updated_at": org.updated_at,
    }


def _row_to_org(row: OrganizationRow) -> Organization:
    return Organization(
        id=row.id,
        name=row.name,
        slug=row.slug,
        owner_id=row.owner_id,
        max_seats=row.max_seats,
        status=OrganizationStatus(row.status),
        trial_ends_at=row.trial_ends_at,
        description=row.description,
        contact_email=row.contact_email,
        contact_phone=row.contact_phone,
        website=row.website,
        billing_email=row.billing_email,
        allow_self_signup=row.allow_self_signup,
        require_admin_approval=row.require_admin_approval,
        domains=tuple(row.domains or ()),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
