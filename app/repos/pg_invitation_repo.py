"""PostgreSQL implementation of InvitationRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import OrganizationInvitationRow
from app.models.invitation import InvitationStatus, OrganizationInvitation
from app.models.organization import OrganizationRole
from app.repos.errors import DuplicateKeyError

_Row = OrganizationInvitationRow


class PgInvitationRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, invitation: OrganizationInvitation) -> None:
        self._session.add(
            _Row(
                id=invitation.id,
                organization_id=invitation.organization_id,
                email=invitation.email,
                role=invitation.role.value,
                status=invitation.status.value,
                token=invitation.token,
                message=invitation.message,
                sender_id=invitation.sender_id,
                course_ids=list(invitation.course_ids),
                expires_at=invitation.expires_at,
                created_at=invitation.created_at,
                accepted_at=invitation.accepted_at,
                rejected_at=invitation.rejected_at,
            )
        )
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise DuplicateKeyError("pending invitation already exists") from exc

    async def get_by_id(self, invitation_id: UUID) -> OrganizationInvitation | None:
        row = (
            await self._session.execute(select(_Row).where(_Row.id == invitation_id))
        ).scalar_one_or_none()
        return _row_to_invitation(row) if row is not None else None

    async def get_by_token(self, token: str) -> OrganizationInvitation | None:
        row = (
            await self._session.execute(select(_Row).where(_Row.token == token))
        ).scalar_one_or_none()
        return _row_to_invitation(row) if row is not None else None

    async def find_pending(
        self, org_id: UUID, email: str
    ) -> OrganizationInvitation | None:
        stmt = select(_Row).where(
            _Row.organization_id == org_id,
            _Row.email == email,
            _Row.status == InvitationStatus.PENDING.value,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_invitation(row) if row is not None else None

    async def list_pending(self, org_id: UUID) -> list[OrganizationInvitation]:
        stmt = (
            select(_Row)
            .where(
                _Row.organization_id == org_id,
                _Row.status == InvitationStatus.PENDING.value,
            )
            .order_by(_Row.created_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_invitation(r) for r in rows]

    async def update(self, invitation: OrganizationInvitation) -> None:
        # Only the lifecycle columns change after creation.
        stmt = (
            update(_Row)
            .where(_Row.id == invitation.id)
            .values(
                status=invitation.status.value,
                accepted_at=invitation.accepted_at,
                rejected_at=invitation.rejected_at,
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("invitation not found")


def _row_to_invitation(row: OrganizationInvitationRow) -> OrganizationInvitation:
    return OrganizationInvitation(
        id=row.id,
        organization_id=row.organization_id,
        email=row.email,
        role=OrganizationRole(row.role),
        token=row.token,
        expires_at=row.expires_at,
        status=InvitationStatus(row.status),
        sender_id=row.sender_id,
        message=row.message,
        course_ids=tuple(row.course_ids or ()),
        created_at=row.created_at,
        accepted_at=row.accepted_at,
        rejected_at=row.rejected_at,
    )
