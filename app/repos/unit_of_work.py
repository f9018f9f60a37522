"""Unit of work: one handle on every repository plus a transaction boundary.

Services never open sessions or commit on their own.  They receive a
UnitOfWork and wrap multi-row writes in ``async with uow.transaction():``.

Two implementations share the same shape:

  PgUnitOfWork        one AsyncSession per request; the transaction block
                      commits on success and rolls back on any exception.
  InMemoryUnitOfWork  process-wide dicts; the transaction block snapshots
                      every repo on entry and restores them if the block
                      raises, so a failed signup leaves no partial rows.

The FastAPI dependency ``get_uow`` picks one the same way the rest of the
app picks Postgres vs in-memory: by whether ``async_session_factory`` is
configured.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.engine import async_session_factory
from app.repos.activity_repo import ActivityRepo, InMemoryActivityRepo
from app.repos.errors import DuplicateKeyError
from app.repos.invitation_repo import InMemoryInvitationRepo, InvitationRepo
from app.repos.org_repo import InMemoryOrgRepo, OrgRepo
from app.repos.pg_activity_repo import PgActivityRepo
from app.repos.pg_invitation_repo import PgInvitationRepo
from app.repos.pg_org_repo import PgOrgRepo
from app.repos.pg_session_repo import PgSessionRepo
from app.repos.pg_user_repo import PgUserRepo
from app.repos.pg_verification_repo import PgVerificationRepo
from app.repos.session_repo import InMemorySessionRepo, SessionRepo
from app.repos.user_repo import InMemoryUserRepo, UserRepo
from app.repos.verification_repo import InMemoryVerificationRepo, VerificationRepo

logger = logging.getLogger(__name__)


class UnitOfWork(Protocol):
    users: UserRepo
    organizations: OrgRepo
    verifications: VerificationRepo
    sessions: SessionRepo
    invitations: InvitationRepo
    activity: ActivityRepo

    def transaction(self) -> AbstractAsyncContextManager[None]: ...


class InMemoryUnitOfWork:
    def __init__(self) -> None:
        self.users = InMemoryUserRepo()
        self.organizations = InMemoryOrgRepo()
        self.verifications = InMemoryVerificationRepo()
        self.sessions = InMemorySessionRepo()
        self.invitations = InMemoryInvitationRepo()
        self.activity = InMemoryActivityRepo()

    def _repos(self):
        return (
            self.users,
            self.organizations,
            self.verifications,
            self.sessions,
            self.invitations,
            self.activity,
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        saved = [repo.snapshot() for repo in self._repos()]
        try:
            yield
        except BaseException:
            for repo, state in zip(self._repos(), saved, strict=True):
                repo.restore(state)
            raise

    def clear(self) -> None:
        """Drop all rows (used between tests)."""
        for repo in self._repos():
            repo.clear()


class PgUnitOfWork:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.users = PgUserRepo(session)
        self.organizations = PgOrgRepo(session)
        self.verifications = PgVerificationRepo(session)
        self.sessions = PgSessionRepo(session)
        self.invitations = PgInvitationRepo(session)
        self.activity = PgActivityRepo(session)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            yield
        except BaseException:
            await self._session.rollback()
            raise
        try:
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            raise DuplicateKeyError(str(exc.orig)) from exc


# ---------------------------------------------------------------------------
# Module-level singleton for the in-memory path (dev and tests)
# ---------------------------------------------------------------------------

memory_uow = InMemoryUnitOfWork()


async def get_uow() -> AsyncIterator[UnitOfWork]:
    """FastAPI dependency yielding the request's unit of work."""
    if async_session_factory is None:
        yield memory_uow
        return

    async with async_session_factory() as session:
        yield PgUnitOfWork(session)
