from __future__ import annotations

import asyncio
import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app.api.ratelimit import rate_limiter
from app.main import app
from app.models.organization import Organization, OrganizationRole
from app.models.session import Session
from app.models.user import SystemRole, User
from app.repos.unit_of_work import memory_uow
from app.services import session_service
from app.services.email_service import InMemoryEmailClient, email_client

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_store() -> None:
    """Empty every in-memory repository between tests."""
    memory_uow.clear()


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Clear rate limit windows between tests so limits don't bleed."""
    if hasattr(rate_limiter, "_windows"):
        rate_limiter._windows.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_outbox() -> None:
    if isinstance(email_client, InMemoryEmailClient):
        email_client.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def outbox() -> InMemoryEmailClient:
    assert isinstance(email_client, InMemoryEmailClient)
    return email_client


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------


def run(coro):
    """Drive a repo/service coroutine from a synchronous test."""
    return asyncio.run(coro)


def create_test_user(
    email: str = "learner@example.com",
    *,
    name: str = "Test Learner",
    role: SystemRole | None = SystemRole.USER,
    verified: bool = True,
) -> User:
    user = User.new(email=email, name=name, email_verified=verified, role=role)
    run(memory_uow.users.add(user))
    return user


def create_test_org(
    owner: User, slug: str = "test-org", *, max_seats: int = 5
) -> tuple[Organization, User]:
    """Persist an organization with *owner* joined as OWNER."""
    org = Organization.new_trial(
        name=slug.replace("-", " ").title(),
        slug=slug,
        owner_id=owner.id,
        max_seats=max_seats,
    )
    run(memory_uow.organizations.add(org))
    owner = owner.join(org.id, OrganizationRole.OWNER, now=datetime.now(UTC))
    run(memory_uow.users.update(owner))
    return org, owner


def add_test_member(
    org: Organization,
    email: str,
    role: OrganizationRole = OrganizationRole.MEMBER,
) -> User:
    user = create_test_user(email, name=email.split("@")[0])
    user = user.join(org.id, role, now=datetime.now(UTC))
    run(memory_uow.users.update(user))
    return user


def create_test_session(user: User) -> Session:
    session = Session.new(user_id=user.id, ttl=session_service.SESSION_TTL)
    run(memory_uow.sessions.add(session))
    return session


def auth_headers(user: User) -> dict[str, str]:
    """Bearer header for a fresh session belonging to *user*."""
    return {"Authorization": f"Bearer {create_test_session(user).token}"}
