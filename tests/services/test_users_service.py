from __future__ import annotations

import asyncio

from app.models.user import SystemRole
from app.repos.unit_of_work import memory_uow
from app.services import users_service
from tests.conftest import create_test_user


def test_find_or_create_creates_verified_user() -> None:
    user = asyncio.run(
        users_service.find_or_create_user(memory_uow, "  New@Example.com ", name="Newt")
    )

    assert user.email == "new@example.com"
    assert user.name == "Newt"
    assert user.email_verified is True
    assert user.role is SystemRole.USER
    assert asyncio.run(memory_uow.users.get_by_email("new@example.com")) == user


def test_find_or_create_returns_existing_user() -> None:
    existing = create_test_user("ada@example.com", name="Ada")

    found = asyncio.run(users_service.find_or_create_user(memory_uow, "ADA@example.com"))

    assert found.id == existing.id
    assert found.name == "Ada"


def test_find_or_create_verifies_and_fills_blank_profile() -> None:
    existing = create_test_user("ada@example.com", name="", verified=False)

    found = asyncio.run(
        users_service.find_or_create_user(
            memory_uow, "ada@example.com", name="Ada L", image="https://img/ada.png"
        )
    )

    assert found.id == existing.id
    assert found.email_verified is True
    assert found.name == "Ada L"
    assert found.image == "https://img/ada.png"


def test_mark_email_verified_is_idempotent() -> None:
    user = create_test_user("v@example.com", verified=False)

    verified = asyncio.run(users_service.mark_email_verified(memory_uow, user))
    again = asyncio.run(users_service.mark_email_verified(memory_uow, verified))

    assert verified.email_verified is True
    assert again is verified
