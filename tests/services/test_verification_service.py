from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from app.repos.unit_of_work import memory_uow
from app.services import verification_service

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
EMAIL = "owner@example.com"


def test_generate_code_is_six_digits() -> None:
    for _ in range(200):
        code = verification_service.generate_code()
        assert len(code) == 6
        assert code.isdigit()
        assert code[0] != "0"


def test_sign_in_identifier_is_prefixed() -> None:
    assert verification_service.sign_in_identifier(EMAIL) == "sign-in-otp-owner@example.com"


def test_code_valid_for_ten_minutes() -> None:
    async def go():
        v = await verification_service.issue_code(memory_uow, EMAIL, now=NOW, code="123456")
        inside = await verification_service.find_valid_code(
            memory_uow, EMAIL, "123456", now=NOW + timedelta(minutes=9, seconds=59)
        )
        at_expiry = await verification_service.find_valid_code(
            memory_uow, EMAIL, "123456", now=NOW + timedelta(minutes=10)
        )
        return v, inside, at_expiry

    v, inside, at_expiry = asyncio.run(go())
    assert v.expires_at == NOW + timedelta(minutes=10)
    assert inside == v
    assert at_expiry is None


def test_reissue_replaces_older_codes() -> None:
    async def go():
        await verification_service.issue_code(memory_uow, EMAIL, now=NOW, code="111111")
        await verification_service.issue_code(memory_uow, EMAIL, now=NOW, code="222222")
        old = await verification_service.find_valid_code(memory_uow, EMAIL, "111111", now=NOW)
        new = await verification_service.find_valid_code(memory_uow, EMAIL, "222222", now=NOW)
        return old, new

    old, new = asyncio.run(go())
    assert old is None
    assert new is not None
    assert len(memory_uow.verifications.list_by_identifier(EMAIL)) == 1


def test_identifier_families_do_not_collide() -> None:
    async def go():
        await verification_service.issue_code(memory_uow, EMAIL, now=NOW, code="111111")
        await verification_service.issue_code(
            memory_uow,
            verification_service.sign_in_identifier(EMAIL),
            now=NOW,
            code="222222",
        )
        return await verification_service.find_valid_code(
            memory_uow, EMAIL, "222222", now=NOW
        )

    assert asyncio.run(go()) is None
    assert len(memory_uow.verifications.list_by_identifier(EMAIL)) == 1


def test_consume_is_single_use() -> None:
    async def go():
        v = await verification_service.issue_code(memory_uow, EMAIL, now=NOW)
        first = await verification_service.consume_code(memory_uow, v)
        second = await verification_service.consume_code(memory_uow, v)
        again = await verification_service.find_valid_code(memory_uow, EMAIL, v.value, now=NOW)
        return first, second, again

    assert asyncio.run(go()) == (True, False, None)
