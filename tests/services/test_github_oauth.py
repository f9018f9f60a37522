from __future__ import annotations

import asyncio

import pytest

from app.services.github_oauth import get_github_identity, github_client


class _Resp:
    def __init__(self, payload) -> None:
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self):
        return self._payload


class _FakeGitHub:
    def __init__(self, profile: dict, emails: list[dict]) -> None:
        self._responses = {"user": profile, "user/emails": emails}
        self.calls: list[str] = []

    async def get(self, path: str, token=None):
        self.calls.append(path)
        return _Resp(self._responses[path])


PROFILE = {"id": 4242, "login": "octo", "name": None, "avatar_url": "https://a/octo.png"}


def test_primary_verified_email_is_used() -> None:
    client = _FakeGitHub(
        PROFILE,
        [
            {"email": "old@example.com", "primary": False, "verified": True},
            {"email": "octo@example.com", "primary": True, "verified": True},
        ],
    )

    identity = asyncio.run(get_github_identity(client, {"access_token": "t"}))

    assert identity.subject_id == "4242"
    assert identity.email == "octo@example.com"
    assert identity.name == "octo"  # falls back to login
    assert identity.avatar_url == "https://a/octo.png"


def test_unverified_primary_is_rejected() -> None:
    client = _FakeGitHub(
        PROFILE, [{"email": "octo@example.com", "primary": True, "verified": False}]
    )
    with pytest.raises(ValueError, match="no primary verified email"):
        asyncio.run(get_github_identity(client, {"access_token": "t"}))


def test_client_absent_without_credentials() -> None:
    # The test environment sets no GITHUB_CLIENT_ID / GITHUB_CLIENT_SECRET.
    assert github_client() is None
