from __future__ import annotations

import asyncio

import httpx
import pytest
from fastapi.responses import RedirectResponse
from fastapi.testclient import TestClient

from app.api import github as github_api
from app.api.github import safe_callback_url
from app.repos.unit_of_work import memory_uow
from app.services import users_service
from app.services.session_service import SESSION_COOKIE
from tests.conftest import create_test_user

SIGN_IN = "/api/auth/sign-in/github"
CALLBACK = "/api/auth/callback/github?code=abc&state=xyz"
FAILED = "/login?error=oauth_failed"


class _Resp:
    def __init__(self, payload) -> None:
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self):
        return self._payload


class _StubGitHub:
    """Stands in for the registered Authlib client."""

    def __init__(self, *, emails=None, exchange_error: Exception | None = None) -> None:
        self.emails = emails if emails is not None else [
            {"email": "Octo@Example.com", "primary": True, "verified": True}
        ]
        self.exchange_error = exchange_error

    async def authorize_redirect(self, request, redirect_uri):
        return RedirectResponse(
            f"https://github.com/login/oauth/authorize?redirect_uri={redirect_uri}",
            status_code=302,
        )

    async def authorize_access_token(self, request):
        if self.exchange_error is not None:
            raise self.exchange_error
        return {"access_token": "gho_test", "token_type": "bearer"}

    async def get(self, path: str, token=None):
        if path == "user":
            return _Resp(
                {"id": 4242, "login": "octo", "name": "Octo Cat", "avatar_url": "https://a/o.png"}
            )
        return _Resp(self.emails)


@pytest.fixture
def github(monkeypatch: pytest.MonkeyPatch) -> _StubGitHub:
    stub = _StubGitHub()
    monkeypatch.setattr(github_api, "github_client", lambda: stub)
    return stub


def _start(client: TestClient, callback_url: str = "/courses") -> None:
    resp = client.get(SIGN_IN, params={"callbackURL": callback_url}, follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"].startswith("https://github.com/login/oauth/authorize")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("/courses", "/courses"),
        ("/courses?tab=mine", "/courses?tab=mine"),
        (None, "/"),
        ("", "/"),
        ("https://evil.example/phish", "/"),
        ("//evil.example", "/"),
        ("/\\evil.example", "/"),
    ],
)
def test_safe_callback_url(raw, expected) -> None:
    assert safe_callback_url(raw) == expected


def test_sign_in_without_provider_is_404(client: TestClient) -> None:
    resp = client.get(SIGN_IN, follow_redirects=False)
    assert resp.status_code == 404
    assert resp.json() == {"error": "Provider not configured"}


def test_callback_without_provider_is_404(client: TestClient) -> None:
    resp = client.get(CALLBACK, follow_redirects=False)
    assert resp.status_code == 404


# ---- callback ----


def test_callback_creates_user_and_redirects(client: TestClient, github) -> None:
    _start(client, "/courses?tab=mine")

    resp = client.get(CALLBACK, follow_redirects=False)

    assert resp.status_code == 302
    assert resp.headers["location"] == "/courses?tab=mine"
    assert resp.cookies.get(SESSION_COOKIE)

    user = asyncio.run(memory_uow.users.get_by_email("octo@example.com"))
    assert user is not None
    assert user.email_verified is True
    assert user.name == "Octo Cat"
    assert user.image == "https://a/o.png"

    session = client.get("/api/auth/get-session").json()
    assert session["user"]["email"] == "octo@example.com"
    assert session["user"]["combinedRole"] == "individual"


def test_callback_signs_in_existing_user(client: TestClient, github) -> None:
    existing = create_test_user("octo@example.com", name="Already Here")
    _start(client)

    resp = client.get(CALLBACK, follow_redirects=False)

    assert resp.headers["location"] == "/courses"
    user = asyncio.run(memory_uow.users.get_by_email("octo@example.com"))
    assert user.id == existing.id
    assert user.name == "Already Here"


def test_callback_without_verified_email_fails(client: TestClient, github) -> None:
    github.emails = [{"email": "octo@example.com", "primary": True, "verified": False}]
    _start(client)

    resp = client.get(CALLBACK, follow_redirects=False)

    assert resp.status_code == 302
    assert resp.headers["location"] == FAILED
    assert SESSION_COOKIE not in resp.cookies
    assert asyncio.run(memory_uow.users.get_by_email("octo@example.com")) is None


def test_network_error_during_exchange_redirects(client: TestClient, github) -> None:
    github.exchange_error = httpx.ConnectError("github unreachable")
    _start(client)

    resp = client.get(CALLBACK, follow_redirects=False)

    assert resp.status_code == 302
    assert resp.headers["location"] == FAILED


def test_storage_failure_redirects(
    client: TestClient, github, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def broken(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(users_service, "find_or_create_user", broken)
    _start(client)

    resp = client.get(CALLBACK, follow_redirects=False)

    assert resp.status_code == 302
    assert resp.headers["location"] == FAILED
    assert SESSION_COOKIE not in resp.cookies
