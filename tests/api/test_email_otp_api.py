"""Passwordless sign-in: code dispatch, exchange and the send limit."""

from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from app.repos.unit_of_work import memory_uow
from app.services.session_service import SESSION_COOKIE
from tests.conftest import create_test_user

SEND = "/api/auth/email-otp/send-verification-otp"
SIGN_IN = "/api/auth/sign-in/email-otp"


def _sign_in_code(email: str) -> str:
    [code] = memory_uow.verifications.list_by_identifier(f"sign-in-otp-{email}")
    return code.value


def test_send_sign_in_code(client: TestClient, outbox) -> None:
    resp = client.post(SEND, json={"email": "Learner@Example.com", "type": "sign-in"})

    assert resp.status_code == 200
    assert resp.json() == {"success": True}
    assert len(outbox.outbox) == 1
    assert outbox.outbox[0].to == ("learner@example.com",)
    assert _sign_in_code("learner@example.com") in outbox.outbox[0].html


def test_sign_in_creates_account_and_session(client: TestClient) -> None:
    client.post(SEND, json={"email": "new@example.com", "type": "sign-in"})
    code = _sign_in_code("new@example.com")

    resp = client.post(SIGN_IN, json={"email": "new@example.com", "otp": code})

    assert resp.status_code == 200
    body = resp.json()
    assert body["token"]
    assert body["user"]["email"] == "new@example.com"
    assert body["user"]["emailVerified"] is True
    assert body["user"]["combinedRole"] == "individual"
    assert resp.cookies.get(SESSION_COOKIE) == body["token"]

    user = asyncio.run(memory_uow.users.get_by_email("new@example.com"))
    assert user is not None


def test_sign_in_existing_member_sees_organization(client: TestClient) -> None:
    from tests.conftest import add_test_member, create_test_org

    owner = create_test_user("owner@example.com")
    org, _ = create_test_org(owner, "acme")
    add_test_member(org, "member@example.com")
    client.post(SEND, json={"email": "member@example.com", "type": "sign-in"})

    resp = client.post(
        SIGN_IN,
        json={"email": "member@example.com", "otp": _sign_in_code("member@example.com")},
    )

    user = resp.json()["user"]
    assert user["combinedRole"] == "org_member"
    assert user["organization"]["usedSeats"] == 2


def test_wrong_otp_is_rejected(client: TestClient) -> None:
    client.post(SEND, json={"email": "new@example.com", "type": "sign-in"})
    code = _sign_in_code("new@example.com")
    wrong = "000000" if code != "000000" else "111111"

    resp = client.post(SIGN_IN, json={"email": "new@example.com", "otp": wrong})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid or expired verification code"}
    assert asyncio.run(memory_uow.users.get_by_email("new@example.com")) is None


def test_otp_is_single_use(client: TestClient) -> None:
    client.post(SEND, json={"email": "new@example.com", "type": "sign-in"})
    code = _sign_in_code("new@example.com")
    body = {"email": "new@example.com", "otp": code}

    assert client.post(SIGN_IN, json=body).status_code == 200
    assert client.post(SIGN_IN, json=body).status_code == 400


def test_fourth_send_within_a_minute_is_limited(client: TestClient, outbox) -> None:
    for _ in range(3):
        ok = client.post(SEND, json={"email": "a@example.com", "type": "sign-in"})
        assert ok.status_code == 200

    resp = client.post(SEND, json={"email": "a@example.com", "type": "sign-in"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Too many code requests. Please try again later."}
    assert int(resp.headers["retry-after"]) >= 1
    assert len(outbox.outbox) == 3


def test_verification_resend_for_unverified_user(client: TestClient, outbox) -> None:
    create_test_user("owner@example.com", verified=False)

    resp = client.post(SEND, json={"email": "owner@example.com", "type": "email-verification"})

    assert resp.json() == {"success": True}
    [code] = memory_uow.verifications.list_by_identifier("owner@example.com")
    assert code.value in outbox.outbox[0].html


def test_verification_resend_is_silent_for_unknown_or_verified(
    client: TestClient, outbox
) -> None:
    create_test_user("done@example.com", verified=True)

    for email in ("ghost@example.com", "done@example.com"):
        resp = client.post(SEND, json={"email": email, "type": "email-verification"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

    assert outbox.outbox == []


def test_provider_failure_is_502(client: TestClient, outbox) -> None:
    outbox.fail_next = True
    resp = client.post(SEND, json={"email": "a@example.com", "type": "sign-in"})
    assert resp.status_code == 502
    assert resp.json() == {"error": "Failed to send verification code"}


def test_unknown_type_is_invalid_input(client: TestClient) -> None:
    resp = client.post(SEND, json={"email": "a@example.com", "type": "magic"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid input data"}
