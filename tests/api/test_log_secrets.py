"""Verification codes and session tokens must never reach log output."""

from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from app.repos.unit_of_work import memory_uow

EMAIL = "secrets-test@example.com"


def _all_log_text(caplog: pytest.LogCaptureFixture) -> str:
    return " ".join(r.getMessage() for r in caplog.records)


def test_signup_does_not_log_verification_code(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.DEBUG):
        client.post(
            "/api/org-signup",
            json={
                "organizationName": "Secret Org",
                "organizationSlug": "secret-org",
                "adminName": "Sam Secret",
                "adminEmail": EMAIL,
                "maxSeats": 3,
                "acceptTerms": True,
            },
        )

    [code] = memory_uow.verifications.list_by_identifier(EMAIL)
    assert code.value not in _all_log_text(caplog), "Verification code found in logs!"


def test_otp_sign_in_does_not_log_code_or_token(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.DEBUG):
        client.post(
            "/api/auth/email-otp/send-verification-otp",
            json={"email": EMAIL, "type": "sign-in"},
        )
        [code] = memory_uow.verifications.list_by_identifier(f"sign-in-otp-{EMAIL}")
        resp = client.post(
            "/api/auth/sign-in/email-otp", json={"email": EMAIL, "otp": code.value}
        )
        client.get("/api/auth/get-session")
        client.post("/api/auth/sign-out")

    token = resp.json()["token"]
    text = _all_log_text(caplog)
    assert code.value not in text, "OTP found in logs!"
    assert token not in text, "Session token found in logs!"
