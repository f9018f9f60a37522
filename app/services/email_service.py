"""Outgoing email: message type, provider clients, and the three templates.

Providers follow the same Protocol pattern as the repositories:

  ResendEmailClient    POSTs {from, to, subject, html} to the Resend HTTP
                       API with httpx.  Used whenever RESEND_API_KEY is set.
  InMemoryEmailClient  appends to ``outbox``.  Used in dev/test; tests read
                       the outbox to pull codes and count sends.

Dispatch is single-shot: no retries, no queue.  A failure raises
EmailDispatchError and the caller decides what the user sees.

Codes and invitation tokens appear only in the HTML body, never in logs.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from app.core.config import SETTINGS
from app.core.metrics import EMAIL_DISPATCH
from app.services.errors import EmailDispatchError

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True, slots=True)
class EmailMessage:
    sender: str
    to: tuple[str, ...]
    subject: str
    html: str
    kind: str = "generic"  # welcome | otp | invitation


class EmailClient(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class InMemoryEmailClient:
    def __init__(self) -> None:
        self.outbox: list[EmailMessage] = []
        self.fail_next = False

    async def send(self, message: EmailMessage) -> None:
        if self.fail_next:
            self.fail_next = False
            raise EmailDispatchError("simulated provider failure")
        self.outbox.append(message)

    def clear(self) -> None:
        self.outbox.clear()
        self.fail_next = False


class ResendEmailClient:
    def __init__(self, api_key: str, *, timeout: float = 10.0) -> None:
        self._api_key = api_key
        self._timeout = timeout

    async def send(self, message: EmailMessage) -> None:
        payload = {
            "from": message.sender,
            "to": list(message.to),
            "subject": message.subject,
            "html": message.html,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    RESEND_API_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise EmailDispatchError(f"email provider error: {exc}") from exc


async def dispatch(client: EmailClient, message: EmailMessage) -> None:
    """Send *message*, counting and logging the result."""
    try:
        await client.send(message)
    except EmailDispatchError:
        EMAIL_DISPATCH.labels(kind=message.kind, result="failed").inc()
        logger.exception("Email dispatch failed kind=%s to=%s", message.kind, message.to)
        raise
    EMAIL_DISPATCH.labels(kind=message.kind, result="sent").inc()
    logger.info("Email sent kind=%s to=%s", message.kind, message.to)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

_CODE_BLOCK = (
    '<div style="background:#f4f4f4;padding:20px;text-align:center;'
    'font-size:32px;font-weight:bold;letter-spacing:5px;">{code}</div>'
)


def welcome_email(
    *, to: str, admin_name: str, organization_name: str, slug: str, code: str,
    max_seats: int,
) -> EmailMessage:
    verify_url = f"{SETTINGS.base_url}/verify-request?email={html.escape(to)}&type=organization"
    body = (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;">'
        f"<h2>Welcome to MarshalLMS, {html.escape(admin_name)}!</h2>"
        f"<p>Your organization <strong>{html.escape(organization_name)}</strong> "
        f"({html.escape(slug)}) has been created with a 14-day trial and "
        f"{max_seats} seats.</p>"
        "<p>Verify your email with this code:</p>"
        + _CODE_BLOCK.format(code=code)
        + "<p>This code will expire in 10 minutes.</p>"
        f'<p><a href="{verify_url}">Verify your email</a></p>'
        "</div>"
    )
    return EmailMessage(
        sender=SETTINGS.email_from,
        to=(to,),
        subject=f"Welcome to MarshalLMS - {organization_name}",
        html=body,
        kind="welcome",
    )


def otp_email(*, to: str, code: str) -> EmailMessage:
    body = (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;">'
        "<h2>Your MarshalLMS sign-in code</h2>"
        "<p>Your verification code is:</p>"
        + _CODE_BLOCK.format(code=code)
        + "<p>This code will expire in 10 minutes.</p>"
        "<p>If you didn't request this verification, please ignore this email.</p>"
        "</div>"
    )
    return EmailMessage(
        sender=SETTINGS.email_from,
        to=(to,),
        subject="MarshalLMS - Verify your email",
        html=body,
        kind="otp",
    )


def invitation_email(
    *, to: str, organization_name: str, inviter_name: str, token: str,
    message: str | None = None,
) -> EmailMessage:
    accept_url = f"{SETTINGS.base_url}/invitations/accept?token={token}"
    note = f"<blockquote>{html.escape(message)}</blockquote>" if message else ""
    body = (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;">'
        f"<h2>You're invited to {html.escape(organization_name)}</h2>"
        f"<p>{html.escape(inviter_name)} invited you to join their organization "
        "on MarshalLMS.</p>"
        f"{note}"
        f'<p><a href="{accept_url}">Accept invitation</a></p>'
        "<p>This invitation expires in 7 days.</p>"
        "</div>"
    )
    return EmailMessage(
        sender=SETTINGS.email_from,
        to=(to,),
        subject=f"Invitation to join {organization_name} on MarshalLMS",
        html=body,
        kind="invitation",
    )


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if SETTINGS.resend_api_key:
    email_client: EmailClient = ResendEmailClient(SETTINGS.resend_api_key)
else:
    email_client = InMemoryEmailClient()
