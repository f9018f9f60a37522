"""GitHub sign-in through Authlib's Starlette client.

The provider is registered only when both GITHUB_CLIENT_ID and
GITHUB_CLIENT_SECRET are set; otherwise ``github_client()`` returns None
and the sign-in routes answer 404.

The OAuth ``state`` (CSRF) lives in Starlette's SessionMiddleware cookie
between the authorize redirect and the callback.  Authlib checks it; we
never read state from the query string ourselves.

Only a primary, verified GitHub email is accepted.  An unverified address
could have been added to someone else's GitHub account by an attacker, and
we key accounts by email.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from authlib.integrations.starlette_client import OAuth

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

oauth = OAuth()

if SETTINGS.github_enabled:
    oauth.register(
        name="github",
        client_id=SETTINGS.github_client_id,
        client_secret=SETTINGS.github_client_secret,
        access_token_url="https://github.com/login/oauth/access_token",  # noqa: S106
        authorize_url="https://github.com/login/oauth/authorize",
        api_base_url="https://api.github.com/",
        client_kwargs={"scope": "read:user user:email"},
    )
    logger.info("GitHub OAuth provider registered")


@dataclass(frozen=True, slots=True)
class GitHubIdentity:
    subject_id: str
    email: str
    name: str
    avatar_url: str | None


def github_client():
    """The registered Authlib client, or None when GitHub is not configured."""
    return oauth.create_client("github")


async def get_github_identity(client, token: dict) -> GitHubIdentity:
    """Read profile and primary verified email for an access token.

    Raises ValueError when GitHub reports no primary verified email.
    """
    resp = await client.get("user", token=token)
    resp.raise_for_status()
    profile = resp.json()

    emails_resp = await client.get("user/emails", token=token)
    emails_resp.raise_for_status()

    email: str | None = None
    for entry in emails_resp.json():
        if entry.get("primary") and entry.get("verified"):
            email = entry["email"]
            break
    if not email:
        raise ValueError("GitHub OAuth: no primary verified email found")

    return GitHubIdentity(
        subject_id=str(profile["id"]),
        email=email,
        name=profile.get("name") or profile.get("login") or "",
        avatar_url=profile.get("avatar_url"),
    )
