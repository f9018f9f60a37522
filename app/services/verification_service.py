"""One-time numeric codes.

A code is six digits, stored as a Verification row under an identifier
and valid for ten minutes.  Two identifier families exist:

  <email>               organization-signup email verification
  sign-in-otp-<email>   passwordless sign-in

Issuing a code deletes every older code under the same identifier, so
only the most recent email a user received works.

Lookups never distinguish "wrong", "expired" and "already used": the
caller only learns that no valid row matched.
"""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime, timedelta

from app.models.verification import Verification
from app.repos.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

CODE_TTL = timedelta(minutes=10)
CODE_LENGTH = 6

SIGN_IN_PREFIX = "sign-in-otp-"


def generate_code() -> str:
    """Uniform six-digit code with no leading zero."""
    return str(secrets.randbelow(900_000) + 100_000)


def sign_in_identifier(email: str) -> str:
    return f"{SIGN_IN_PREFIX}{email}"


async def issue_code(
    uow: UnitOfWork,
    identifier: str,
    *,
    now: datetime | None = None,
    code: str | None = None,
) -> Verification:
    """Persist a fresh code for *identifier*.

    Must run inside the caller's ``uow.transaction()`` so the code is
    committed together with whatever it verifies.
    """
    now = now or datetime.now(UTC)
    replaced = await uow.verifications.delete_by_identifier(identifier)
    verification = Verification.new(
        identifier=identifier,
        value=code or generate_code(),
        ttl=CODE_TTL,
        now=now,
    )
    await uow.verifications.add(verification)
    if replaced:
        logger.debug("Replaced %d earlier code(s)", replaced)
    return verification


async def find_valid_code(
    uow: UnitOfWork, identifier: str, value: str, *, now: datetime | None = None
) -> Verification | None:
    now = now or datetime.now(UTC)
    return await uow.verifications.find_valid(identifier, value, now)


async def consume_code(uow: UnitOfWork, verification: Verification) -> bool:
    """Delete the row; False if a concurrent exchange already consumed it."""
    return await uow.verifications.delete(verification.id)
