from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, datetime

from app.models.user import SystemRole, User, normalize_email
from app.repos.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


async def find_or_create_user(
    uow: UnitOfWork,
    email: str,
    *,
    name: str = "",
    image: str | None = None,
    now: datetime | None = None,
) -> User:
    """Load the user for a proven email address, creating one if needed.

    Callers only reach this after the address has been proven (OTP
    consumed, GitHub primary verified email), so the returned user is
    always marked verified.  Must run inside ``uow.transaction()``.
    """
    now = now or datetime.now(UTC)
    email = normalize_email(email)

    user = await uow.users.get_by_email(email)
    if user is None:
        user = User.new(
            email=email,
            name=name,
            email_verified=True,
            image=image,
            role=SystemRole.USER,
            now=now,
        )
        await uow.users.add(user)
        logger.info("Created user id=%s", user.id)
        return user

    changes: dict = {}
    if not user.email_verified:
        changes["email_verified"] = True
    if image and not user.image:
        changes["image"] = image
    if name and not user.name:
        changes["name"] = name.strip()
    if changes:
        user = replace(user, **changes, updated_at=now)
        await uow.users.update(user)
    return user


async def mark_email_verified(
    uow: UnitOfWork, user: User, *, now: datetime | None = None
) -> User:
    if user.email_verified:
        return user
    user = replace(user, email_verified=True, updated_at=now or datetime.now(UTC))
    await uow.users.update(user)
    return user
