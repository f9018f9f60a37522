from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Session:
    id: UUID
    token: str
    user_id: UUID
    expires_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @staticmethod
    def new(
        *,
        user_id: UUID,
        ttl: timedelta,
        ip_address: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> Session:
        now = now or datetime.now(UTC)
        return Session(
            id=uuid4(),
            token=secrets.token_urlsafe(32),
            user_id=user_id,
            expires_at=now + ttl,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
            updated_at=now,
        )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now
