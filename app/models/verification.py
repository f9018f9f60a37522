from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Verification:
    """A one-time code bound to an identifier (usually an email).

    A row that is still valid authorizes exactly one state change and is
    deleted by whoever consumes it.
    """

    id: UUID
    identifier: str
    value: str
    expires_at: datetime
    created_at: datetime | None = None

    @staticmethod
    def new(
        *, identifier: str, value: str, ttl: timedelta, now: datetime | None = None
    ) -> Verification:
        now = now or datetime.now(UTC)
        return Verification(
            id=uuid4(),
            identifier=identifier,
            value=value,
            expires_at=now + ttl,
            created_at=now,
        )

    def is_valid(self, now: datetime) -> bool:
        return self.expires_at > now
