from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4


class ActivityAction(StrEnum):
    ORGANIZATION_CREATED = "organization_created"
    ORGANIZATION_UPDATED = "organization_updated"
    MEMBER_INVITED = "member_invited"
    MEMBER_JOINED = "member_joined"
    MEMBER_LEFT = "member_left"
    MEMBER_REMOVED = "member_removed"
    INVITATION_CANCELLED = "invitation_cancelled"


@dataclass(frozen=True, slots=True)
class OrganizationActivity:
    """One append-only audit entry for an organization."""

    id: UUID
    organization_id: UUID
    action: ActivityAction
    user_id: UUID | None = None
    entity_type: str | None = None  # organization|invitation|user
    entity_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    @staticmethod
    def record(
        *,
        organization_id: UUID,
        action: ActivityAction,
        user_id: UUID | None = None,
        entity_type: str | None = None,
        entity_id: UUID | str | None = None,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> OrganizationActivity:
        return OrganizationActivity(
            id=uuid4(),
            organization_id=organization_id,
            action=action,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            metadata=dict(metadata or {}),
            created_at=now or datetime.now(UTC),
        )
