from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from app.models.verification import Verification


class VerificationRepo(Protocol):
    async def add(self, verification: Verification) -> None: ...
    async def find_valid(
        self, identifier: str, value: str, now: datetime
    ) -> Verification | None: ...
    async def delete(self, verification_id: UUID) -> bool: ...
    async def delete_by_identifier(self, identifier: str) -> int: ...


class InMemoryVerificationRepo:
    def __init__(self) -> None:
        self._store: dict[UUID, Verification] = {}

    async def add(self, verification: Verification) -> None:
        self._store[verification.id] = verification

    async def find_valid(
        self, identifier: str, value: str, now: datetime
    ) -> Verification | None:
        for v in self._store.values():
            if v.identifier == identifier and v.value == value and v.is_valid(now):
                return v
        return None

    async def delete(self, verification_id: UUID) -> bool:
        return self._store.pop(verification_id, None) is not None

    async def delete_by_identifier(self, identifier: str) -> int:
        doomed = [k for k, v in self._store.items() if v.identifier == identifier]
        for key in doomed:
            del self._store[key]
        return len(doomed)

    def list_by_identifier(self, identifier: str) -> list[Verification]:
        """Test helper; not part of the protocol."""
        return [v for v in self._store.values() if v.identifier == identifier]

    def snapshot(self) -> dict[UUID, Verification]:
        return dict(self._store)

    def restore(self, state: dict[UUID, Verification]) -> None:
        self._store = dict(state)

    def clear(self) -> None:
        self._store.clear()
