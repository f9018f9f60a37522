from __future__ import annotations

from typing import Protocol

from app.models.session import Session
from app.repos.errors import DuplicateKeyError


class SessionRepo(Protocol):
    async def add(self, session: Session) -> None: ...
    async def get_by_token(self, token: str) -> Session | None: ...
    async def update(self, session: Session) -> None: ...
    async def delete_by_token(self, token: str) -> bool: ...


class InMemorySessionRepo:
    def __init__(self) -> None:
        self._by_token: dict[str, Session] = {}

    async def add(self, session: Session) -> None:
        if session.token in self._by_token:
            raise DuplicateKeyError("session token already exists")
        self._by_token[session.token] = session

    async def get_by_token(self, token: str) -> Session | None:
        return self._by_token.get(token)

    async def update(self, session: Session) -> None:
        if session.token not in self._by_token:
            raise KeyError("session not found")
        self._by_token[session.token] = session

    async def delete_by_token(self, token: str) -> bool:
        return self._by_token.pop(token, None) is not None

    def snapshot(self) -> dict[str, Session]:
        return dict(self._by_token)

    def restore(self, state: dict[str, Session]) -> None:
        self._by_token = dict(state)

    def clear(self) -> None:
        self._by_token.clear()
