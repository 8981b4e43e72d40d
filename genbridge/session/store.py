"""Session store — ABC + in-memory implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod

from genbridge.core.errors import SessionBusyError
from genbridge.session.bridge import Session, SessionState


class SessionStore(ABC):
    """Async lookup of live sessions by id."""

    @abstractmethod
    async def get(self, session_id: str) -> Session | None: ...

    @abstractmethod
    async def save(self, session: Session) -> None: ...

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Remove a session; raises SessionBusyError while it is prompting."""


class InMemorySessionStore(SessionStore):
    """Dict-backed store. Sessions hold live chat engines, so single-process only."""

    def __init__(self) -> None:
        self._store: dict[str, Session] = {}

    async def get(self, session_id: str) -> Session | None:
        return self._store.get(session_id)

    async def save(self, session: Session) -> None:
        if session.id in self._store and self._store[session.id] is not session:
            raise ValueError(f"Session '{session.id}' already exists")
        self._store[session.id] = session

    async def delete(self, session_id: str) -> None:
        session = self._store.get(session_id)
        if session is None:
            return
        if session.state is SessionState.PROMPTING:
            raise SessionBusyError(session_id)
        del self._store[session_id]
