"""BridgeAgent — routes protocol requests to the session they name."""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from genbridge.core.config import BridgeConfig
from genbridge.core.errors import SessionNotFoundError
from genbridge.session.bridge import Session
from genbridge.session.chat import ChatEngine
from genbridge.session.protocol import NewSessionResponse, PromptRequest, PromptResponse, ProtocolClient
from genbridge.session.store import InMemorySessionStore, SessionStore

logger = logging.getLogger(__name__)


class BridgeAgent:
    """Public API: ``new_session``, ``prompt``, ``cancel``.

    Sessions are independent and may prompt concurrently; each one
    serializes its own prompts.
    """

    def __init__(
        self,
        config: BridgeConfig,
        client: ProtocolClient,
        chat_factory: Callable[[], ChatEngine],
        store: SessionStore | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._chat_factory = chat_factory
        self._store = store or InMemorySessionStore()

    async def new_session(self) -> NewSessionResponse:
        session_id = str(uuid.uuid4())
        session = Session(session_id, self._chat_factory(), self._config, self._client)
        await self._store.save(session)
        logger.info("Created session %s (model=%s)", session_id, self._config.get_model())
        return NewSessionResponse(session_id=session_id)

    async def prompt(self, params: PromptRequest) -> PromptResponse:
        session = await self._require(params.session_id)
        return await session.prompt(params)

    async def cancel(self, session_id: str) -> None:
        session = await self._require(session_id)
        session.cancel()

    async def close_session(self, session_id: str) -> None:
        session = await self._require(session_id)
        session.cancel()
        await session.wait_idle()
        await self._store.delete(session_id)

    async def _require(self, session_id: str) -> Session:
        session = await self._store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session
