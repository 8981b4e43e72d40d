"""Chat engine — conversation history on top of a ProviderPipeline."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import AsyncIterator

from pydantic import BaseModel

from genbridge.core.errors import GenerationCancelled, ProviderError
from genbridge.core.models import (
    Content,
    FunctionDeclaration,
    GenerationRequest,
    GenerationResponse,
    Part,
    Role,
)
from genbridge.pipeline.pipeline import ProviderPipeline
from genbridge.session.protocol import AgentMessageChunk, AgentThoughtChunk, SessionUpdate, TextContentBlock

logger = logging.getLogger(__name__)


class StreamEventType(str, Enum):
    CHUNK = "chunk"
    RETRY = "retry"  # the previous fragments are being discarded and regenerated


class StreamEvent(BaseModel):
    type: StreamEventType
    value: GenerationResponse | None = None


class ChatEngine(ABC):
    """Conversation owned by exactly one session."""

    @abstractmethod
    async def send_message(
        self, message: Content, prompt_id: str, signal: asyncio.Event | None = None,
    ) -> GenerationResponse: ...

    @abstractmethod
    async def send_message_stream(
        self, message: Content, prompt_id: str, signal: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]: ...

    @abstractmethod
    def drain_pending_sync_stream_events(self) -> list[SessionUpdate]: ...

    @abstractmethod
    def add_history(self, content: Content) -> None: ...

    @abstractmethod
    def get_history(self) -> list[Content]: ...


def reply_updates(parts: list[Part]) -> list[SessionUpdate]:
    """Outward chunks for the text and thought parts of a model reply."""
    updates: list[SessionUpdate] = []
    for part in parts:
        if not part.text:
            continue
        block = TextContentBlock(text=part.text)
        updates.append(AgentThoughtChunk(content=block) if part.thought else AgentMessageChunk(content=block))
    return updates


def _consolidate(parts: list[Part]) -> list[Part]:
    """Merge adjacent text fragments of the same kind into one part."""
    merged: list[Part] = []
    for part in parts:
        if (
            merged
            and part.text is not None
            and part.kind == "text"
            and merged[-1].kind == "text"
            and merged[-1].text is not None
            and merged[-1].thought == part.thought
        ):
            merged[-1] = Part(text=merged[-1].text + part.text, thought=part.thought)
        else:
            merged.append(part)
    return merged


class Chat(ChatEngine):
    """History-keeping chat over a pipeline.

    A turn (user message plus model reply) is committed to history only
    after the model call succeeds, so a failing turn leaves earlier history
    untouched.
    """

    MAX_EMPTY_STREAM_RETRIES: int = 1

    def __init__(
        self,
        pipeline: ProviderPipeline,
        model: str,
        system_instruction: str | None = None,
        tools: list[FunctionDeclaration] | None = None,
        history: list[Content] | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._model = model
        self._system_instruction = system_instruction
        self._tools = tools
        self._history: list[Content] = list(history or [])
        self._pending_sync_events: deque[SessionUpdate] = deque()

    # -- history -------------------------------------------------------------

    def add_history(self, content: Content) -> None:
        self._history.append(content)

    def get_history(self) -> list[Content]:
        return list(self._history)

    def _commit(self, message: Content, reply: Content) -> None:
        self._history.append(message)
        self._history.append(reply)

    def _request(self, message: Content) -> GenerationRequest:
        return GenerationRequest(
            model=self._model,
            contents=[*self._history, message],
            system_instruction=self._system_instruction,
            tools=self._tools or None,
        )

    # -- buffered sync events ------------------------------------------------

    def queue_sync_stream_event(self, update: SessionUpdate) -> None:
        """Hold an update produced out-of-band until the owning session drains it."""
        self._pending_sync_events.append(update)

    def drain_pending_sync_stream_events(self) -> list[SessionUpdate]:
        events = list(self._pending_sync_events)
        self._pending_sync_events.clear()
        return events

    # -- sending -------------------------------------------------------------

    async def send_message(
        self, message: Content, prompt_id: str, signal: asyncio.Event | None = None,
    ) -> GenerationResponse:
        response = await self._pipeline.generate(self._request(message), prompt_id, signal)
        parts = list(response.candidates[0].content.parts) if response.candidates else []
        if signal is not None and signal.is_set():
            self._commit_cancelled(message, parts)
            raise GenerationCancelled("generation cancelled after the reply arrived")
        self._commit(message, Content(role=Role.MODEL, parts=_consolidate(parts)))
        return response

    def _commit_cancelled(self, message: Content, parts: list[Part]) -> None:
        """Keep a reply that landed after cancellation and queue it for the next prompt.

        Its tool calls are dropped since they will never be answered.
        """
        kept = [p for p in parts if p.function_call is None]
        if kept:
            self._commit(message, Content(role=Role.MODEL, parts=_consolidate(kept)))
        else:
            self.add_history(message)
        for update in reply_updates(kept):
            self.queue_sync_stream_event(update)

    async def send_message_stream(
        self, message: Content, prompt_id: str, signal: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        return self._stream(message, self._request(message), prompt_id, signal)

    async def _stream(
        self,
        message: Content,
        request: GenerationRequest,
        prompt_id: str,
        signal: asyncio.Event | None,
    ) -> AsyncIterator[StreamEvent]:
        for attempt in range(self.MAX_EMPTY_STREAM_RETRIES + 1):
            if attempt:
                logger.warning("Empty model stream for prompt %s, retrying (%d)", prompt_id, attempt)
                yield StreamEvent(type=StreamEventType.RETRY)

            parts: list[Part] = []
            finished = False
            fragments = self._pipeline.generate_stream(request, prompt_id, signal)
            try:
                async for fragment in fragments:
                    parts.extend(fragment.parts)
                    finished = finished or fragment.finish_reason is not None
                    yield StreamEvent(type=StreamEventType.CHUNK, value=fragment)
            finally:
                await fragments.aclose()

            if signal is not None and signal.is_set():
                return
            if parts:
                self._commit(message, Content(role=Role.MODEL, parts=_consolidate(parts)))
                return
            if finished:
                # empty but finished reply: keep the user turn, nothing to record for the model
                self.add_history(message)
                return

        raise ProviderError("Model stream ended without content or finish reason")
