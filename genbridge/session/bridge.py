"""Session — one conversation driven against a chat engine for an external protocol client."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from enum import Enum

from genbridge.core.config import BridgeConfig
from genbridge.core.errors import GenerationCancelled, SessionBusyError
from genbridge.core.models import (
    Blob,
    Content,
    FunctionCall,
    FunctionResponse,
    GenerationResponse,
    Part,
    Role,
)
from genbridge.session.chat import ChatEngine, StreamEventType, reply_updates
from genbridge.session.protocol import (
    AudioContentBlock,
    ContentBlock,
    ImageContentBlock,
    PromptRequest,
    PromptResponse,
    ProtocolClient,
    ResourceLinkContentBlock,
    SessionNotification,
    SessionUpdate,
    StopReason,
    TextContentBlock,
    ToolCallStart,
    ToolCallStatus,
    ToolCallStatusUpdate,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    PROMPTING = "prompting"
    FAILED = "failed"  # outcome of the last call; the session stays usable


class Session:
    """Public API: ``await session.prompt(request)`` and ``session.cancel()``.

    The session is the only writer of its chat engine's history and runs
    one prompt at a time. Delivery mode is chosen per call from
    ``config.should_stream_responses()``; both modes produce the same
    outward update shapes.
    """

    def __init__(
        self,
        session_id: str,
        chat: ChatEngine,
        config: BridgeConfig,
        client: ProtocolClient,
    ) -> None:
        self.id = session_id
        self._chat = chat
        self._config = config
        self._client = client
        self._state = SessionState.IDLE
        self._pending_prompt: asyncio.Event | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def chat(self) -> ChatEngine:
        return self._chat

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Return once no prompt is in flight."""
        await self._idle.wait()

    def cancel(self) -> None:
        """Abort the in-flight prompt, if any."""
        if self._pending_prompt is not None:
            self._pending_prompt.set()

    async def prompt(self, params: PromptRequest) -> PromptResponse:
        if self._state is SessionState.PROMPTING:
            raise SessionBusyError(self.id)
        self._state = SessionState.PROMPTING
        self._idle.clear()
        signal = self._pending_prompt = asyncio.Event()
        prompt_id = f"{self.id}########{uuid.uuid4().hex[:12]}"

        try:
            # 1. Updates buffered by the engine during an earlier turn go first
            for update in self._chat.drain_pending_sync_stream_events():
                await self._send_update(update)

            # 2. Turn loop: model reply, then tool results, until no calls remain
            next_message: Content | None = Content(role=Role.USER, parts=self._resolve_prompt(params.prompt))
            while next_message is not None:
                if signal.is_set():
                    break
                if self._config.should_stream_responses():
                    function_calls = await self._streamed_turn(next_message, prompt_id, signal)
                else:
                    function_calls = await self._buffered_turn(next_message, prompt_id, signal)

                if signal.is_set() or not function_calls:
                    break
                responses = [await self._run_tool(fc) for fc in function_calls]
                next_message = Content(role=Role.USER, parts=responses)

        except GenerationCancelled:
            pass
        except Exception:
            self._state = SessionState.FAILED
            raise
        finally:
            if self._state is SessionState.PROMPTING:
                self._state = SessionState.IDLE
            self._pending_prompt = None
            self._idle.set()

        if signal.is_set():
            return PromptResponse(stop_reason=StopReason.CANCELLED)
        return PromptResponse(stop_reason=StopReason.END_TURN)

    # ------------------------------------------------------------------
    # Delivery modes
    # ------------------------------------------------------------------

    async def _streamed_turn(self, message: Content, prompt_id: str, signal: asyncio.Event) -> list[FunctionCall]:
        function_calls: list[FunctionCall] = []
        stream = await self._chat.send_message_stream(message, prompt_id, signal)
        try:
            async for event in stream:
                if signal.is_set():
                    break
                if event.type is StreamEventType.RETRY or event.value is None:
                    continue
                function_calls.extend(await self._emit_response(event.value))
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return function_calls

    async def _buffered_turn(self, message: Content, prompt_id: str, signal: asyncio.Event) -> list[FunctionCall]:
        response = await self._chat.send_message(message, prompt_id, signal)
        return await self._emit_response(response)

    async def _emit_response(self, response: GenerationResponse) -> list[FunctionCall]:
        for update in reply_updates(response.parts):
            await self._send_update(update)
        return response.function_calls

    # ------------------------------------------------------------------
    # Tool calls
    # ------------------------------------------------------------------

    async def _run_tool(self, fc: FunctionCall) -> Part:
        call_id = fc.id or f"{fc.name}-{uuid.uuid4().hex[:8]}"
        registry = self._config.get_tool_registry()
        tool = registry.get(fc.name)

        await self._send_update(ToolCallStart(
            tool_call_id=call_id,
            title=fc.name,
            kind=tool.kind if tool else "other",
            status=ToolCallStatus.IN_PROGRESS,
            raw_input=fc.args,
        ))
        try:
            result = await registry.execute(fc.name, fc.args)
        except Exception as exc:
            logger.warning("Tool %s failed in session %s: %s", fc.name, self.id, exc)
            await self._send_update(ToolCallStatusUpdate(
                tool_call_id=call_id,
                status=ToolCallStatus.FAILED,
                content=[TextContentBlock(text=str(exc))],
            ))
            return Part(function_response=FunctionResponse(id=call_id, name=fc.name, response={"error": str(exc)}))

        output = json.dumps(result, default=str)
        await self._send_update(ToolCallStatusUpdate(
            tool_call_id=call_id,
            status=ToolCallStatus.COMPLETED,
            content=[TextContentBlock(text=output)],
        ))
        return Part(function_response=FunctionResponse(id=call_id, name=fc.name, response={"output": output}))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _send_update(self, update: SessionUpdate) -> None:
        await self._client.session_update(SessionNotification(session_id=self.id, update=update))

    @staticmethod
    def _resolve_prompt(blocks: list[ContentBlock]) -> list[Part]:
        parts: list[Part] = []
        for block in blocks:
            if isinstance(block, TextContentBlock):
                parts.append(Part(text=block.text))
            elif isinstance(block, (ImageContentBlock, AudioContentBlock)):
                parts.append(Part(inline_data=Blob(mime_type=block.mime_type, data=block.data)))
            elif isinstance(block, ResourceLinkContentBlock):
                parts.append(Part(text=f"@{block.uri}"))
        return parts
