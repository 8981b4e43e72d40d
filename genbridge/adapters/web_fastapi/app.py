"""FastAPI SSE adapter — thin translation layer, no business logic."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from genbridge import create_bridge
from genbridge.core.errors import SessionBusyError, SessionNotFoundError
from genbridge.session.agent import BridgeAgent
from genbridge.session.protocol import PromptRequest, ProtocolClient, SessionNotification

logger = logging.getLogger(__name__)


class SSEBroker(ProtocolClient):
    """Routes session updates to the SSE stream currently serving that session."""

    def __init__(self) -> None:
        self._queues: dict[str, asyncio.Queue] = {}

    def subscribe(self, session_id: str) -> asyncio.Queue:
        """Claim the session's update stream; one SSE response at a time."""
        if session_id in self._queues:
            raise SessionBusyError(session_id)
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[session_id] = queue
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue) -> None:
        if self._queues.get(session_id) is queue:
            del self._queues[session_id]

    async def session_update(self, notification: SessionNotification) -> None:
        queue = self._queues.get(notification.session_id)
        if queue is None:
            logger.debug("Dropping update for unsubscribed session %s", notification.session_id)
            return
        await queue.put(notification)


def _sse_error(exc: Exception) -> str:
    return f"event: error\ndata: {json.dumps({'error': str(exc)})}\n\n"


async def _error_stream(exc: Exception):
    yield _sse_error(exc)


def create_app(agent: BridgeAgent | None = None, broker: SSEBroker | None = None) -> FastAPI:
    broker = broker or SSEBroker()
    agent = agent or create_bridge(broker)
    app = FastAPI(title="genbridge", version="0.1.0")

    @app.post("/sessions")
    async def new_session() -> JSONResponse:
        response = await agent.new_session()
        return JSONResponse(response.model_dump(by_alias=True))

    @app.post("/sessions/{session_id}/prompt")
    async def prompt(session_id: str, request: Request) -> StreamingResponse:
        body = await request.json()
        params = PromptRequest.model_validate({**body, "sessionId": session_id})
        try:
            queue = broker.subscribe(session_id)
        except SessionBusyError as exc:
            return StreamingResponse(_error_stream(exc), media_type="text/event-stream")

        async def sse_stream():
            task = asyncio.create_task(agent.prompt(params))
            task.add_done_callback(lambda _: queue.put_nowait(None))
            try:
                while True:
                    item = await queue.get()
                    if item is None:
                        break
                    payload = json.dumps(item.model_dump(mode="json", by_alias=True))
                    yield f"event: session_update\ndata: {payload}\n\n"
                try:
                    result = task.result()
                except (SessionBusyError, SessionNotFoundError) as exc:
                    yield _sse_error(exc)
                except Exception as exc:
                    logger.warning("Prompt failed for session %s: %s", session_id, exc)
                    yield _sse_error(exc)
                else:
                    yield f"event: done\ndata: {json.dumps(result.model_dump(mode='json', by_alias=True))}\n\n"
            finally:
                broker.unsubscribe(session_id, queue)
                if not task.done():
                    await agent.cancel(session_id)

        return StreamingResponse(
            sse_stream(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    @app.post("/sessions/{session_id}/cancel")
    async def cancel(session_id: str) -> JSONResponse:
        try:
            await agent.cancel(session_id)
        except SessionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return JSONResponse({"status": "cancelled"})

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    return app


def serve() -> None:
    """Entry-point for ``genbridge-web`` console script."""
    import uvicorn

    uvicorn.run(
        "genbridge.adapters.web_fastapi.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )
