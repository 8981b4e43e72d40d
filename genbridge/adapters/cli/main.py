"""Stdio JSON-lines adapter — one JSON request per stdin line, responses and updates on stdout.

Requests::

    {"id": 1, "method": "session/new", "params": {}}
    {"id": 2, "method": "session/prompt", "params": {"sessionId": "...", "prompt": [{"type": "text", "text": "hi"}]}}
    {"method": "session/cancel", "params": {"sessionId": "..."}}

Session updates are written as ``{"method": "session/update", "params": {...}}``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, TextIO

from pydantic import ValidationError

from genbridge import create_bridge
from genbridge.core.errors import BridgeError
from genbridge.session.agent import BridgeAgent
from genbridge.session.protocol import PromptRequest, ProtocolClient, SessionNotification

logger = logging.getLogger(__name__)


class StdioClient(ProtocolClient):
    """Writes protocol frames as JSON lines."""

    def __init__(self, out: TextIO = sys.stdout) -> None:
        self._out = out

    def write(self, frame: dict[str, Any]) -> None:
        self._out.write(json.dumps(frame, default=str) + "\n")
        self._out.flush()

    async def session_update(self, notification: SessionNotification) -> None:
        self.write({
            "method": "session/update",
            "params": notification.model_dump(mode="json", by_alias=True),
        })


async def handle_request(agent: BridgeAgent, client: StdioClient, frame: dict[str, Any]) -> None:
    request_id = frame.get("id")
    method = frame.get("method")
    params = frame.get("params") or {}
    try:
        if method == "session/new":
            result: Any = (await agent.new_session()).model_dump(by_alias=True)
        elif method == "session/prompt":
            response = await agent.prompt(PromptRequest.model_validate(params))
            result = response.model_dump(mode="json", by_alias=True)
        elif method == "session/cancel":
            await agent.cancel(params["sessionId"])
            result = None
        else:
            raise ValueError(f"Unknown method '{method}'")
    except (BridgeError, ValidationError, ValueError, KeyError) as exc:
        logger.warning("Request %s (%s) failed: %s", request_id, method, exc)
        if request_id is not None:
            client.write({"id": request_id, "error": {"type": type(exc).__name__, "message": str(exc)}})
        return
    except Exception as exc:
        logger.exception("Request %s (%s) crashed", request_id, method)
        if request_id is not None:
            client.write({"id": request_id, "error": {"type": type(exc).__name__, "message": str(exc)}})
        return

    if request_id is not None:
        client.write({"id": request_id, "result": result})


async def run_stdio(agent: BridgeAgent, client: StdioClient, stdin: TextIO = sys.stdin) -> None:
    loop = asyncio.get_running_loop()
    tasks: set[asyncio.Task] = set()
    while True:
        line = await loop.run_in_executor(None, stdin.readline)
        if not line:
            break
        line = line.strip()
        if not line:
            continue
        try:
            frame = json.loads(line)
        except json.JSONDecodeError:
            client.write({"error": {"type": "ParseError", "message": "invalid JSON"}})
            continue
        # prompts run concurrently so a later cancel line can reach them
        task = asyncio.create_task(handle_request(agent, client, frame))
        tasks.add(task)
        task.add_done_callback(tasks.discard)
    if tasks:
        await asyncio.gather(*tasks)


def main() -> None:
    logging.basicConfig(stream=sys.stderr, level=logging.INFO)
    client = StdioClient()
    agent = create_bridge(client)
    asyncio.run(run_stdio(agent, client))


if __name__ == "__main__":
    main()
