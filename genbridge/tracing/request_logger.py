"""Dumps wire-level requests and responses when OpenAI logging is enabled."""

from __future__ import annotations

import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class OpenAIRequestLogger:
    """One JSON file per interaction under ``log_dir``."""

    def __init__(self, log_dir: str = "./logs/openai") -> None:
        self._dir = Path(log_dir)

    async def log_interaction(
        self,
        request: dict[str, Any],
        response: Any = None,
        error: BaseException | None = None,
    ) -> Path:
        self._dir.mkdir(parents=True, exist_ok=True)
        entry: dict[str, Any] = {
            "timestamp": time.time(),
            "request": request,
            "response": response.model_dump() if hasattr(response, "model_dump") else response,
        }
        if error is not None:
            entry["error"] = {"type": type(error).__name__, "message": str(error)}
        path = self._dir / f"openai-{time.strftime('%Y%m%dT%H%M%S')}-{uuid.uuid4().hex[:8]}.json"
        path.write_text(json.dumps(entry, indent=2, default=str))
        logger.debug("Logged OpenAI interaction to %s", path)
        return path
