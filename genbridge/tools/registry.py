"""Tool registry with Pydantic v2 input schemas, timeout, and retry."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from genbridge.core.models import FunctionDeclaration

logger = logging.getLogger(__name__)


@dataclass
class ToolDef:
    """Registration record for a single tool."""

    name: str
    description: str
    input_model: type[BaseModel]
    handler: Callable[..., Awaitable[Any]]
    kind: str = "other"  # read | edit | execute | search | fetch | other
    timeout: float = 30.0
    max_retries: int = 0


class ToolRegistry:
    """Central tool store; the session resolves model function calls through it."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    # -- registration -------------------------------------------------------

    def register(self, tool_def: ToolDef) -> None:
        self._tools[tool_def.name] = tool_def
        logger.info("Registered tool %s (kind=%s)", tool_def.name, tool_def.kind)

    def get(self, name: str) -> ToolDef | None:
        return self._tools.get(name)

    def __len__(self) -> int:
        return len(self._tools)

    # -- declarations -------------------------------------------------------

    def declarations(self) -> list[FunctionDeclaration]:
        """Function declarations advertised to the model."""
        return [
            FunctionDeclaration(
                name=tool.name,
                description=tool.description,
                parameters=tool.input_model.model_json_schema(),
            )
            for tool in self._tools.values()
        ]

    # -- execution ----------------------------------------------------------

    async def execute(self, name: str, input_data: dict[str, Any]) -> dict[str, Any]:
        tool = self._tools.get(name)
        if tool is None:
            raise ValueError(f"Tool '{name}' not found")

        validated_input = tool.input_model(**input_data)

        last_exc: Exception | None = None
        for attempt in range(1, tool.max_retries + 2):  # +2 because range is exclusive
            try:
                t0 = time.time()
                raw = await asyncio.wait_for(tool.handler(validated_input), timeout=tool.timeout)
                latency = time.time() - t0
                logger.info("tool=%s attempt=%d latency=%.3fs OK", name, attempt, latency)

                if isinstance(raw, BaseModel):
                    return raw.model_dump()
                if isinstance(raw, dict):
                    return raw
                return {"result": raw}

            except Exception as exc:
                last_exc = exc
                logger.warning("tool=%s attempt=%d error=%s", name, attempt, exc)

        raise last_exc  # type: ignore[misc]
