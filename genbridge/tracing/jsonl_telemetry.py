"""JSONL file-based telemetry sink."""

from __future__ import annotations

import json
from pathlib import Path

from genbridge.tracing.interface import TelemetryEvent, TelemetryService


class JSONLTelemetryService(TelemetryService):
    """Writes events to ``{telemetry_dir}/{prompt_id}.jsonl``.

    Events are buffered in memory per prompt id; ``flush`` appends them to
    disk. With ``auto_flush`` every event is written immediately.
    """

    def __init__(self, telemetry_dir: str = "./telemetry", auto_flush: bool = True) -> None:
        self._dir = Path(telemetry_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._auto_flush = auto_flush
        self._buffers: dict[str, list[dict]] = {}

    async def _record(self, event: TelemetryEvent) -> None:
        self._buffers.setdefault(event.prompt_id, []).append(event.model_dump(mode="json"))
        if self._auto_flush:
            await self.flush(event.prompt_id)

    async def log_success(self, event: TelemetryEvent) -> None:
        await self._record(event)

    async def log_error(self, event: TelemetryEvent) -> None:
        await self._record(event)

    async def log_cancelled(self, event: TelemetryEvent) -> None:
        await self._record(event)

    async def flush(self, prompt_id: str) -> None:
        entries = self._buffers.pop(prompt_id, [])
        if not entries:
            return
        path = self._dir / f"{prompt_id}.jsonl"
        with open(path, "a") as f:
            for entry in entries:
                f.write(json.dumps(entry, default=str) + "\n")
