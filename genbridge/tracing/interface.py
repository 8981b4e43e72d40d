"""TelemetryService ABC and the event it records — no internal deps beyond models."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from enum import Enum

from pydantic import BaseModel, Field

from genbridge.core.models import UsageMetadata


class TelemetryOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TelemetryEvent(BaseModel):
    """One finished (or abandoned) generation call."""
    prompt_id: str
    model: str
    outcome: TelemetryOutcome
    duration_ms: float = 0.0
    usage: UsageMetadata | None = None
    streamed: bool = False
    response_id: str | None = None
    error_kind: str | None = None
    error_message: str | None = None
    timestamp: float = Field(default_factory=time.time)


class TelemetryService(ABC):
    """Receives one event per pipeline call."""

    @abstractmethod
    async def log_success(self, event: TelemetryEvent) -> None: ...

    @abstractmethod
    async def log_error(self, event: TelemetryEvent) -> None: ...

    @abstractmethod
    async def log_cancelled(self, event: TelemetryEvent) -> None: ...
