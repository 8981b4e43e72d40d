"""Telemetry sink that writes through stdlib logging."""

from __future__ import annotations

import logging

from genbridge.tracing.interface import TelemetryEvent, TelemetryService

logger = logging.getLogger(__name__)


class LoggingTelemetryService(TelemetryService):
    async def log_success(self, event: TelemetryEvent) -> None:
        usage = event.usage
        logger.info(
            "prompt=%s model=%s outcome=success latency=%.1fms tokens=%s",
            event.prompt_id, event.model, event.duration_ms,
            usage.total_token_count if usage else "n/a",
        )

    async def log_error(self, event: TelemetryEvent) -> None:
        logger.warning(
            "prompt=%s model=%s outcome=failed latency=%.1fms kind=%s error=%s",
            event.prompt_id, event.model, event.duration_ms, event.error_kind, event.error_message,
        )

    async def log_cancelled(self, event: TelemetryEvent) -> None:
        logger.info(
            "prompt=%s model=%s outcome=cancelled latency=%.1fms",
            event.prompt_id, event.model, event.duration_ms,
        )
