"""Shared fixtures for genbridge tests."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from genbridge.core.config import BridgeConfig, PipelineConfig, SamplingParams
from genbridge.core.models import TokenBreakdown
from genbridge.pipeline.pipeline import ProviderPipeline
from genbridge.pipeline.providers import ProviderCapability
from genbridge.pipeline.tokens import TokenAccountant
from genbridge.tools.registry import ToolRegistry
from genbridge.tracing.interface import TelemetryEvent, TelemetryService


# -- fakes -------------------------------------------------------------------

class FakeProvider(ProviderCapability):
    """Hands out a pre-built transport client; no request shaping."""

    name = "fake"

    def __init__(self, client: Any) -> None:
        self._client = client

    def build_headers(self, config: PipelineConfig) -> dict[str, str]:
        return {}

    def build_client(self, config: PipelineConfig) -> Any:
        return self._client

    def build_request(self, request: dict[str, Any], prompt_id: str) -> dict[str, Any]:
        return request


class FakeStream:
    """Async-iterable stand-in for ``openai.AsyncStream``."""

    def __init__(self, chunks: list[Any], error: Exception | None = None) -> None:
        self._chunks = list(chunks)
        self._error = error
        self.closed = False
        self.delivered = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        await asyncio.sleep(0)
        if self.delivered < len(self._chunks):
            chunk = self._chunks[self.delivered]
            self.delivered += 1
            return chunk
        if self._error is not None:
            raise self._error
        raise StopAsyncIteration

    async def close(self) -> None:
        self.closed = True


class RecordingTelemetry(TelemetryService):
    def __init__(self) -> None:
        self.success: list[TelemetryEvent] = []
        self.errors: list[TelemetryEvent] = []
        self.cancelled: list[TelemetryEvent] = []

    async def log_success(self, event: TelemetryEvent) -> None:
        self.success.append(event)

    async def log_error(self, event: TelemetryEvent) -> None:
        self.errors.append(event)

    async def log_cancelled(self, event: TelemetryEvent) -> None:
        self.cancelled.append(event)


class RecordingClient:
    """Protocol client collecting every outward notification."""

    def __init__(self) -> None:
        self.session_update = AsyncMock(return_value=None)

    @property
    def notifications(self):
        return [call.args[0] for call in self.session_update.await_args_list]


def text_chunk(text: str, finish_reason: str | None = None, **extra: Any) -> dict[str, Any]:
    chunk = {
        "id": "chatcmpl-1",
        "model": "gpt-4",
        "choices": [{"index": 0, "delta": {"content": text}, "finish_reason": finish_reason}],
    }
    chunk.update(extra)
    return chunk


def completion(text: str, finish_reason: str = "stop", usage: dict | None = None) -> dict[str, Any]:
    response = {
        "id": "cmpl-test",
        "object": "chat.completion",
        "model": "gpt-4",
        "choices": [
            {"index": 0, "finish_reason": finish_reason, "message": {"role": "assistant", "content": text}},
        ],
    }
    if usage is not None:
        response["usage"] = usage
    return response


# -- fixtures ----------------------------------------------------------------

@pytest.fixture
def pipeline_config():
    return PipelineConfig(
        model="gpt-4",
        api_key="test-key",
        timeout=120_000,
        max_retries=3,
        retry_base_delay=0,
        sampling_params=SamplingParams(temperature=0.7, max_tokens=1000, top_p=0.9),
    )


@pytest.fixture
def transport():
    client = Mock()
    client.chat.completions.create = AsyncMock()
    client.embeddings.create = AsyncMock()
    return client


@pytest.fixture
def telemetry():
    return RecordingTelemetry()


@pytest.fixture
def accountant():
    stub = Mock(spec=TokenAccountant)
    stub.estimate.return_value = TokenBreakdown(text_tokens=50)
    return stub


@pytest.fixture
def make_pipeline(pipeline_config, transport, telemetry, accountant):
    def _make(pipeline_cls=ProviderPipeline, **config_overrides) -> ProviderPipeline:
        config = pipeline_config.model_copy(update=config_overrides)
        return pipeline_cls(config, FakeProvider(transport), telemetry=telemetry, accountant=accountant)

    return _make


@pytest.fixture
def tool_registry():
    return ToolRegistry()


@pytest.fixture
def bridge_config(tool_registry):
    return BridgeConfig(model="test-model", tool_registry=tool_registry)


@pytest.fixture
def protocol_client():
    return RecordingClient()
