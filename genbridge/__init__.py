"""genbridge — drive one chat engine through a provider pipeline and a session protocol.

Usage::

    from genbridge import create_bridge

    agent = create_bridge(client)
    session = await agent.new_session()
    await agent.prompt(PromptRequest(session_id=session.session_id, prompt=[...]))
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()  # reads .env into os.environ (no-op if file missing)

from genbridge.core.config import BridgeConfig, PipelineConfig
from genbridge.pipeline.pipeline import ProviderPipeline
from genbridge.pipeline.providers import create_provider
from genbridge.session.agent import BridgeAgent
from genbridge.session.chat import Chat
from genbridge.session.protocol import ProtocolClient
from genbridge.tools.registry import ToolRegistry
from genbridge.tracing.interface import TelemetryService
from genbridge.tracing.jsonl_telemetry import JSONLTelemetryService
from genbridge.tracing.logging_telemetry import LoggingTelemetryService

__all__ = [
    "BridgeAgent",
    "BridgeConfig",
    "PipelineConfig",
    "ProviderPipeline",
    "create_bridge",
    "create_pipeline",
]


def create_pipeline(
    config: PipelineConfig | None = None,
    telemetry: TelemetryService | None = None,
) -> ProviderPipeline:
    """Build a pipeline for ``config`` (default: from the environment).

    Set ``GENBRIDGE_TELEMETRY_DIR`` to write telemetry as JSONL instead of
    logging it.
    """
    config = config or PipelineConfig.from_env()
    if telemetry is None:
        telemetry_dir = os.environ.get("GENBRIDGE_TELEMETRY_DIR")
        telemetry = JSONLTelemetryService(telemetry_dir) if telemetry_dir else LoggingTelemetryService()
    return ProviderPipeline(config, create_provider(config), telemetry=telemetry)


def create_bridge(
    client: ProtocolClient,
    *,
    pipeline: ProviderPipeline | None = None,
    tool_registry: ToolRegistry | None = None,
    stream_responses: bool | None = None,
    system_instruction: str | None = None,
) -> BridgeAgent:
    """Wire pipeline, config and chat factory into a ready-to-use BridgeAgent.

    Environment variables (all optional, besides those read by
    :meth:`PipelineConfig.from_env`):
      GENBRIDGE_STREAM — ``0`` to deliver buffered responses
    """
    pipeline = pipeline or create_pipeline()
    if stream_responses is None:
        stream_responses = os.environ.get("GENBRIDGE_STREAM", "1") != "0"
    config = BridgeConfig(
        model=pipeline.config.model,
        tool_registry=tool_registry,
        stream_responses=stream_responses,
        system_instruction=system_instruction,
    )

    def chat_factory() -> Chat:
        return Chat(
            pipeline,
            model=config.get_model(),
            system_instruction=config.system_instruction,
            tools=config.get_tool_registry().declarations(),
        )

    return BridgeAgent(config=config, client=client, chat_factory=chat_factory)
