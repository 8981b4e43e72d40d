"""Pipeline and session configuration."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from genbridge.tools.registry import ToolRegistry


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str) -> float | None:
    raw = os.environ.get(name)
    return float(raw) if raw else None


class SamplingParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None


class PipelineConfig(BaseModel):
    """Immutable settings for one :class:`~genbridge.pipeline.pipeline.ProviderPipeline`."""

    model_config = ConfigDict(frozen=True)

    model: str = "gpt-4o-mini"
    api_key: str | None = None
    base_url: str | None = None
    auth_type: str = "openai"  # openai | openrouter | deepseek
    timeout: int = Field(default=120_000, gt=0)  # milliseconds
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)  # seconds
    sampling_params: SamplingParams = Field(default_factory=SamplingParams)
    force_synchronous: bool = False
    enable_openai_logging: bool = False
    openai_log_dir: str = "./logs/openai"

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000

    @classmethod
    def from_env(cls, **overrides) -> PipelineConfig:
        """Build a config from the environment; keyword overrides win.

        Environment variables (all optional):
          OPENAI_API_KEY, OPENAI_MODEL, OPENAI_BASE_URL
          GENBRIDGE_AUTH_TYPE      — ``openai`` | ``openrouter`` | ``deepseek``
          GENBRIDGE_TIMEOUT_MS, GENBRIDGE_MAX_RETRIES
          GENBRIDGE_FORCE_SYNC     — ``1`` for non-streaming transports
          GENBRIDGE_OPENAI_LOGGING — ``1`` to dump wire requests/responses
          GENBRIDGE_TEMPERATURE, GENBRIDGE_MAX_TOKENS, GENBRIDGE_TOP_P
        """
        max_tokens = os.environ.get("GENBRIDGE_MAX_TOKENS")
        values = {
            "model": os.environ.get("OPENAI_MODEL", "gpt-4o-mini"),
            "api_key": os.environ.get("OPENAI_API_KEY"),
            "base_url": os.environ.get("OPENAI_BASE_URL"),
            "auth_type": os.environ.get("GENBRIDGE_AUTH_TYPE", "openai"),
            "timeout": int(os.environ.get("GENBRIDGE_TIMEOUT_MS", "120000")),
            "max_retries": int(os.environ.get("GENBRIDGE_MAX_RETRIES", "3")),
            "force_synchronous": _env_bool("GENBRIDGE_FORCE_SYNC"),
            "enable_openai_logging": _env_bool("GENBRIDGE_OPENAI_LOGGING"),
            "sampling_params": SamplingParams(
                temperature=_env_float("GENBRIDGE_TEMPERATURE"),
                max_tokens=int(max_tokens) if max_tokens else None,
                top_p=_env_float("GENBRIDGE_TOP_P"),
            ),
        }
        values.update(overrides)
        return cls(**values)


class BridgeConfig:
    """Session-facing configuration shared (read-only) by every session.

    The delivery mode is read on every prompt call, so flipping it with
    :meth:`set_stream_responses` takes effect on the next call.
    """

    def __init__(
        self,
        model: str,
        tool_registry: ToolRegistry | None = None,
        stream_responses: bool = True,
        system_instruction: str | None = None,
    ) -> None:
        if tool_registry is None:
            from genbridge.tools.registry import ToolRegistry

            tool_registry = ToolRegistry()
        self._model = model
        self._tools = tool_registry
        self._stream = stream_responses
        self.system_instruction = system_instruction

    def get_model(self) -> str:
        return self._model

    def should_stream_responses(self) -> bool:
        return self._stream

    def set_stream_responses(self, enabled: bool) -> None:
        self._stream = enabled

    def get_tool_registry(self) -> ToolRegistry:
        return self._tools
