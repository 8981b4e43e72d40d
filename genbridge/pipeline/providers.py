"""ProviderCapability — per-vendor headers, transport client, and request shaping."""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any

from genbridge.core.config import PipelineConfig
from genbridge.core.errors import UnsupportedContentKindError
from genbridge.pipeline.converter import ALL_MODALITIES

logger = logging.getLogger(__name__)

USER_AGENT = "genbridge/0.1.0"


class ProviderCapability(ABC):
    """One implementation per vendor; the pipeline never branches on vendor identity."""

    name: str = "provider"
    supported_modalities: frozenset[str] = ALL_MODALITIES

    @abstractmethod
    def build_headers(self, config: PipelineConfig) -> dict[str, str]: ...

    @abstractmethod
    def build_client(self, config: PipelineConfig) -> Any: ...

    @abstractmethod
    def build_request(self, request: dict[str, Any], prompt_id: str) -> dict[str, Any]: ...


class DefaultOpenAICompatibleProvider(ProviderCapability):
    """Plain OpenAI-compatible endpoint."""

    name = "openai"

    def build_headers(self, config: PipelineConfig) -> dict[str, str]:
        return {"User-Agent": USER_AGENT}

    def build_client(self, config: PipelineConfig) -> Any:
        # Late import so tests can inject a fake client without openai configured
        from openai import AsyncOpenAI

        # Retries are owned by the pipeline so they can be classified.
        return AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            max_retries=0,
            default_headers=self.build_headers(config),
        )

    def build_request(self, request: dict[str, Any], prompt_id: str) -> dict[str, Any]:
        return copy.deepcopy(request)


class OpenRouterProvider(DefaultOpenAICompatibleProvider):
    """OpenRouter asks callers to identify themselves via attribution headers."""

    name = "openrouter"
    DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

    def build_headers(self, config: PipelineConfig) -> dict[str, str]:
        headers = super().build_headers(config)
        headers["HTTP-Referer"] = "https://github.com/genbridge/genbridge"
        headers["X-Title"] = "genbridge"
        return headers

    def build_client(self, config: PipelineConfig) -> Any:
        if config.base_url is None:
            config = config.model_copy(update={"base_url": self.DEFAULT_BASE_URL})
        return super().build_client(config)


class DeepSeekProvider(DefaultOpenAICompatibleProvider):
    """Text-only endpoint that rejects content-part arrays and replayed reasoning."""

    name = "deepseek"
    supported_modalities = frozenset({"text"})
    DEFAULT_BASE_URL = "https://api.deepseek.com/v1"

    def build_client(self, config: PipelineConfig) -> Any:
        if config.base_url is None:
            config = config.model_copy(update={"base_url": self.DEFAULT_BASE_URL})
        return super().build_client(config)

    def build_request(self, request: dict[str, Any], prompt_id: str) -> dict[str, Any]:
        shaped = super().build_request(request, prompt_id)
        for message in shaped.get("messages", []):
            # reasoner models answer 400 when their own reasoning is sent back
            message.pop("reasoning_content", None)
            content = message.get("content")
            if not isinstance(content, list):
                continue
            texts = []
            for item in content:
                if item.get("type") != "text":
                    raise UnsupportedContentKindError(item.get("type", "unknown"), self.name)
                texts.append(item.get("text", ""))
            message["content"] = "".join(texts)
        return shaped


_PROVIDERS: dict[str, type[ProviderCapability]] = {
    "openai": DefaultOpenAICompatibleProvider,
    "openrouter": OpenRouterProvider,
    "deepseek": DeepSeekProvider,
}


def create_provider(config: PipelineConfig) -> ProviderCapability:
    """Pick the capability implementation for ``config.auth_type``."""
    provider_cls = _PROVIDERS.get(config.auth_type)
    if provider_cls is None:
        raise ValueError(f"Unknown auth type '{config.auth_type}' (expected one of {sorted(_PROVIDERS)})")
    logger.info("Using provider %s for model %s", provider_cls.name, config.model)
    return provider_cls()
