from genbridge.pipeline.converter import ToolCallAccumulator, WireConverter
from genbridge.pipeline.pipeline import ProviderPipeline
from genbridge.pipeline.providers import (
    DeepSeekProvider,
    DefaultOpenAICompatibleProvider,
    OpenRouterProvider,
    ProviderCapability,
    create_provider,
)
from genbridge.pipeline.tokens import TokenAccountant

__all__ = [
    "DeepSeekProvider",
    "DefaultOpenAICompatibleProvider",
    "OpenRouterProvider",
    "ProviderCapability",
    "ProviderPipeline",
    "TokenAccountant",
    "ToolCallAccumulator",
    "WireConverter",
    "create_provider",
]
