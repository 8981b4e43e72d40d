from genbridge.core.config import BridgeConfig, PipelineConfig, SamplingParams
from genbridge.core.errors import (
    BridgeError,
    ErrorKind,
    GenerationCancelled,
    ProviderError,
    SessionBusyError,
    SessionNotFoundError,
    TokenizationFailure,
    UnsupportedContentKindError,
    classify_error,
)
from genbridge.core.models import (
    Blob,
    Candidate,
    Content,
    EmbedRequest,
    EmbedResponse,
    FinishReason,
    FunctionCall,
    FunctionDeclaration,
    FunctionResponse,
    GenerationOverrides,
    GenerationRequest,
    GenerationResponse,
    Part,
    Role,
    TokenBreakdown,
    UsageMetadata,
)

__all__ = [
    "Blob",
    "BridgeConfig",
    "BridgeError",
    "Candidate",
    "Content",
    "EmbedRequest",
    "EmbedResponse",
    "ErrorKind",
    "FinishReason",
    "FunctionCall",
    "FunctionDeclaration",
    "FunctionResponse",
    "GenerationCancelled",
    "GenerationOverrides",
    "GenerationRequest",
    "GenerationResponse",
    "Part",
    "PipelineConfig",
    "ProviderError",
    "Role",
    "SamplingParams",
    "SessionBusyError",
    "SessionNotFoundError",
    "TokenBreakdown",
    "TokenizationFailure",
    "UnsupportedContentKindError",
    "UsageMetadata",
    "classify_error",
]
