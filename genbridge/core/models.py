"""Canonical content-generation models — no internal dependencies, only Pydantic + stdlib."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


# ---------------------------------------------------------------------------
# Turns and parts
# ---------------------------------------------------------------------------

class Role(str, Enum):
    USER = "user"
    MODEL = "model"
    SYSTEM = "system"


class Blob(BaseModel):
    """Inline binary payload, base64-encoded."""
    mime_type: str
    data: str


class FunctionCall(BaseModel):
    id: str | None = None
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class FunctionResponse(BaseModel):
    id: str | None = None
    name: str
    response: dict[str, Any] = Field(default_factory=dict)


class Part(BaseModel):
    """One piece of a turn. Exactly one payload field is expected to be set."""
    text: str | None = None
    thought: bool = False
    inline_data: Blob | None = None
    function_call: FunctionCall | None = None
    function_response: FunctionResponse | None = None

    @property
    def kind(self) -> str:
        if self.function_call is not None:
            return "function_call"
        if self.function_response is not None:
            return "function_response"
        if self.inline_data is not None:
            return "inline_data"
        return "text"


class Content(BaseModel):
    role: Role = Role.USER
    parts: list[Part] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

class FunctionDeclaration(BaseModel):
    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)


class GenerationOverrides(BaseModel):
    """Per-request sampling overrides; the pipeline config wins when both are set."""
    model_config = ConfigDict(frozen=True)

    temperature: float | None = None
    max_output_tokens: int | None = None
    top_p: float | None = None


class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str = ""
    contents: list[Content] = Field(default_factory=list)
    system_instruction: str | None = None
    tools: list[FunctionDeclaration] | None = None
    config: GenerationOverrides | None = None


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------

class FinishReason(str, Enum):
    STOP = "STOP"
    LENGTH = "LENGTH"
    TOOL_CALL = "TOOL_CALL"
    CONTENT_FILTER = "CONTENT_FILTER"
    ERROR = "ERROR"
    FINISH_REASON_UNSPECIFIED = "FINISH_REASON_UNSPECIFIED"


class Candidate(BaseModel):
    content: Content = Field(default_factory=lambda: Content(role=Role.MODEL))
    finish_reason: FinishReason | None = None
    index: int = 0


class UsageMetadata(BaseModel):
    prompt_token_count: int = Field(default=0, ge=0)
    candidates_token_count: int = Field(default=0, ge=0)
    total_token_count: int = Field(default=0, ge=0)
    cached_content_token_count: int = Field(default=0, ge=0)


class GenerationResponse(BaseModel):
    candidates: list[Candidate] = Field(default_factory=list)
    usage_metadata: UsageMetadata | None = None
    response_id: str | None = None
    model_version: str | None = None

    @property
    def parts(self) -> list[Part]:
        if not self.candidates:
            return []
        return self.candidates[0].content.parts

    @property
    def text(self) -> str:
        """Concatenated non-thought text of the first candidate."""
        return "".join(p.text for p in self.parts if p.text and not p.thought)

    @property
    def function_calls(self) -> list[FunctionCall]:
        return [p.function_call for p in self.parts if p.function_call is not None]

    @property
    def finish_reason(self) -> FinishReason | None:
        if not self.candidates:
            return None
        return self.candidates[0].finish_reason


# ---------------------------------------------------------------------------
# Token accounting
# ---------------------------------------------------------------------------

class TokenBreakdown(BaseModel):
    text_tokens: int = Field(default=0, ge=0)
    image_tokens: int = Field(default=0, ge=0)
    audio_tokens: int = Field(default=0, ge=0)
    other_tokens: int = Field(default=0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_tokens(self) -> int:
        return self.text_tokens + self.image_tokens + self.audio_tokens + self.other_tokens


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------

class EmbedRequest(BaseModel):
    model: str = ""
    contents: list[str] = Field(default_factory=list)


class EmbedResponse(BaseModel):
    embeddings: list[list[float]] = Field(default_factory=list)
    usage_metadata: UsageMetadata | None = None
