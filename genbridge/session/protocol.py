"""Client-facing session protocol — prompt requests and outward update notifications.

Models serialize with camelCase aliases (``model_dump(by_alias=True)``) to
match the JSON the host editor speaks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ProtocolModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Content blocks (client -> agent and agent -> client)
# ---------------------------------------------------------------------------

class TextContentBlock(ProtocolModel):
    type: Literal["text"] = "text"
    text: str


class ImageContentBlock(ProtocolModel):
    type: Literal["image"] = "image"
    mime_type: str
    data: str


class AudioContentBlock(ProtocolModel):
    type: Literal["audio"] = "audio"
    mime_type: str
    data: str


class ResourceLinkContentBlock(ProtocolModel):
    type: Literal["resource_link"] = "resource_link"
    uri: str
    name: str


ContentBlock = Annotated[
    Union[TextContentBlock, ImageContentBlock, AudioContentBlock, ResourceLinkContentBlock],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Prompt turn
# ---------------------------------------------------------------------------

class PromptRequest(ProtocolModel):
    session_id: str
    prompt: list[ContentBlock] = Field(default_factory=list)


class StopReason(str, Enum):
    END_TURN = "end_turn"
    CANCELLED = "cancelled"


class PromptResponse(ProtocolModel):
    stop_reason: StopReason = StopReason.END_TURN


class NewSessionResponse(ProtocolModel):
    session_id: str


# ---------------------------------------------------------------------------
# Session updates (agent -> client)
# ---------------------------------------------------------------------------

class ToolCallStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class AgentMessageChunk(ProtocolModel):
    session_update: Literal["agent_message_chunk"] = "agent_message_chunk"
    content: TextContentBlock


class AgentThoughtChunk(ProtocolModel):
    session_update: Literal["agent_thought_chunk"] = "agent_thought_chunk"
    content: TextContentBlock


class ToolCallStart(ProtocolModel):
    session_update: Literal["tool_call"] = "tool_call"
    tool_call_id: str
    title: str
    kind: str = "other"
    status: ToolCallStatus = ToolCallStatus.PENDING
    raw_input: dict[str, Any] = Field(default_factory=dict)


class ToolCallStatusUpdate(ProtocolModel):
    session_update: Literal["tool_call_update"] = "tool_call_update"
    tool_call_id: str
    status: ToolCallStatus
    content: list[TextContentBlock] = Field(default_factory=list)


SessionUpdate = Annotated[
    Union[AgentMessageChunk, AgentThoughtChunk, ToolCallStart, ToolCallStatusUpdate],
    Field(discriminator="session_update"),
]


class SessionNotification(ProtocolModel):
    session_id: str
    update: SessionUpdate


class ProtocolClient(ABC):
    """Outward surface; a session only ever calls into it."""

    @abstractmethod
    async def session_update(self, notification: SessionNotification) -> None: ...
