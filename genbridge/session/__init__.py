from genbridge.session.agent import BridgeAgent
from genbridge.session.bridge import Session, SessionState
from genbridge.session.chat import Chat, ChatEngine, StreamEvent, StreamEventType
from genbridge.session.protocol import (
    AgentMessageChunk,
    AgentThoughtChunk,
    PromptRequest,
    PromptResponse,
    ProtocolClient,
    SessionNotification,
    StopReason,
    TextContentBlock,
    ToolCallStart,
    ToolCallStatus,
    ToolCallStatusUpdate,
)
from genbridge.session.store import InMemorySessionStore, SessionStore

__all__ = [
    "AgentMessageChunk",
    "AgentThoughtChunk",
    "BridgeAgent",
    "Chat",
    "ChatEngine",
    "InMemorySessionStore",
    "PromptRequest",
    "PromptResponse",
    "ProtocolClient",
    "Session",
    "SessionNotification",
    "SessionState",
    "SessionStore",
    "StopReason",
    "StreamEvent",
    "StreamEventType",
    "TextContentBlock",
    "ToolCallStart",
    "ToolCallStatus",
    "ToolCallStatusUpdate",
]
