"""Error taxonomy shared by the provider pipeline and the session bridge."""

from __future__ import annotations

import asyncio
from enum import Enum

import openai


class ErrorKind(str, Enum):
    TRANSIENT_TRANSPORT = "transient_transport"
    AUTH_FAILURE = "auth_failure"
    UNSUPPORTED_CONTENT_KIND = "unsupported_content_kind"
    PROVIDER_ERROR = "provider_error"
    CANCELLED = "cancelled"
    TOKENIZATION_FAILURE = "tokenization_failure"
    SESSION_BUSY = "session_busy"
    UNKNOWN = "unknown"


class BridgeError(Exception):
    """Base class for every error raised by genbridge itself."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    retryable: bool = False


class UnsupportedContentKindError(BridgeError):
    kind = ErrorKind.UNSUPPORTED_CONTENT_KIND

    def __init__(self, content_kind: str, provider: str = "provider") -> None:
        super().__init__(f"{provider} cannot represent content of kind '{content_kind}'")
        self.content_kind = content_kind


class ProviderError(BridgeError):
    kind = ErrorKind.PROVIDER_ERROR

    def __init__(self, message: str, status_code: int | None = None, retryable: bool = False) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class GenerationCancelled(BridgeError):
    kind = ErrorKind.CANCELLED


class TokenizationFailure(BridgeError):
    kind = ErrorKind.TOKENIZATION_FAILURE


class SessionBusyError(BridgeError):
    kind = ErrorKind.SESSION_BUSY

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session '{session_id}' is already processing a prompt")
        self.session_id = session_id


class SessionNotFoundError(BridgeError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session '{session_id}' not found")
        self.session_id = session_id


def classify_error(err: BaseException) -> ErrorKind:
    """Map any exception (genbridge or ``openai`` SDK) onto an :class:`ErrorKind`."""
    if isinstance(err, BridgeError):
        if isinstance(err, ProviderError) and err.retryable:
            return ErrorKind.TRANSIENT_TRANSPORT
        return err.kind
    if isinstance(err, asyncio.CancelledError):
        return ErrorKind.CANCELLED
    if isinstance(err, (asyncio.TimeoutError, openai.APIConnectionError, openai.RateLimitError)):
        # APITimeoutError subclasses APIConnectionError
        return ErrorKind.TRANSIENT_TRANSPORT
    if isinstance(err, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ErrorKind.AUTH_FAILURE
    if isinstance(err, openai.APIStatusError):
        status = int(getattr(err, "status_code", 0) or 0)
        if status in (401, 403):
            return ErrorKind.AUTH_FAILURE
        if status in (408, 429) or 500 <= status <= 599:
            return ErrorKind.TRANSIENT_TRANSPORT
        return ErrorKind.PROVIDER_ERROR
    if isinstance(err, openai.OpenAIError):
        return ErrorKind.PROVIDER_ERROR
    return ErrorKind.UNKNOWN


def is_retryable(err: BaseException) -> bool:
    return classify_error(err) is ErrorKind.TRANSIENT_TRANSPORT
