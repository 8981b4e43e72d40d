"""WireConverter — canonical protocol <-> OpenAI chat-completions wire shapes.

Every method is a pure function of its arguments, except that a tool call
arriving without an id is given a fresh one. Wire inputs may be ``openai``
SDK objects or plain dicts; missing optional fields default to empty rather
than raising.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from genbridge.core.config import PipelineConfig
from genbridge.core.errors import UnsupportedContentKindError
from genbridge.core.models import (
    Candidate,
    Content,
    EmbedRequest,
    EmbedResponse,
    FinishReason,
    FunctionCall,
    GenerationOverrides,
    GenerationRequest,
    GenerationResponse,
    Part,
    Role,
    UsageMetadata,
)

logger = logging.getLogger(__name__)

ALL_MODALITIES = frozenset({"text", "image", "audio", "file"})

_FINISH_REASONS: dict[str, FinishReason] = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "tool_calls": FinishReason.TOOL_CALL,
    "function_call": FinishReason.TOOL_CALL,
    "content_filter": FinishReason.CONTENT_FILTER,
}
_WIRE_FINISH_REASONS: dict[FinishReason, str] = {
    FinishReason.STOP: "stop",
    FinishReason.LENGTH: "length",
    FinishReason.TOOL_CALL: "tool_calls",
    FinishReason.CONTENT_FILTER: "content_filter",
}
_AUDIO_FORMATS = {"audio/wav": "wav", "audio/x-wav": "wav", "audio/mpeg": "mp3", "audio/mp3": "mp3"}


def _as_dict(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    return dict(vars(obj))


def _parse_args(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.debug("Discarding unparseable tool arguments: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


def _call_id(raw: Any) -> str:
    """Provider call id, or a generated one so the reply can reference the call."""
    return raw or f"call_{uuid.uuid4().hex[:24]}"


def _finish_reason(raw: str | None) -> FinishReason | None:
    if not raw:
        return None
    return _FINISH_REASONS.get(raw, FinishReason.FINISH_REASON_UNSPECIFIED)


def _usage(raw: Any) -> UsageMetadata | None:
    usage = _as_dict(raw)
    if not usage:
        return None
    prompt = int(usage.get("prompt_tokens") or 0)
    completion = int(usage.get("completion_tokens") or 0)
    details = _as_dict(usage.get("prompt_tokens_details"))
    return UsageMetadata(
        prompt_token_count=prompt,
        candidates_token_count=completion,
        total_token_count=int(usage.get("total_tokens") or prompt + completion),
        cached_content_token_count=int(details.get("cached_tokens") or 0),
    )


class ToolCallAccumulator:
    """Per-stream buffer assembling tool-call deltas keyed by their index."""

    def __init__(self) -> None:
        self._calls: dict[int, dict[str, str]] = {}

    def add(self, delta: Any) -> None:
        delta = _as_dict(delta)
        slot = self._calls.setdefault(int(delta.get("index") or 0), {"id": "", "name": "", "arguments": ""})
        if delta.get("id"):
            slot["id"] = delta["id"]
        function = _as_dict(delta.get("function"))
        if function.get("name"):
            slot["name"] = function["name"]
        if function.get("arguments"):
            slot["arguments"] += function["arguments"]

    def drain(self) -> list[FunctionCall]:
        calls = [
            FunctionCall(id=_call_id(slot["id"]), name=slot["name"], args=_parse_args(slot["arguments"]))
            for _, slot in sorted(self._calls.items())
            if slot["name"]
        ]
        self._calls.clear()
        return calls

    def __bool__(self) -> bool:
        return bool(self._calls)


class WireConverter:
    """Stateless mapper; ``supported_modalities`` is fixed per provider."""

    def __init__(self, supported_modalities: frozenset[str] = ALL_MODALITIES, provider_name: str = "provider") -> None:
        self._modalities = frozenset(supported_modalities)
        self._provider_name = provider_name

    # -- canonical -> wire ---------------------------------------------------

    def to_wire_request(self, request: GenerationRequest, config: PipelineConfig) -> dict[str, Any]:
        messages: list[dict[str, Any]] = []
        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})
        for content in request.contents:
            messages.extend(self._content_to_messages(content))

        wire: dict[str, Any] = {"model": request.model or config.model, "messages": messages}
        wire.update(self._sampling_params(request.config, config))
        if request.tools:
            wire["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": decl.name,
                        "description": decl.description,
                        "parameters": decl.parameters or {"type": "object", "properties": {}},
                    },
                }
                for decl in request.tools
            ]
        return wire

    def to_wire_embedding_request(self, request: EmbedRequest, config: PipelineConfig) -> dict[str, Any]:
        return {"model": request.model or config.model, "input": list(request.contents)}

    @staticmethod
    def _sampling_params(overrides: GenerationOverrides | None, config: PipelineConfig) -> dict[str, Any]:
        overrides = overrides or GenerationOverrides()
        sampling = config.sampling_params
        params: dict[str, Any] = {}
        for key, configured, requested in (
            ("temperature", sampling.temperature, overrides.temperature),
            ("max_tokens", sampling.max_tokens, overrides.max_output_tokens),
            ("top_p", sampling.top_p, overrides.top_p),
        ):
            value = configured if configured is not None else requested
            if value is not None:
                params[key] = value
        return params

    def _content_to_messages(self, content: Content) -> list[dict[str, Any]]:
        if content.role is Role.SYSTEM:
            return [{"role": "system", "content": self._plain_text(content)}]
        if content.role is Role.MODEL:
            return [self._model_message(content)]

        messages: list[dict[str, Any]] = []
        items: list[dict[str, Any]] = []
        for part in content.parts:
            if part.function_response is not None:
                fr = part.function_response
                output = fr.response.get("output") if isinstance(fr.response.get("output"), str) else None
                messages.append({
                    "role": "tool",
                    "tool_call_id": fr.id or fr.name,
                    "content": output if output is not None else json.dumps(fr.response),
                })
            elif part.function_call is not None:
                raise UnsupportedContentKindError("function_call in user turn", self._provider_name)
            else:
                items.append(self._part_to_item(part))

        if items:
            if all(item["type"] == "text" for item in items):
                messages.append({"role": "user", "content": "".join(item["text"] for item in items)})
            else:
                messages.append({"role": "user", "content": items})
        return messages

    def _model_message(self, content: Content) -> dict[str, Any]:
        text: list[str] = []
        reasoning: list[str] = []
        tool_calls: list[dict[str, Any]] = []
        for part in content.parts:
            if part.function_call is not None:
                fc = part.function_call
                tool_calls.append({
                    "id": fc.id or f"call_{len(tool_calls)}",
                    "type": "function",
                    "function": {"name": fc.name, "arguments": json.dumps(fc.args)},
                })
            elif part.text is not None:
                (reasoning if part.thought else text).append(part.text)
            else:
                raise UnsupportedContentKindError(f"{part.kind} in model turn", self._provider_name)

        message: dict[str, Any] = {"role": "assistant", "content": "".join(text) or None}
        if reasoning:
            message["reasoning_content"] = "".join(reasoning)
        if tool_calls:
            message["tool_calls"] = tool_calls
        return message

    def _plain_text(self, content: Content) -> str:
        for part in content.parts:
            if part.text is None:
                raise UnsupportedContentKindError(f"{part.kind} in system turn", self._provider_name)
        return "".join(p.text or "" for p in content.parts)

    def _part_to_item(self, part: Part) -> dict[str, Any]:
        if part.inline_data is None:
            return {"type": "text", "text": part.text or ""}

        blob = part.inline_data
        mime = blob.mime_type.lower()
        if mime.startswith("image/"):
            self._require("image", mime)
            return {"type": "image_url", "image_url": {"url": f"data:{mime};base64,{blob.data}"}}
        if mime.startswith("audio/"):
            self._require("audio", mime)
            fmt = _AUDIO_FORMATS.get(mime)
            if fmt is None:
                raise UnsupportedContentKindError(mime, self._provider_name)
            return {"type": "input_audio", "input_audio": {"data": blob.data, "format": fmt}}
        if mime == "application/pdf":
            self._require("file", mime)
            return {"type": "file", "file": {"filename": "document.pdf", "file_data": f"data:{mime};base64,{blob.data}"}}
        raise UnsupportedContentKindError(mime, self._provider_name)

    def _require(self, modality: str, mime: str) -> None:
        if modality not in self._modalities:
            raise UnsupportedContentKindError(mime, self._provider_name)

    # -- wire -> canonical ---------------------------------------------------

    def from_wire_response(self, response: Any) -> GenerationResponse:
        data = _as_dict(response)
        candidates = []
        for choice in data.get("choices") or []:
            choice = _as_dict(choice)
            message = _as_dict(choice.get("message"))
            parts = self._message_parts(message)
            for raw in message.get("tool_calls") or []:
                call = _as_dict(raw)
                function = _as_dict(call.get("function"))
                parts.append(Part(function_call=FunctionCall(
                    id=_call_id(call.get("id")),
                    name=function.get("name") or "",
                    args=_parse_args(function.get("arguments")),
                )))
            candidates.append(Candidate(
                content=Content(role=Role.MODEL, parts=parts),
                finish_reason=_finish_reason(choice.get("finish_reason")),
                index=int(choice.get("index") or 0),
            ))
        return GenerationResponse(
            candidates=candidates,
            usage_metadata=_usage(data.get("usage")),
            response_id=data.get("id"),
            model_version=data.get("model"),
        )

    def from_wire_chunk(self, chunk: Any, tool_calls: ToolCallAccumulator | None = None) -> GenerationResponse:
        data = _as_dict(chunk)
        candidates = []
        for choice in data.get("choices") or []:
            choice = _as_dict(choice)
            delta = _as_dict(choice.get("delta"))
            finish = choice.get("finish_reason")
            parts = self._message_parts(delta)

            for raw in delta.get("tool_calls") or []:
                if tool_calls is not None:
                    tool_calls.add(raw)
                    continue
                call = _as_dict(raw)
                function = _as_dict(call.get("function"))
                if function.get("name"):
                    parts.append(Part(function_call=FunctionCall(
                        id=_call_id(call.get("id")),
                        name=function["name"],
                        args=_parse_args(function.get("arguments")),
                    )))
            if finish and tool_calls is not None:
                parts.extend(Part(function_call=fc) for fc in tool_calls.drain())

            candidates.append(Candidate(
                content=Content(role=Role.MODEL, parts=parts),
                finish_reason=_finish_reason(finish),
                index=int(choice.get("index") or 0),
            ))
        return GenerationResponse(
            candidates=candidates,
            usage_metadata=_usage(data.get("usage")),
            response_id=data.get("id"),
            model_version=data.get("model"),
        )

    def from_wire_embedding_response(self, response: Any) -> EmbedResponse:
        data = _as_dict(response)
        rows = sorted((_as_dict(row) for row in data.get("data") or []), key=lambda r: r.get("index") or 0)
        return EmbedResponse(
            embeddings=[list(row.get("embedding") or []) for row in rows],
            usage_metadata=_usage(data.get("usage")),
        )

    @staticmethod
    def _message_parts(message: dict[str, Any]) -> list[Part]:
        parts: list[Part] = []
        if message.get("reasoning_content"):
            parts.append(Part(text=message["reasoning_content"], thought=True))
        if message.get("content"):
            parts.append(Part(text=message["content"]))
        return parts

    # -- canonical response -> wire (inverse of from_wire_response) ---------

    def to_wire_response(self, response: GenerationResponse) -> dict[str, Any]:
        choices = []
        for candidate in response.candidates:
            message = self._model_message(candidate.content)
            choices.append({
                "index": candidate.index,
                "message": message,
                "finish_reason": _WIRE_FINISH_REASONS.get(candidate.finish_reason) if candidate.finish_reason else None,
            })
        wire: dict[str, Any] = {
            "id": response.response_id,
            "object": "chat.completion",
            "model": response.model_version,
            "choices": choices,
        }
        if response.usage_metadata is not None:
            usage = response.usage_metadata
            wire["usage"] = {
                "prompt_tokens": usage.prompt_token_count,
                "completion_tokens": usage.candidates_token_count,
                "total_tokens": usage.total_token_count,
                "prompt_tokens_details": {"cached_tokens": usage.cached_content_token_count},
            }
        return wire
