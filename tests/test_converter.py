"""Tests for WireConverter — request shaping, response and chunk parsing."""

from __future__ import annotations

import json

import pytest

from genbridge.core.config import PipelineConfig, SamplingParams
from genbridge.core.errors import UnsupportedContentKindError
from genbridge.core.models import (
    Blob,
    Candidate,
    Content,
    FinishReason,
    FunctionCall,
    FunctionDeclaration,
    FunctionResponse,
    GenerationOverrides,
    GenerationRequest,
    GenerationResponse,
    Part,
    Role,
    UsageMetadata,
)
from genbridge.pipeline.converter import ToolCallAccumulator, WireConverter


@pytest.fixture
def converter():
    return WireConverter()


@pytest.fixture
def config():
    return PipelineConfig(model="gpt-4")


class TestToWireRequest:
    def test_text_turns_and_system_instruction(self, converter, config):
        request = GenerationRequest(
            contents=[
                Content(role=Role.USER, parts=[Part(text="Hello"), Part(text=" there")]),
                Content(role=Role.MODEL, parts=[Part(text="Hi!")]),
            ],
            system_instruction="Be brief.",
        )
        wire = converter.to_wire_request(request, config)

        assert wire["model"] == "gpt-4"
        assert wire["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hello there"},
            {"role": "assistant", "content": "Hi!"},
        ]
        assert "stream" not in wire

    def test_request_model_wins_over_config(self, converter, config):
        wire = converter.to_wire_request(GenerationRequest(model="gpt-4o"), config)
        assert wire["model"] == "gpt-4o"

    def test_function_call_and_response(self, converter, config):
        request = GenerationRequest(contents=[
            Content(role=Role.USER, parts=[Part(text="list files")]),
            Content(role=Role.MODEL, parts=[
                Part(function_call=FunctionCall(id="call-1", name="ls", args={"path": "."})),
            ]),
            Content(role=Role.USER, parts=[
                Part(function_response=FunctionResponse(id="call-1", name="ls", response={"output": "a.txt"})),
            ]),
        ])
        messages = converter.to_wire_request(request, config)["messages"]

        assert messages[1] == {
            "role": "assistant",
            "content": None,
            "tool_calls": [{
                "id": "call-1",
                "type": "function",
                "function": {"name": "ls", "arguments": json.dumps({"path": "."})},
            }],
        }
        assert messages[2] == {"role": "tool", "tool_call_id": "call-1", "content": "a.txt"}

    def test_structured_function_response_is_serialized(self, converter, config):
        request = GenerationRequest(contents=[
            Content(role=Role.USER, parts=[
                Part(function_response=FunctionResponse(id="c", name="stat", response={"size": 3})),
            ]),
        ])
        messages = converter.to_wire_request(request, config)["messages"]
        assert messages == [{"role": "tool", "tool_call_id": "c", "content": '{"size": 3}'}]

    def test_image_becomes_data_url(self, converter, config):
        request = GenerationRequest(contents=[
            Content(role=Role.USER, parts=[
                Part(text="what is this?"),
                Part(inline_data=Blob(mime_type="image/png", data="AAAA")),
            ]),
        ])
        content = converter.to_wire_request(request, config)["messages"][0]["content"]
        assert content == [
            {"type": "text", "text": "what is this?"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
        ]

    def test_audio_on_text_only_provider_is_rejected(self, config):
        converter = WireConverter(frozenset({"text"}), provider_name="deepseek")
        request = GenerationRequest(contents=[
            Content(role=Role.USER, parts=[Part(inline_data=Blob(mime_type="audio/wav", data="AAAA"))]),
        ])
        with pytest.raises(UnsupportedContentKindError, match="deepseek"):
            converter.to_wire_request(request, config)

    def test_unknown_media_type_is_rejected(self, converter, config):
        request = GenerationRequest(contents=[
            Content(role=Role.USER, parts=[Part(inline_data=Blob(mime_type="video/mp4", data="AAAA"))]),
        ])
        with pytest.raises(UnsupportedContentKindError):
            converter.to_wire_request(request, config)

    def test_config_sampling_params_take_precedence(self, converter):
        config = PipelineConfig(model="gpt-4", sampling_params=SamplingParams(temperature=0.7, top_p=0.9))
        request = GenerationRequest(config=GenerationOverrides(temperature=0.1, max_output_tokens=256))
        wire = converter.to_wire_request(request, config)
        assert wire["temperature"] == 0.7
        assert wire["top_p"] == 0.9
        assert wire["max_tokens"] == 256

    def test_tools_are_declared(self, converter, config):
        request = GenerationRequest(tools=[FunctionDeclaration(name="ls", description="List files")])
        wire = converter.to_wire_request(request, config)
        assert wire["tools"][0]["function"]["name"] == "ls"
        assert wire["tools"][0]["function"]["parameters"] == {"type": "object", "properties": {}}


class TestFromWireResponse:
    def test_text_response(self, converter):
        response = converter.from_wire_response({
            "id": "cmpl-1",
            "model": "gpt-4",
            "choices": [{"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": "Hello"}}],
            "usage": {"prompt_tokens": 5, "completion_tokens": 1, "total_tokens": 6},
        })
        assert response.text == "Hello"
        assert response.finish_reason is FinishReason.STOP
        assert response.usage_metadata == UsageMetadata(
            prompt_token_count=5, candidates_token_count=1, total_token_count=6,
        )

    def test_zero_choices_gives_zero_candidates(self, converter):
        response = converter.from_wire_response({"id": "cmpl-1", "choices": []})
        assert response.candidates == []
        assert response.text == ""

    def test_partially_populated_response(self, converter):
        response = converter.from_wire_response({"choices": [{"message": {}}]})
        assert len(response.candidates) == 1
        assert response.parts == []
        assert response.finish_reason is None
        assert response.usage_metadata is None

    def test_tool_calls_and_reasoning(self, converter):
        response = converter.from_wire_response({
            "choices": [{
                "finish_reason": "tool_calls",
                "message": {
                    "reasoning_content": "thinking",
                    "tool_calls": [{"id": "c1", "function": {"name": "ls", "arguments": '{"path": "/"}'}}],
                },
            }],
        })
        assert response.parts[0].thought is True
        assert response.function_calls == [FunctionCall(id="c1", name="ls", args={"path": "/"})]
        assert response.finish_reason is FinishReason.TOOL_CALL

    def test_missing_tool_call_id_is_generated(self, converter):
        response = converter.from_wire_response({
            "choices": [{"message": {"tool_calls": [
                {"function": {"name": "ls", "arguments": "{}"}},
                {"function": {"name": "cat", "arguments": "{}"}},
            ]}}],
        })
        ids = [fc.id for fc in response.function_calls]
        assert all(i.startswith("call_") for i in ids)
        assert len(set(ids)) == 2

    def test_bad_tool_arguments_default_to_empty(self, converter):
        response = converter.from_wire_response({
            "choices": [{"message": {"tool_calls": [{"id": "c1", "function": {"name": "ls", "arguments": "{oops"}}]}}],
        })
        assert response.function_calls[0].args == {}

    def test_round_trip_text_response(self, converter):
        original = GenerationResponse(
            candidates=[Candidate(
                content=Content(role=Role.MODEL, parts=[Part(text="Round trip")]),
                finish_reason=FinishReason.STOP,
            )],
            usage_metadata=UsageMetadata(prompt_token_count=3, candidates_token_count=2, total_token_count=5),
            response_id="cmpl-9",
            model_version="gpt-4",
        )
        assert converter.from_wire_response(converter.to_wire_response(original)) == original


class TestFromWireChunk:
    def test_text_delta(self, converter):
        fragment = converter.from_wire_chunk({"choices": [{"delta": {"content": "Hel"}}]})
        assert fragment.text == "Hel"
        assert fragment.finish_reason is None

    def test_usage_only_chunk(self, converter):
        fragment = converter.from_wire_chunk({"choices": [], "usage": {"prompt_tokens": 4, "completion_tokens": 2}})
        assert fragment.candidates == []
        assert fragment.usage_metadata.total_token_count == 6

    def test_tool_call_deltas_are_accumulated(self, converter):
        calls = ToolCallAccumulator()
        first = converter.from_wire_chunk({"choices": [{"delta": {"tool_calls": [
            {"index": 0, "id": "c1", "function": {"name": "ls", "arguments": '{"pa'}},
        ]}}]}, calls)
        converter.from_wire_chunk({"choices": [{"delta": {"tool_calls": [
            {"index": 0, "function": {"arguments": 'th": "."}'}},
        ]}}]}, calls)
        last = converter.from_wire_chunk({"choices": [{"delta": {}, "finish_reason": "tool_calls"}]}, calls)

        assert first.function_calls == []
        assert last.function_calls == [FunctionCall(id="c1", name="ls", args={"path": "."})]
        assert last.finish_reason is FinishReason.TOOL_CALL
        assert not calls

    def test_accumulated_call_without_id_gets_one(self, converter):
        calls = ToolCallAccumulator()
        converter.from_wire_chunk({"choices": [{"delta": {"tool_calls": [
            {"index": 0, "function": {"name": "ls", "arguments": "{}"}},
        ]}}]}, calls)
        last = converter.from_wire_chunk({"choices": [{"delta": {}, "finish_reason": "tool_calls"}]}, calls)
        assert last.function_calls[0].id.startswith("call_")


class TestEmbeddings:
    def test_embedding_round(self, converter, config):
        from genbridge.core.models import EmbedRequest

        wire = converter.to_wire_embedding_request(EmbedRequest(contents=["a", "b"]), config)
        assert wire == {"model": "gpt-4", "input": ["a", "b"]}

        response = converter.from_wire_embedding_response({"data": [
            {"index": 1, "embedding": [0.2]},
            {"index": 0, "embedding": [0.1]},
        ]})
        assert response.embeddings == [[0.1], [0.2]]
