"""Tests for the history-keeping Chat engine."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from genbridge.core.errors import GenerationCancelled, ProviderError
from genbridge.core.models import (
    Candidate,
    Content,
    FinishReason,
    FunctionCall,
    GenerationResponse,
    Part,
    Role,
)
from genbridge.session.chat import Chat, StreamEventType, reply_updates
from genbridge.session.protocol import AgentMessageChunk, TextContentBlock


def _fragment(text=None, finish=None, thought=False):
    parts = [Part(text=text, thought=thought)] if text is not None else []
    return GenerationResponse(candidates=[Candidate(
        content=Content(role=Role.MODEL, parts=parts), finish_reason=finish,
    )])


def _streams(*runs):
    """Pipeline.generate_stream stand-in: one list of fragments per call."""
    calls = iter(runs)

    def _generate_stream(request, prompt_id, signal=None):
        fragments = next(calls)

        async def _gen():
            for fragment in fragments:
                yield fragment

        return _gen()

    return Mock(side_effect=_generate_stream)


@pytest.fixture
def pipeline():
    return Mock()


@pytest.fixture
def chat(pipeline):
    return Chat(pipeline, "test-model", system_instruction="be brief")


USER = Content(role=Role.USER, parts=[Part(text="hi")])


class TestSendMessage:
    async def test_commits_turn_after_success(self, chat, pipeline):
        pipeline.generate = AsyncMock(return_value=_fragment("hello", FinishReason.STOP))

        response = await chat.send_message(USER, "p")

        assert response.text == "hello"
        request = pipeline.generate.await_args.args[0]
        assert request.model == "test-model"
        assert request.system_instruction == "be brief"
        assert request.contents == [USER]
        history = chat.get_history()
        assert [c.role for c in history] == [Role.USER, Role.MODEL]
        assert history[1].parts[0].text == "hello"

    async def test_failure_leaves_history_untouched(self, chat, pipeline):
        chat.add_history(Content(role=Role.USER, parts=[Part(text="earlier")]))
        pipeline.generate = AsyncMock(side_effect=RuntimeError("down"))

        with pytest.raises(RuntimeError):
            await chat.send_message(USER, "p")

        assert len(chat.get_history()) == 1

    async def test_history_is_sent_with_next_message(self, chat, pipeline):
        pipeline.generate = AsyncMock(return_value=_fragment("one", FinishReason.STOP))
        await chat.send_message(USER, "p1")
        await chat.send_message(Content(parts=[Part(text="again")]), "p2")
        assert len(pipeline.generate.await_args.args[0].contents) == 3


class TestSendMessageStream:
    async def test_yields_chunks_and_consolidates_history(self, chat, pipeline):
        pipeline.generate_stream = _streams([
            _fragment("Hel"), _fragment("lo"), _fragment("", FinishReason.STOP),
        ])

        events = [event async for event in await chat.send_message_stream(USER, "p")]

        assert all(e.type is StreamEventType.CHUNK for e in events)
        assert "".join(e.value.text for e in events) == "Hello"
        reply = chat.get_history()[-1]
        assert reply.role is Role.MODEL
        assert reply.parts[0].text == "Hello"

    async def test_thoughts_kept_separate_from_text(self, chat, pipeline):
        pipeline.generate_stream = _streams([
            _fragment("thinking", thought=True), _fragment("answer", FinishReason.STOP),
        ])
        [event async for event in await chat.send_message_stream(USER, "p")]
        parts = chat.get_history()[-1].parts
        assert [(p.text, p.thought) for p in parts] == [("thinking", True), ("answer", False)]

    async def test_empty_stream_is_retried_once(self, chat, pipeline):
        pipeline.generate_stream = _streams([], [_fragment("second try", FinishReason.STOP)])

        events = [event async for event in await chat.send_message_stream(USER, "p")]

        assert events[0].type is StreamEventType.RETRY
        assert events[1].value.text == "second try"
        assert pipeline.generate_stream.call_count == 2

    async def test_repeatedly_empty_stream_raises(self, chat, pipeline):
        pipeline.generate_stream = _streams([], [])
        with pytest.raises(ProviderError):
            [event async for event in await chat.send_message_stream(USER, "p")]
        assert chat.get_history() == []

    async def test_finished_without_content_records_user_turn_only(self, chat, pipeline):
        pipeline.generate_stream = _streams([_fragment(None, FinishReason.STOP)])
        [event async for event in await chat.send_message_stream(USER, "p")]
        assert chat.get_history() == [USER]


class TestPendingSyncEvents:
    def test_drain_returns_in_order_and_clears(self, chat):
        first = AgentMessageChunk(content=TextContentBlock(text="a"))
        second = AgentMessageChunk(content=TextContentBlock(text="b"))
        chat.queue_sync_stream_event(first)
        chat.queue_sync_stream_event(second)

        assert chat.drain_pending_sync_stream_events() == [first, second]
        assert chat.drain_pending_sync_stream_events() == []


class TestReplyAfterCancel:
    async def test_reply_is_kept_and_queued_without_tool_calls(self, chat, pipeline):
        signal = asyncio.Event()
        reply = GenerationResponse(candidates=[Candidate(content=Content(role=Role.MODEL, parts=[
            Part(text="half an answer"),
            Part(function_call=FunctionCall(id="c1", name="ls", args={})),
        ]))])

        async def _generate(request, prompt_id, sig):
            sig.set()
            return reply

        pipeline.generate = AsyncMock(side_effect=_generate)

        with pytest.raises(GenerationCancelled):
            await chat.send_message(USER, "p", signal)

        history = chat.get_history()
        assert history[0] == USER
        assert [p.kind for p in history[1].parts] == ["text"]
        [queued] = chat.drain_pending_sync_stream_events()
        assert queued == AgentMessageChunk(content=TextContentBlock(text="half an answer"))

    async def test_tool_call_only_reply_keeps_user_turn(self, chat, pipeline):
        signal = asyncio.Event()

        async def _generate(request, prompt_id, sig):
            sig.set()
            return _fragment(None, FinishReason.TOOL_CALL)

        pipeline.generate = AsyncMock(side_effect=_generate)

        with pytest.raises(GenerationCancelled):
            await chat.send_message(USER, "p", signal)

        assert chat.get_history() == [USER]
        assert chat.drain_pending_sync_stream_events() == []


class TestReplyUpdates:
    def test_text_and_thought_parts_map_to_chunks(self):
        updates = reply_updates([
            Part(text="hmm", thought=True),
            Part(text="answer"),
            Part(text=""),
            Part(function_call=FunctionCall(name="ls")),
        ])
        assert [u.session_update for u in updates] == ["agent_thought_chunk", "agent_message_chunk"]
