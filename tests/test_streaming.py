"""Tests for emissary.llm.streaming.accumulate."""

from __future__ import annotations

from collections.abc import AsyncIterator

from emissary.llm import CompletionChunk, CompletionRequest, Message, TokenUsage, accumulate

from fakes import FakeProvider, text


async def _chunks(*chunks: CompletionChunk) -> AsyncIterator[CompletionChunk]:
    for chunk in chunks:
        yield chunk


class TestAccumulate:
    async def test_text_concatenated(self) -> None:
        seen: list[str] = []
        response = await accumulate(
            _chunks(
                CompletionChunk(content="Hel"),
                CompletionChunk(content="lo"),
                CompletionChunk(finish_reason="stop", usage=TokenUsage(1, 2, 3)),
            ),
            on_text=seen.append,
        )
        assert response.content == "Hello"
        assert seen == ["Hel", "lo"]
        assert response.finish_reason == "stop"
        assert response.usage.total_tokens == 3

    async def test_tool_call_fragments_merged_by_index(self) -> None:
        response = await accumulate(
            _chunks(
                CompletionChunk(
                    tool_calls=[
                        {"index": 0, "id": "c1", "name": "calculator", "arguments": '{"expr'},
                        {"index": 1, "id": "c2", "name": "echo", "arguments": None},
                    ]
                ),
                CompletionChunk(
                    tool_calls=[
                        {"index": 0, "id": None, "name": None, "arguments": 'ession": "1 + 1"}'},
                        {"index": 1, "id": None, "name": None, "arguments": '{"message": "x"}'},
                    ]
                ),
                CompletionChunk(finish_reason="tool_calls"),
            )
        )
        assert [(c.id, c.name, c.arguments) for c in response.tool_calls] == [
            ("c1", "calculator", {"expression": "1 + 1"}),
            ("c2", "echo", {"message": "x"}),
        ]
        assert response.finish_reason == "tool_calls"

    async def test_broken_arguments_become_empty(self) -> None:
        response = await accumulate(
            _chunks(
                CompletionChunk(
                    tool_calls=[{"index": 0, "id": "c1", "name": "echo", "arguments": "{oops"}]
                )
            )
        )
        assert response.tool_calls[0].arguments == {}

    async def test_empty_stream(self) -> None:
        response = await accumulate(_chunks())
        assert response.content == ""
        assert response.tool_calls == []
        assert response.finish_reason == "stop"

    async def test_round_trip_through_provider_stream(self) -> None:
        provider = FakeProvider(text("streamed answer"))
        response = await accumulate(
            provider.stream(CompletionRequest(messages=[Message.user("hi")]))
        )
        assert response.content == "streamed answer"
