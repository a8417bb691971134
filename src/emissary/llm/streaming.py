"""Fold a streamed completion back into a single response."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterable
from typing import Any, Callable

from emissary.llm.message import (
    CompletionChunk,
    CompletionResponse,
    FinishReason,
    TokenUsage,
    ToolCall,
)

logger = logging.getLogger(__name__)

OnText = Callable[[str], None] | None


async def accumulate(
    chunks: AsyncIterable[CompletionChunk],
    on_text: OnText = None,
) -> CompletionResponse:
    """Consume a chunk stream and build the equivalent CompletionResponse.

    Tool-call deltas are merged by their ``index``: the id and name arrive
    once, the arguments arrive as JSON fragments that are concatenated.
    """
    text_buffer = ""
    tool_call_buffers: dict[int, dict[str, str]] = {}
    usage = TokenUsage()
    finish_reason: FinishReason = "stop"

    async for chunk in chunks:
        if chunk.finish_reason:
            finish_reason = chunk.finish_reason

        if chunk.content:
            text_buffer += chunk.content
            if on_text:
                on_text(chunk.content)
                # Let listeners run between chunks
                await asyncio.sleep(0)

        for tc_delta in chunk.tool_calls or []:
            idx = tc_delta.get("index", 0) or 0
            buf = tool_call_buffers.setdefault(idx, {"id": "", "name": "", "arguments": ""})
            if tc_delta.get("id"):
                buf["id"] = tc_delta["id"]
            if tc_delta.get("name"):
                buf["name"] = tc_delta["name"]
            if tc_delta.get("arguments"):
                buf["arguments"] += tc_delta["arguments"]

        if chunk.usage:
            usage = chunk.usage

    tool_calls = [
        ToolCall(
            id=buf["id"],
            name=buf["name"],
            arguments=_decode_arguments(buf["name"], buf["arguments"]),
        )
        for _idx, buf in sorted(tool_call_buffers.items())
    ]

    return CompletionResponse(
        content=text_buffer,
        tool_calls=tool_calls,
        usage=usage,
        finish_reason=finish_reason,
    )


def _decode_arguments(name: str, raw: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        args = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Failed to parse streamed arguments for %s: %s", name, raw[:200])
        return {}
    return args if isinstance(args, dict) else {}
