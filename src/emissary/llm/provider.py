"""Model gateway — one interface over every backend, unified via litellm.

litellm handles provider detection from the model string prefix
(e.g. "anthropic/claude-...", "openai/gpt-...") and normalizes
responses to the OpenAI shape, which we convert to our own
``CompletionResponse`` / ``CompletionChunk`` types.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)

from emissary.llm.message import (
    CompletionChunk,
    CompletionRequest,
    CompletionResponse,
    FinishReason,
    TokenUsage,
    ToolCall,
)

if TYPE_CHECKING:
    from litellm import CustomStreamWrapper, ModelResponse, ModelResponseStream

logger = logging.getLogger(__name__)

_FINISH_REASONS = {"stop", "length", "tool_calls", "content_filter"}


@dataclass
class ProviderConfig:
    """Configuration for a model gateway."""

    model: str
    temperature: float | None = None
    max_tokens: int | None = None


@runtime_checkable
class ChatProvider(Protocol):
    """Protocol for model gateways."""

    @property
    def config(self) -> ProviderConfig: ...

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Issue one non-streaming completion."""
        ...

    def stream(self, request: CompletionRequest) -> AsyncIterator[CompletionChunk]:
        """Stream a completion as incremental chunks."""
        ...


# ---------------------------------------------------------------------------
# litellm provider
# ---------------------------------------------------------------------------


@dataclass
class LiteLLMProvider:
    """Model gateway backed by litellm.

    Request fields override the provider config; API keys come from
    the environment.
    """

    _config: ProviderConfig

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        kwargs = self._build_kwargs(request)
        response = await _acompletion_with_retry(**kwargs)
        return _response_from_litellm(response)

    async def stream(self, request: CompletionRequest) -> AsyncIterator[CompletionChunk]:
        kwargs = self._build_kwargs(request)
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}

        response = await _acompletion_with_retry(**kwargs)

        async for chunk in response:  # type: ignore[union-attr]
            yield _chunk_from_litellm(chunk)

    def _build_kwargs(self, request: CompletionRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": request.model or self._config.model,
            "messages": [m.to_openai_dict() for m in request.messages],
        }

        if request.tools:
            kwargs["tools"] = [t.to_openai_spec() for t in request.tools]
            if request.tool_choice:
                kwargs["tool_choice"] = request.tool_choice

        temperature = (
            request.temperature
            if request.temperature is not None
            else self._config.temperature
        )
        if temperature is not None:
            kwargs["temperature"] = temperature

        max_tokens = request.max_tokens or self._config.max_tokens
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        return kwargs


@retry(
    retry=retry_if_exception_type((ConnectionError, TimeoutError, OSError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=30),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _acompletion_with_retry(**kwargs: Any) -> CustomStreamWrapper | ModelResponse:
    """Call litellm.acompletion with retry on transient errors."""
    import litellm

    return await litellm.acompletion(**kwargs)


def _finish_reason(value: str | None) -> FinishReason:
    if value in _FINISH_REASONS:
        return value  # type: ignore[return-value]
    return "stop"


def _parse_arguments(name: str, raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        args = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Failed to parse tool call arguments for %s: %s", name, raw[:200])
        return {}
    return args if isinstance(args, dict) else {}


def _usage(usage: Any) -> TokenUsage:
    if not usage:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        total_tokens=getattr(usage, "total_tokens", 0) or 0,
    )


def _response_from_litellm(response: ModelResponse) -> CompletionResponse:
    """Convert a litellm ModelResponse into a CompletionResponse.

    litellm responses have the OpenAI shape:
      response.choices[0].message.{content, tool_calls},
      response.choices[0].finish_reason, response.usage
    """
    choices = getattr(response, "choices", None)
    if not choices:
        return CompletionResponse(usage=_usage(getattr(response, "usage", None)))

    choice = choices[0]
    message = choice.message

    tool_calls = []
    for tc in getattr(message, "tool_calls", None) or []:
        name = tc.function.name if tc.function else ""
        arguments = tc.function.arguments if tc.function else None
        tool_calls.append(
            ToolCall(id=tc.id or "", name=name or "", arguments=_parse_arguments(name, arguments))
        )

    return CompletionResponse(
        content=message.content or "",
        tool_calls=tool_calls,
        usage=_usage(getattr(response, "usage", None)),
        finish_reason=_finish_reason(choice.finish_reason),
    )


def _chunk_from_litellm(chunk: ModelResponseStream) -> CompletionChunk:
    """Convert a litellm ModelResponseStream chunk to a CompletionChunk."""
    result = CompletionChunk()

    choices = getattr(chunk, "choices", None)
    if choices:
        choice = choices[0]
        delta = choice.delta
        if choice.finish_reason:
            result.finish_reason = _finish_reason(choice.finish_reason)

        if delta.content is not None:
            result.content = delta.content

        if delta.tool_calls:
            result.tool_calls = []
            for tc in delta.tool_calls:
                result.tool_calls.append(
                    {
                        "index": tc.index,
                        "id": tc.id,
                        "name": tc.function.name if tc.function else None,
                        "arguments": tc.function.arguments if tc.function else None,
                    }
                )

    usage = getattr(chunk, "usage", None)
    if usage:
        result.usage = _usage(usage)

    return result


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_provider(
    model: str,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> ChatProvider:
    """Create a LiteLLM provider.

    Args:
        model: Model name with provider prefix (e.g. "openai/gpt-4o").
        temperature: Default sampling temperature.
        max_tokens: Default max output tokens.
    """
    config = ProviderConfig(model=model, temperature=temperature, max_tokens=max_tokens)
    return LiteLLMProvider(_config=config)
