"""Model gateway — message types and the litellm-backed provider."""

from emissary.llm.message import (
    CompletionChunk,
    CompletionRequest,
    CompletionResponse,
    Message,
    TokenUsage,
    ToolCall,
    ToolDefinition,
)
from emissary.llm.provider import (
    ChatProvider,
    LiteLLMProvider,
    ProviderConfig,
    create_provider,
)
from emissary.llm.streaming import accumulate

__all__ = [
    "CompletionChunk",
    "CompletionRequest",
    "CompletionResponse",
    "Message",
    "TokenUsage",
    "ToolCall",
    "ToolDefinition",
    "ChatProvider",
    "LiteLLMProvider",
    "ProviderConfig",
    "create_provider",
    "accumulate",
]
