"""Pydantic models for LLM Gateway."""

from llm_gateway.models.anthropic import (
    ContentBlock,
    ImageBlock,
    ImageSource,
    Message,
    MessagesRequest,
    MessagesResponse,
    TextBlock,
    ThinkingConfig,
    Tool,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)
from llm_gateway.models.catalog import MODEL_CATALOG, ModelCatalogEntry, Protocol
from llm_gateway.models.config import (
    AccountConfig,
    AppConfig,
    MappingUpdate,
    ProxyConfig,
    ProxyStatus,
    UpstreamConfig,
)
from llm_gateway.models.gemini import GenerateContentRequest
from llm_gateway.models.openai import (
    ChatCompletionRequest,
    CompletionRequest,
    ResponsesRequest,
)

__all__ = [
    "AccountConfig",
    "AppConfig",
    "ChatCompletionRequest",
    "CompletionRequest",
    "ContentBlock",
    "GenerateContentRequest",
    "ImageBlock",
    "ImageSource",
    "MODEL_CATALOG",
    "MappingUpdate",
    "Message",
    "MessagesRequest",
    "MessagesResponse",
    "ModelCatalogEntry",
    "Protocol",
    "ProxyConfig",
    "ProxyStatus",
    "ResponsesRequest",
    "TextBlock",
    "ThinkingConfig",
    "Tool",
    "ToolResultBlock",
    "ToolUseBlock",
    "UpstreamConfig",
    "Usage",
]
