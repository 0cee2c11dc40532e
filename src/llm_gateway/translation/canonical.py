"""Canonical request shared by all protocol adapters.

Adapters parse their wire format into a ``CanonicalRequest`` built from
LangChain message types, and format LangChain ``AIMessage`` /
``AIMessageChunk`` objects back into their wire format.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage
from pydantic import ValidationError

from llm_gateway.errors import GatewayError, InvalidRequest
from llm_gateway.models.catalog import Protocol


@dataclass
class CanonicalRequest:
    """Protocol-independent request passed to the dispatcher."""

    protocol: Protocol
    model: str
    messages: list[BaseMessage]
    tools: list[dict[str, Any]] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)
    stream: bool = False
    thinking: bool = False
    extra_body: dict[str, Any] | None = None
    upstream_model: str | None = None


@dataclass(frozen=True)
class ProtocolAdapter:
    """One wire format: how to parse requests and frame responses.

    The set of adapters is closed and registered by route in
    ``llm_gateway.routes.proxy``.
    """

    protocol: Protocol
    routes: tuple[str, ...]
    parse_request: Callable[[dict, dict, str], CanonicalRequest]
    format_response: Callable[[AIMessage, CanonicalRequest], dict]
    new_stream_state: Callable[[CanonicalRequest], Any]
    stream_start: Callable[[Any], Iterable[dict]]
    format_stream_chunk: Callable[[AIMessageChunk, Any], Iterable[dict]]
    stream_end: Callable[[Any, GatewayError | None], Iterable[dict]]
    format_error: Callable[[GatewayError], dict]


def parse_model(model_cls, body: dict):
    """Validate a request body, raising InvalidRequest on failure."""
    try:
        return model_cls.model_validate(body)
    except ValidationError as e:
        raise InvalidRequest(f"Invalid request body: {e}") from e


def message_text(content: str | list) -> str:
    """Flatten LangChain message content to plain text."""
    if isinstance(content, str):
        return content
    parts = []
    for item in content:
        if isinstance(item, str):
            parts.append(item)
        elif isinstance(item, dict) and item.get("type") == "text":
            parts.append(item.get("text", ""))
    return "".join(parts)


def usage_counts(message: AIMessage) -> tuple[int, int]:
    """Return (input_tokens, output_tokens) from usage metadata."""
    usage_meta = getattr(message, "usage_metadata", None) or {}
    return usage_meta.get("input_tokens", 0), usage_meta.get("output_tokens", 0)


def finish_reason_of(message: AIMessage) -> str | None:
    response_meta = getattr(message, "response_metadata", None) or {}
    return response_meta.get("finish_reason")


def parse_arguments(arguments: str | dict | None) -> dict[str, Any]:
    """Decode a JSON tool-call argument string."""
    if isinstance(arguments, dict):
        return arguments
    if not arguments:
        return {}
    try:
        value = json.loads(arguments)
    except json.JSONDecodeError as e:
        raise InvalidRequest(f"Tool call arguments are not valid JSON: {e}") from e
    return value if isinstance(value, dict) else {"value": value}
