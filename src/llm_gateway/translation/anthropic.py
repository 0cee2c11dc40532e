"""Anthropic Messages API adapter."""

import uuid
from dataclasses import dataclass, field
from typing import Any, Generator, Literal

from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from llm_gateway.errors import GatewayError
from llm_gateway.models.anthropic import (
    Message,
    MessagesRequest,
    MessagesResponse,
    TextBlock,
    Tool,
    ToolUseBlock,
    Usage,
)
from llm_gateway.models.catalog import Protocol
from llm_gateway.translation.canonical import (
    CanonicalRequest,
    ProtocolAdapter,
    finish_reason_of,
    message_text,
    parse_model,
    usage_counts,
)
from llm_gateway.translation.streaming import make_event

StopReason = Literal["end_turn", "max_tokens", "stop_sequence", "tool_use"]

ERROR_TYPES = {
    "invalid_request": "invalid_request_error",
    "unsupported_capability": "invalid_request_error",
    "unauthorized": "authentication_error",
    "unknown_model": "not_found_error",
    "account_quota": "rate_limit_error",
    "no_available_account": "overloaded_error",
}


# Request translation


def translate_content_block(block: dict[str, Any]) -> dict[str, Any]:
    """Translate a single content block to LangChain format."""
    if block["type"] == "text":
        return {"type": "text", "text": block["text"]}
    elif block["type"] == "image":
        source = block["source"]
        if source["type"] == "base64":
            data_url = f"data:{source['media_type']};base64,{source['data']}"
            return {"type": "image_url", "image_url": {"url": data_url}}
        else:
            return {"type": "image_url", "image_url": {"url": source["url"]}}
    elif block["type"] == "tool_result":
        # Tool results are handled specially in the message
        return {"type": "text", "text": str(block.get("content", ""))}
    return block


def translate_assistant_message(msg: Message) -> list[BaseMessage]:
    """Translate assistant message, extracting tool_use into tool_calls.

    Anthropic puts tool_use blocks in content[], but OpenAI/LangChain
    expects them in the tool_calls field of AIMessage. Thinking blocks from
    earlier turns are dropped.
    """
    if isinstance(msg.content, str):
        return [AIMessage(content=msg.content)]

    text_parts = []
    tool_calls = []

    for block in msg.content:
        if block["type"] == "text":
            text_parts.append(block["text"])
        elif block["type"] == "tool_use":
            tool_calls.append({
                "id": block["id"],
                "name": block["name"],
                "args": block["input"],
            })

    text = "\n".join(text_parts) if text_parts else ""

    if tool_calls:
        return [AIMessage(content=text, tool_calls=tool_calls)]
    else:
        return [AIMessage(content=text)]


def translate_user_message(msg: Message) -> list[BaseMessage]:
    """Translate user message, splitting tool_results into ToolMessages.

    Anthropic puts tool_result blocks in user message content[], but
    OpenAI/LangChain expects separate messages with role="tool".
    """
    if isinstance(msg.content, str):
        return [HumanMessage(content=msg.content)]

    tool_results = []
    other_content = []

    for block in msg.content:
        if block["type"] == "tool_result":
            tool_results.append(block)
        else:
            other_content.append(translate_content_block(block))

    result: list[BaseMessage] = []

    # Tool results must come first to follow the assistant's tool calls
    for tr in tool_results:
        content = tr.get("content", "")
        if isinstance(content, list):
            text_parts = []
            for item in content:
                if isinstance(item, dict) and item.get("type") == "text":
                    text_parts.append(item.get("text", ""))
                elif isinstance(item, str):
                    text_parts.append(item)
            content = "\n".join(text_parts)
        result.append(ToolMessage(
            content=str(content),
            tool_call_id=tr["tool_use_id"],
        ))

    if other_content:
        result.append(HumanMessage(content=other_content))

    return result


def translate_messages(
    messages: list[Message],
    system: str | list[TextBlock] | None,
) -> list[BaseMessage]:
    """Translate Anthropic messages to LangChain messages."""
    result: list[BaseMessage] = []

    if system:
        if isinstance(system, str):
            system_text = system
        else:
            system_text = "\n".join(block.text for block in system)
        result.append(SystemMessage(content=system_text))

    for msg in messages:
        if msg.role == "assistant":
            result.extend(translate_assistant_message(msg))
        else:  # user
            result.extend(translate_user_message(msg))

    return result


def translate_tools(tools: list[Tool]) -> list[dict[str, Any]]:
    """Translate Anthropic tools to OpenAI function format."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.input_schema,
            },
        }
        for tool in tools
    ]


def build_langchain_kwargs(request: MessagesRequest) -> dict[str, Any]:
    """Build kwargs for LangChain model invocation."""
    kwargs: dict[str, Any] = {
        "max_tokens": request.max_tokens,
    }

    if request.temperature is not None:
        kwargs["temperature"] = request.temperature

    if request.top_p is not None:
        kwargs["top_p"] = request.top_p

    if request.stop_sequences:
        kwargs["stop"] = request.stop_sequences

    return kwargs


def parse_request(body: dict, path_params: dict, path: str) -> CanonicalRequest:
    """Parse a /v1/messages body into a canonical request."""
    request = parse_model(MessagesRequest, body)
    return CanonicalRequest(
        protocol=Protocol.ANTHROPIC,
        model=request.model,
        messages=translate_messages(request.messages, request.system),
        tools=translate_tools(request.tools) if request.tools else [],
        params=build_langchain_kwargs(request),
        stream=request.stream,
        thinking=request.thinking is not None and request.thinking.type == "enabled",
    )


# Response translation


def map_stop_reason(finish_reason: str | None) -> StopReason:
    """Map OpenAI finish reason to Anthropic stop reason."""
    mapping = {
        "stop": "end_turn",
        "length": "max_tokens",
        "tool_calls": "tool_use",
        "content_filter": "end_turn",
    }
    return mapping.get(finish_reason or "", "end_turn")


def generate_message_id() -> str:
    """Generate a unique message ID."""
    return f"msg_gw_{uuid.uuid4().hex[:24]}"


def translate_response(ai_message: AIMessage, model: str) -> MessagesResponse:
    """Translate LangChain AIMessage to Anthropic MessagesResponse."""
    content: list[TextBlock | ToolUseBlock] = []

    text = message_text(ai_message.content) if ai_message.content else ""
    if text:
        content.append(TextBlock(type="text", text=text))

    if ai_message.tool_calls:
        for tool_call in ai_message.tool_calls:
            content.append(
                ToolUseBlock(
                    type="tool_use",
                    id=tool_call["id"],
                    name=tool_call["name"],
                    input=tool_call["args"],
                )
            )

    input_tokens, output_tokens = usage_counts(ai_message)

    return MessagesResponse(
        id=generate_message_id(),
        type="message",
        role="assistant",
        model=model,
        content=content,
        stop_reason=map_stop_reason(finish_reason_of(ai_message)),
        usage=Usage(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def format_response(ai_message: AIMessage, request: CanonicalRequest) -> dict:
    return translate_response(ai_message, request.model).model_dump()


def format_error(error: GatewayError) -> dict:
    """Anthropic-style error body."""
    return {
        "type": "error",
        "error": {
            "type": ERROR_TYPES.get(error.code, "api_error"),
            "message": error.message,
        },
    }


# Streaming


@dataclass
class StreamingState:
    """Track state during streaming response."""

    model: str
    message_id: str = field(default_factory=generate_message_id)
    current_block_index: int = 0
    has_text: bool = False
    tool_call_ids: dict[int, str] = field(default_factory=dict)
    input_tokens: int = 0
    output_tokens: int = 0
    finish_reason: str | None = None


def new_stream_state(request: CanonicalRequest) -> StreamingState:
    return StreamingState(model=request.model)


def translate_stream_start(state: StreamingState) -> Generator[dict, None, None]:
    """Generate message_start and content_block_start events.

    Args:
        state: The streaming state to use.

    Yields:
        SSE event dicts for message_start and content_block_start.
    """
    yield make_event(
        "message_start",
        {
            "type": "message_start",
            "message": {
                "id": state.message_id,
                "type": "message",
                "role": "assistant",
                "model": state.model,
                "content": [],
                "stop_reason": None,
                "stop_sequence": None,
                "usage": {
                    "input_tokens": state.input_tokens,
                    "output_tokens": state.output_tokens,
                },
            },
        },
    )

    # Initial content_block_start for text
    yield make_event(
        "content_block_start",
        {
            "type": "content_block_start",
            "index": 0,
            "content_block": {"type": "text", "text": ""},
        },
    )


def translate_stream_delta(
    chunk: AIMessageChunk, state: StreamingState
) -> Generator[dict, None, None]:
    """Translate AIMessageChunk to content_block_delta events.

    Args:
        chunk: The LangChain AIMessageChunk from streaming.
        state: The streaming state to update.

    Yields:
        SSE event dicts for content_block_delta events.
    """
    if chunk.response_metadata:
        state.finish_reason = chunk.response_metadata.get(
            "finish_reason", state.finish_reason
        )

    text = message_text(chunk.content) if chunk.content else ""
    if text:
        state.has_text = True
        yield make_event(
            "content_block_delta",
            {
                "type": "content_block_delta",
                "index": 0,
                "delta": {"type": "text_delta", "text": text},
            },
        )

    for tool_chunk in chunk.tool_call_chunks or []:
        tool_index = tool_chunk.get("index") or 0
        tool_id = tool_chunk.get("id")
        tool_name = tool_chunk.get("name")
        tool_args = tool_chunk.get("args") or ""

        # The block index for tools starts after the text block
        tool_block_index = state.current_block_index + 1 + tool_index

        if tool_index not in state.tool_call_ids and tool_id:
            state.tool_call_ids[tool_index] = tool_id
            yield make_event(
                "content_block_start",
                {
                    "type": "content_block_start",
                    "index": tool_block_index,
                    "content_block": {
                        "type": "tool_use",
                        "id": tool_id,
                        "name": tool_name or "",
                        "input": {},
                    },
                },
            )

        if tool_args:
            yield make_event(
                "content_block_delta",
                {
                    "type": "content_block_delta",
                    "index": tool_block_index,
                    "delta": {
                        "type": "input_json_delta",
                        "partial_json": tool_args,
                    },
                },
            )

    if chunk.usage_metadata:
        if "input_tokens" in chunk.usage_metadata:
            state.input_tokens = chunk.usage_metadata["input_tokens"]
        if "output_tokens" in chunk.usage_metadata:
            state.output_tokens = chunk.usage_metadata["output_tokens"]


def translate_stream_end(
    state: StreamingState, error: GatewayError | None = None
) -> Generator[dict, None, None]:
    """Generate final streaming events.

    On error the open blocks are closed and an ``error`` event replaces
    ``message_delta``; ``message_stop`` is always the last event.

    Args:
        state: The streaming state.
        error: Upstream failure that ended the stream, if any.

    Yields:
        SSE event dicts for content_block_stop, message_delta or error,
        and message_stop.
    """
    yield make_event(
        "content_block_stop",
        {"type": "content_block_stop", "index": 0},
    )

    for tool_index in sorted(state.tool_call_ids.keys()):
        tool_block_index = state.current_block_index + 1 + tool_index
        yield make_event(
            "content_block_stop",
            {"type": "content_block_stop", "index": tool_block_index},
        )

    if error is not None:
        yield make_event("error", format_error(error))
    else:
        yield make_event(
            "message_delta",
            {
                "type": "message_delta",
                "delta": {
                    "stop_reason": map_stop_reason(state.finish_reason),
                    "stop_sequence": None,
                },
                "usage": {"output_tokens": state.output_tokens},
            },
        )

    yield make_event(
        "message_stop",
        {"type": "message_stop"},
    )


ADAPTER = ProtocolAdapter(
    protocol=Protocol.ANTHROPIC,
    routes=("/v1/messages",),
    parse_request=parse_request,
    format_response=format_response,
    new_stream_state=new_stream_state,
    stream_start=translate_stream_start,
    format_stream_chunk=translate_stream_delta,
    stream_end=translate_stream_end,
    format_error=format_error,
)
