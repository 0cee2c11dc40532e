"""OpenAI Responses API adapter (the request shape used by Codex clients)."""

import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Generator

from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from llm_gateway.errors import GatewayError, InvalidRequest
from llm_gateway.models.catalog import Protocol
from llm_gateway.models.openai import ResponsesRequest
from llm_gateway.translation.canonical import (
    CanonicalRequest,
    ProtocolAdapter,
    message_text,
    parse_arguments,
    parse_model,
    usage_counts,
)
from llm_gateway.translation.openai import (
    build_params,
    format_error,
    image_extra_body,
    resolve_image_geometry,
)
from llm_gateway.translation.streaming import make_event

TEXT_PART_TYPES = ("input_text", "output_text", "text")


def translate_content_parts(content: str | list[dict[str, Any]]) -> str | list[dict[str, Any]]:
    """Translate Responses content parts to LangChain content."""
    if isinstance(content, str):
        return content
    parts: list[dict[str, Any]] = []
    for part in content:
        if part.get("type") in TEXT_PART_TYPES:
            parts.append({"type": "text", "text": part.get("text", "")})
        elif part.get("type") == "input_image":
            parts.append({"type": "image_url", "image_url": {"url": part.get("image_url", "")}})
    return parts


def translate_input(items: str | list[dict[str, Any]], instructions: str | None) -> list[BaseMessage]:
    """Translate Responses ``input`` items to LangChain messages.

    Consecutive ``function_call`` items are folded into one AIMessage so
    that the following ``function_call_output`` items line up with it.
    """
    result: list[BaseMessage] = []
    if instructions:
        result.append(SystemMessage(content=instructions))

    if isinstance(items, str):
        result.append(HumanMessage(content=items))
        return result

    for item in items:
        item_type = item.get("type", "message")
        if item_type == "message":
            role = item.get("role", "user")
            content = translate_content_parts(item.get("content", ""))
            if role in ("system", "developer"):
                result.append(SystemMessage(content=message_text(content)))
            elif role == "assistant":
                result.append(AIMessage(content=message_text(content)))
            else:
                result.append(HumanMessage(content=content))
        elif item_type == "function_call":
            call = {
                "id": item.get("call_id", ""),
                "name": item.get("name", ""),
                "args": parse_arguments(item.get("arguments")),
            }
            previous = result[-1] if result else None
            if isinstance(previous, AIMessage) and previous.tool_calls:
                previous.tool_calls.append(call)
            else:
                result.append(AIMessage(content="", tool_calls=[call]))
        elif item_type == "function_call_output":
            output = item.get("output", "")
            result.append(ToolMessage(
                content=output if isinstance(output, str) else json.dumps(output),
                tool_call_id=item.get("call_id", ""),
            ))
        else:
            raise InvalidRequest(f"Unsupported input item type '{item_type}'")

    return result


def translate_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert flat Responses function tools to chat-completions format.

    Built-in tools (web search, file search) have no upstream equivalent and
    are dropped.
    """
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "parameters": tool.get("parameters", {}),
            },
        }
        for tool in tools
        if tool.get("type") == "function" and "name" in tool
    ]


def parse_request(body: dict, path_params: dict, path: str) -> CanonicalRequest:
    """Parse a /v1/responses body."""
    request = parse_model(ResponsesRequest, body)
    model, aspect_ratio = resolve_image_geometry(request.model, request.size)
    return CanonicalRequest(
        protocol=Protocol.OPENAI,
        model=model,
        messages=translate_input(request.input, request.instructions),
        tools=translate_tools(request.tools or []),
        params=build_params(
            request.max_output_tokens, request.temperature, request.top_p, None
        ),
        stream=request.stream,
        extra_body=image_extra_body(aspect_ratio),
    )


def _response_object(
    response_id: str,
    model: str,
    created_at: int,
    status: str,
    output: list[dict[str, Any]],
    usage: tuple[int, int] | None = None,
) -> dict[str, Any]:
    obj: dict[str, Any] = {
        "id": response_id,
        "object": "response",
        "created_at": created_at,
        "status": status,
        "model": model,
        "output": output,
    }
    if usage is not None:
        input_tokens, output_tokens = usage
        obj["usage"] = {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
        }
    return obj


def _output_items(text: str, tool_calls: list[tuple[str, str, str]], message_id: str) -> list[dict]:
    output: list[dict[str, Any]] = []
    if text:
        output.append({
            "type": "message",
            "id": message_id,
            "status": "completed",
            "role": "assistant",
            "content": [{"type": "output_text", "text": text, "annotations": []}],
        })
    for call_id, name, arguments in tool_calls:
        output.append({
            "type": "function_call",
            "id": f"fc_{call_id}",
            "call_id": call_id,
            "name": name,
            "arguments": arguments,
            "status": "completed",
        })
    return output


def format_response(ai_message: AIMessage, request: CanonicalRequest) -> dict:
    """Translate AIMessage to a Responses API ``response`` object."""
    text = message_text(ai_message.content) if ai_message.content else ""
    tool_calls = [
        (call["id"], call["name"], json.dumps(call["args"]))
        for call in ai_message.tool_calls or []
    ]
    return _response_object(
        response_id=f"resp_{uuid.uuid4().hex[:24]}",
        model=request.model,
        created_at=int(time.time()),
        status="completed",
        output=_output_items(text, tool_calls, f"msg_{uuid.uuid4().hex[:24]}"),
        usage=usage_counts(ai_message),
    )


@dataclass
class StreamingState:
    """Accumulates the streamed response for the final completed event."""

    model: str
    response_id: str = field(default_factory=lambda: f"resp_{uuid.uuid4().hex[:24]}")
    message_id: str = field(default_factory=lambda: f"msg_{uuid.uuid4().hex[:24]}")
    created_at: int = field(default_factory=lambda: int(time.time()))
    text_parts: list[str] = field(default_factory=list)
    # index -> [call_id, name, arguments]
    tool_calls: dict[int, list[str]] = field(default_factory=dict)
    input_tokens: int = 0
    output_tokens: int = 0


def new_stream_state(request: CanonicalRequest) -> StreamingState:
    return StreamingState(model=request.model)


def stream_start(state: StreamingState) -> Generator[dict, None, None]:
    yield make_event(
        "response.created",
        {
            "type": "response.created",
            "response": _response_object(
                state.response_id, state.model, state.created_at, "in_progress", []
            ),
        },
    )


def stream_chunk(chunk: AIMessageChunk, state: StreamingState) -> Generator[dict, None, None]:
    text = message_text(chunk.content) if chunk.content else ""
    if text:
        state.text_parts.append(text)
        yield make_event(
            "response.output_text.delta",
            {
                "type": "response.output_text.delta",
                "item_id": state.message_id,
                "output_index": 0,
                "content_index": 0,
                "delta": text,
            },
        )

    for tool_chunk in chunk.tool_call_chunks or []:
        entry = state.tool_calls.setdefault(tool_chunk.get("index") or 0, ["", "", ""])
        if tool_chunk.get("id"):
            entry[0] = tool_chunk["id"]
        if tool_chunk.get("name"):
            entry[1] = tool_chunk["name"]
        entry[2] += tool_chunk.get("args") or ""

    if chunk.usage_metadata:
        state.input_tokens = chunk.usage_metadata.get("input_tokens", state.input_tokens)
        state.output_tokens = chunk.usage_metadata.get("output_tokens", state.output_tokens)


def stream_end(
    state: StreamingState, error: GatewayError | None = None
) -> Generator[dict, None, None]:
    """Emit ``response.completed`` or ``response.failed`` exactly once."""
    tool_calls = [tuple(state.tool_calls[i]) for i in sorted(state.tool_calls)]
    output = _output_items("".join(state.text_parts), tool_calls, state.message_id)

    if error is not None:
        response = _response_object(
            state.response_id, state.model, state.created_at, "failed", output
        )
        response["error"] = format_error(error)["error"]
        yield make_event("response.failed", {"type": "response.failed", "response": response})
        return

    response = _response_object(
        state.response_id,
        state.model,
        state.created_at,
        "completed",
        output,
        usage=(state.input_tokens, state.output_tokens),
    )
    yield make_event("response.completed", {"type": "response.completed", "response": response})


ADAPTER = ProtocolAdapter(
    protocol=Protocol.OPENAI,
    routes=("/v1/responses",),
    parse_request=parse_request,
    format_response=format_response,
    new_stream_state=new_stream_state,
    stream_start=stream_start,
    format_stream_chunk=stream_chunk,
    stream_end=stream_end,
    format_error=format_error,
)
