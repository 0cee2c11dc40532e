"""OpenAI chat completions and legacy completions adapters."""

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
from llm_gateway.models.openai import (
    ChatCompletionRequest,
    ChatMessage,
    CompletionRequest,
)
from llm_gateway.translation.canonical import (
    CanonicalRequest,
    ProtocolAdapter,
    finish_reason_of,
    message_text,
    parse_arguments,
    parse_model,
    usage_counts,
)
from llm_gateway.translation.streaming import make_event

IMAGE_MODEL_PREFIX = "gemini-3-pro-image"

IMAGE_SIZES = {
    "1024x1024": "1:1",
    "1280x720": "16:9",
    "720x1280": "9:16",
    "1216x896": "4:3",
}

IMAGE_SUFFIXES = {
    "-1-1": "1:1",
    "-16-9": "16:9",
    "-9-16": "9:16",
    "-4-3": "4:3",
}

ERROR_TYPES = {
    "invalid_request": "invalid_request_error",
    "unsupported_capability": "invalid_request_error",
    "unknown_model": "invalid_request_error",
    "unauthorized": "authentication_error",
    "account_quota": "rate_limit_error",
}

DONE_EVENT = make_event(None, "[DONE]")


def resolve_image_geometry(model: str, size: str | None) -> tuple[str, str | None]:
    """
    Split an image model id into base model and aspect ratio.

    The ratio comes from the model suffix (``gemini-3-pro-image-16-9``) or
    the ``size`` parameter. Both may be given only if they agree.

    Returns:
        Tuple of (model id without suffix, aspect ratio or None for
        non-image models).

    Raises:
        InvalidRequest: On an unknown suffix or size, or a conflict.
    """
    if not model.startswith(IMAGE_MODEL_PREFIX):
        return model, None

    suffix = model[len(IMAGE_MODEL_PREFIX):]
    suffix_ratio = None
    if suffix:
        if suffix not in IMAGE_SUFFIXES:
            raise InvalidRequest(
                f"Unknown image model variant '{model}'. "
                f"Supported suffixes: {sorted(IMAGE_SUFFIXES)}"
            )
        suffix_ratio = IMAGE_SUFFIXES[suffix]

    size_ratio = None
    if size is not None:
        if size not in IMAGE_SIZES:
            raise InvalidRequest(
                f"Unsupported size '{size}'. Supported sizes: {list(IMAGE_SIZES)}"
            )
        size_ratio = IMAGE_SIZES[size]

    if suffix_ratio and size_ratio and suffix_ratio != size_ratio:
        raise InvalidRequest(
            f"Model suffix requests {suffix_ratio} but size '{size}' is {size_ratio}"
        )

    return IMAGE_MODEL_PREFIX, suffix_ratio or size_ratio or "1:1"


def image_extra_body(aspect_ratio: str | None) -> dict | None:
    if aspect_ratio is None:
        return None
    return {"google": {"image_config": {"aspect_ratio": aspect_ratio}}}


def _stop_list(stop: str | list[str] | None) -> list[str] | None:
    if stop is None:
        return None
    return [stop] if isinstance(stop, str) else stop


def build_params(
    max_tokens: int | None,
    temperature: float | None,
    top_p: float | None,
    stop: str | list[str] | None,
) -> dict[str, Any]:
    """Collect sampling params that were actually set."""
    params: dict[str, Any] = {}
    if max_tokens is not None:
        params["max_tokens"] = max_tokens
    if temperature is not None:
        params["temperature"] = temperature
    if top_p is not None:
        params["top_p"] = top_p
    stop_sequences = _stop_list(stop)
    if stop_sequences:
        params["stop"] = stop_sequences
    return params


# Chat completions


def translate_chat_message(msg: ChatMessage) -> BaseMessage:
    """Translate one OpenAI chat message to LangChain."""
    if msg.role in ("system", "developer"):
        return SystemMessage(content=message_text(msg.content or ""))

    if msg.role == "tool":
        return ToolMessage(
            content=message_text(msg.content or ""),
            tool_call_id=msg.tool_call_id or "",
        )

    if msg.role == "assistant":
        tool_calls = [
            {
                "id": call.get("id", ""),
                "name": call["function"]["name"],
                "args": parse_arguments(call["function"].get("arguments")),
            }
            for call in msg.tool_calls or []
        ]
        content = message_text(msg.content or "")
        if tool_calls:
            return AIMessage(content=content, tool_calls=tool_calls)
        return AIMessage(content=content)

    # OpenAI content parts are already in LangChain's multimodal format
    return HumanMessage(content=msg.content or "")


def parse_chat_request(body: dict, path_params: dict, path: str) -> CanonicalRequest:
    """Parse a /v1/chat/completions body."""
    request = parse_model(ChatCompletionRequest, body)
    model, aspect_ratio = resolve_image_geometry(request.model, request.size)
    try:
        messages = [translate_chat_message(msg) for msg in request.messages]
    except KeyError as e:
        raise InvalidRequest(f"Malformed tool call, missing {e}") from e
    return CanonicalRequest(
        protocol=Protocol.OPENAI,
        model=model,
        messages=messages,
        tools=request.tools or [],
        params=build_params(
            request.max_completion_tokens or request.max_tokens,
            request.temperature,
            request.top_p,
            request.stop,
        ),
        stream=request.stream,
        extra_body=image_extra_body(aspect_ratio),
    )


def _finish_reason(ai_message: AIMessage) -> str:
    reason = finish_reason_of(ai_message)
    if reason:
        return reason
    return "tool_calls" if ai_message.tool_calls else "stop"


def _usage(ai_message: AIMessage) -> dict[str, int]:
    prompt_tokens, completion_tokens = usage_counts(ai_message)
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }


def format_chat_response(ai_message: AIMessage, request: CanonicalRequest) -> dict:
    """Translate AIMessage to a chat.completion object."""
    text = message_text(ai_message.content) if ai_message.content else ""
    message: dict[str, Any] = {"role": "assistant", "content": text or None}
    if ai_message.tool_calls:
        message["tool_calls"] = [
            {
                "id": call["id"],
                "type": "function",
                "function": {
                    "name": call["name"],
                    "arguments": json.dumps(call["args"]),
                },
            }
            for call in ai_message.tool_calls
        ]
    return {
        "id": f"chatcmpl-{uuid.uuid4().hex[:24]}",
        "object": "chat.completion",
        "created": int(time.time()),
        "model": request.model,
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": _finish_reason(ai_message),
            }
        ],
        "usage": _usage(ai_message),
    }


def format_error(error: GatewayError) -> dict:
    """OpenAI-style error body."""
    return {
        "error": {
            "message": error.message,
            "type": ERROR_TYPES.get(error.code, "api_error"),
            "param": None,
            "code": error.code,
        }
    }


@dataclass
class StreamingState:
    """Track state during an OpenAI streaming response."""

    model: str
    id: str
    created: int = field(default_factory=lambda: int(time.time()))
    finish_reason: str | None = None
    saw_tool_calls: bool = False
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def track(self, chunk: AIMessageChunk) -> None:
        if chunk.response_metadata:
            self.finish_reason = chunk.response_metadata.get(
                "finish_reason", self.finish_reason
            )
        if chunk.usage_metadata:
            self.prompt_tokens = chunk.usage_metadata.get(
                "input_tokens", self.prompt_tokens
            )
            self.completion_tokens = chunk.usage_metadata.get(
                "output_tokens", self.completion_tokens
            )

    @property
    def usage(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.prompt_tokens + self.completion_tokens,
        }


def new_chat_stream_state(request: CanonicalRequest) -> StreamingState:
    return StreamingState(model=request.model, id=f"chatcmpl-{uuid.uuid4().hex[:24]}")


def _chat_chunk(state: StreamingState, delta: dict, finish_reason: str | None = None) -> dict:
    return {
        "id": state.id,
        "object": "chat.completion.chunk",
        "created": state.created,
        "model": state.model,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def chat_stream_start(state: StreamingState) -> Generator[dict, None, None]:
    yield make_event(None, _chat_chunk(state, {"role": "assistant", "content": ""}))


def chat_stream_chunk(
    chunk: AIMessageChunk, state: StreamingState
) -> Generator[dict, None, None]:
    """Translate an AIMessageChunk to chat.completion.chunk events."""
    state.track(chunk)

    text = message_text(chunk.content) if chunk.content else ""
    if text:
        yield make_event(None, _chat_chunk(state, {"content": text}))

    tool_deltas = []
    for tool_chunk in chunk.tool_call_chunks or []:
        state.saw_tool_calls = True
        delta: dict[str, Any] = {"index": tool_chunk.get("index") or 0}
        if tool_chunk.get("id"):
            delta["id"] = tool_chunk["id"]
            delta["type"] = "function"
        function = {}
        if tool_chunk.get("name"):
            function["name"] = tool_chunk["name"]
        if tool_chunk.get("args"):
            function["arguments"] = tool_chunk["args"]
        if function:
            delta["function"] = function
        tool_deltas.append(delta)
    if tool_deltas:
        yield make_event(None, _chat_chunk(state, {"tool_calls": tool_deltas}))


def chat_stream_end(
    state: StreamingState, error: GatewayError | None = None
) -> Generator[dict, None, None]:
    """Emit the final chunk (or an error object) followed by [DONE]."""
    if error is not None:
        yield make_event(None, format_error(error))
    else:
        finish_reason = state.finish_reason or (
            "tool_calls" if state.saw_tool_calls else "stop"
        )
        final = _chat_chunk(state, {}, finish_reason)
        final["usage"] = state.usage
        yield make_event(None, final)
    yield DONE_EVENT


# Legacy completions


def parse_completion_request(body: dict, path_params: dict, path: str) -> CanonicalRequest:
    """Parse a /v1/completions body."""
    request = parse_model(CompletionRequest, body)
    model, aspect_ratio = resolve_image_geometry(request.model, request.size)
    prompt = request.prompt if isinstance(request.prompt, str) else "\n\n".join(request.prompt)
    return CanonicalRequest(
        protocol=Protocol.OPENAI,
        model=model,
        messages=[HumanMessage(content=prompt)],
        params=build_params(
            request.max_tokens, request.temperature, request.top_p, request.stop
        ),
        stream=request.stream,
        extra_body=image_extra_body(aspect_ratio),
    )


def format_completion_response(ai_message: AIMessage, request: CanonicalRequest) -> dict:
    """Translate AIMessage to a text_completion object."""
    return {
        "id": f"cmpl-{uuid.uuid4().hex[:24]}",
        "object": "text_completion",
        "created": int(time.time()),
        "model": request.model,
        "choices": [
            {
                "text": message_text(ai_message.content) if ai_message.content else "",
                "index": 0,
                "logprobs": None,
                "finish_reason": _finish_reason(ai_message),
            }
        ],
        "usage": _usage(ai_message),
    }


def new_completion_stream_state(request: CanonicalRequest) -> StreamingState:
    return StreamingState(model=request.model, id=f"cmpl-{uuid.uuid4().hex[:24]}")


def _completion_chunk(state: StreamingState, text: str, finish_reason: str | None = None) -> dict:
    return {
        "id": state.id,
        "object": "text_completion",
        "created": state.created,
        "model": state.model,
        "choices": [
            {"text": text, "index": 0, "logprobs": None, "finish_reason": finish_reason}
        ],
    }


def completion_stream_start(state: StreamingState) -> list[dict]:
    return []


def completion_stream_chunk(
    chunk: AIMessageChunk, state: StreamingState
) -> Generator[dict, None, None]:
    state.track(chunk)
    text = message_text(chunk.content) if chunk.content else ""
    if text:
        yield make_event(None, _completion_chunk(state, text))


def completion_stream_end(
    state: StreamingState, error: GatewayError | None = None
) -> Generator[dict, None, None]:
    if error is not None:
        yield make_event(None, format_error(error))
    else:
        final = _completion_chunk(state, "", state.finish_reason or "stop")
        final["usage"] = state.usage
        yield make_event(None, final)
    yield DONE_EVENT


CHAT_ADAPTER = ProtocolAdapter(
    protocol=Protocol.OPENAI,
    routes=("/v1/chat/completions",),
    parse_request=parse_chat_request,
    format_response=format_chat_response,
    new_stream_state=new_chat_stream_state,
    stream_start=chat_stream_start,
    format_stream_chunk=chat_stream_chunk,
    stream_end=chat_stream_end,
    format_error=format_error,
)

COMPLETIONS_ADAPTER = ProtocolAdapter(
    protocol=Protocol.OPENAI,
    routes=("/v1/completions",),
    parse_request=parse_completion_request,
    format_response=format_completion_response,
    new_stream_state=new_completion_stream_state,
    stream_start=completion_stream_start,
    format_stream_chunk=completion_stream_chunk,
    stream_end=completion_stream_end,
    format_error=format_error,
)
