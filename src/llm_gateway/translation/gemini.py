"""Gemini generateContent / streamGenerateContent adapter."""

import json
from collections import defaultdict, deque
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
from llm_gateway.models.gemini import Content, GenerateContentRequest
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

STREAM_SUFFIX = ":streamGenerateContent"

FINISH_REASONS = {
    "stop": "STOP",
    "tool_calls": "STOP",
    "length": "MAX_TOKENS",
    "content_filter": "SAFETY",
}

ERROR_STATUSES = {
    400: "INVALID_ARGUMENT",
    401: "UNAUTHENTICATED",
    404: "NOT_FOUND",
    429: "RESOURCE_EXHAUSTED",
    503: "UNAVAILABLE",
    504: "DEADLINE_EXCEEDED",
}


# Request translation


def translate_contents(contents: list[Content]) -> list[BaseMessage]:
    """Translate Gemini content turns to LangChain messages.

    Gemini function calls carry no ids, so ids are generated per call and
    matched to function responses by name in call order.
    """
    result: list[BaseMessage] = []
    pending: dict[str, deque[str]] = defaultdict(deque)
    counter = 0

    for turn in contents:
        if turn.role == "model":
            texts = []
            tool_calls = []
            for part in turn.parts:
                if part.text:
                    texts.append(part.text)
                if part.function_call:
                    name = part.function_call.get("name", "")
                    counter += 1
                    call_id = part.function_call.get("id") or f"call_{name}_{counter}"
                    pending[name].append(call_id)
                    tool_calls.append({
                        "id": call_id,
                        "name": name,
                        "args": parse_arguments(part.function_call.get("args")),
                    })
            result.append(AIMessage(content="".join(texts), tool_calls=tool_calls))
            continue

        user_parts: list[dict[str, Any]] = []
        for part in turn.parts:
            if part.function_response:
                name = part.function_response.get("name", "")
                call_id = part.function_response.get("id") or (
                    pending[name].popleft() if pending[name] else f"call_{name}"
                )
                response = part.function_response.get("response", {})
                result.append(ToolMessage(content=json.dumps(response), tool_call_id=call_id))
            elif part.inline_data:
                mime_type = part.inline_data.get("mimeType") or part.inline_data.get("mime_type")
                data_url = f"data:{mime_type};base64,{part.inline_data.get('data', '')}"
                user_parts.append({"type": "image_url", "image_url": {"url": data_url}})
            elif part.text is not None:
                user_parts.append({"type": "text", "text": part.text})

        if user_parts:
            if all(p["type"] == "text" for p in user_parts):
                result.append(HumanMessage(content="".join(p["text"] for p in user_parts)))
            else:
                result.append(HumanMessage(content=user_parts))

    return result


def translate_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Flatten Gemini functionDeclarations to OpenAI function tools."""
    result = []
    for tool in tools:
        declarations = tool.get("functionDeclarations") or tool.get("function_declarations") or []
        for decl in declarations:
            result.append({
                "type": "function",
                "function": {
                    "name": decl["name"],
                    "description": decl.get("description", ""),
                    "parameters": decl.get("parameters", {"type": "object", "properties": {}}),
                },
            })
    return result


def parse_request(body: dict, path_params: dict, path: str) -> CanonicalRequest:
    """Parse a generateContent body; the model comes from the URL."""
    request = parse_model(GenerateContentRequest, body)
    model = path_params.get("model", "")
    if not model:
        raise InvalidRequest("Model name missing from request path")

    messages: list[BaseMessage] = []
    if request.system_instruction:
        system_text = "".join(p.text or "" for p in request.system_instruction.parts)
        if system_text:
            messages.append(SystemMessage(content=system_text))
    messages.extend(translate_contents(request.contents))

    params: dict[str, Any] = {}
    config = request.generation_config
    if config is not None:
        if config.max_output_tokens is not None:
            params["max_tokens"] = config.max_output_tokens
        if config.temperature is not None:
            params["temperature"] = config.temperature
        if config.top_p is not None:
            params["top_p"] = config.top_p
        if config.stop_sequences:
            params["stop"] = config.stop_sequences

    return CanonicalRequest(
        protocol=Protocol.GEMINI,
        model=model,
        messages=messages,
        tools=translate_tools(request.tools or []),
        params=params,
        stream=path.endswith(STREAM_SUFFIX),
    )


# Response translation


def _function_call_parts(tool_calls: list[tuple[str, str, dict]]) -> list[dict]:
    return [
        {"functionCall": {"id": call_id, "name": name, "args": args}}
        for call_id, name, args in tool_calls
    ]


def _usage_metadata(prompt_tokens: int, candidate_tokens: int) -> dict[str, int]:
    return {
        "promptTokenCount": prompt_tokens,
        "candidatesTokenCount": candidate_tokens,
        "totalTokenCount": prompt_tokens + candidate_tokens,
    }


def _candidate(parts: list[dict], finish_reason: str | None) -> dict[str, Any]:
    candidate: dict[str, Any] = {"content": {"role": "model", "parts": parts}, "index": 0}
    if finish_reason:
        candidate["finishReason"] = finish_reason
    return candidate


def format_response(ai_message: AIMessage, request: CanonicalRequest) -> dict:
    """Translate AIMessage to a GenerateContentResponse."""
    parts: list[dict] = []
    text = message_text(ai_message.content) if ai_message.content else ""
    if text:
        parts.append({"text": text})
    parts.extend(_function_call_parts(
        [(c["id"], c["name"], c["args"]) for c in ai_message.tool_calls or []]
    ))
    finish = FINISH_REASONS.get(finish_reason_of(ai_message) or "stop", "STOP")
    return {
        "candidates": [_candidate(parts, finish)],
        "usageMetadata": _usage_metadata(*usage_counts(ai_message)),
        "modelVersion": request.model,
    }


def format_error(error: GatewayError) -> dict:
    """Google API error body."""
    return {
        "error": {
            "code": error.status_code,
            "message": error.message,
            "status": ERROR_STATUSES.get(error.status_code, "INTERNAL"),
        }
    }


# Streaming


@dataclass
class StreamingState:
    """Collects tool calls, which Gemini emits whole rather than in pieces."""

    model: str
    finish_reason: str | None = None
    # index -> [call_id, name, arguments json]
    tool_calls: dict[int, list[str]] = field(default_factory=dict)
    prompt_tokens: int = 0
    candidate_tokens: int = 0


def new_stream_state(request: CanonicalRequest) -> StreamingState:
    return StreamingState(model=request.model)


def stream_start(state: StreamingState) -> list[dict]:
    return []


def stream_chunk(chunk: AIMessageChunk, state: StreamingState) -> Generator[dict, None, None]:
    if chunk.response_metadata:
        state.finish_reason = chunk.response_metadata.get("finish_reason", state.finish_reason)
    if chunk.usage_metadata:
        state.prompt_tokens = chunk.usage_metadata.get("input_tokens", state.prompt_tokens)
        state.candidate_tokens = chunk.usage_metadata.get("output_tokens", state.candidate_tokens)

    for tool_chunk in chunk.tool_call_chunks or []:
        entry = state.tool_calls.setdefault(tool_chunk.get("index") or 0, ["", "", ""])
        if tool_chunk.get("id"):
            entry[0] = tool_chunk["id"]
        if tool_chunk.get("name"):
            entry[1] = tool_chunk["name"]
        entry[2] += tool_chunk.get("args") or ""

    text = message_text(chunk.content) if chunk.content else ""
    if text:
        yield make_event(None, {
            "candidates": [_candidate([{"text": text}], None)],
            "modelVersion": state.model,
        })


def stream_end(
    state: StreamingState, error: GatewayError | None = None
) -> Generator[dict, None, None]:
    """Emit the final chunk carrying finishReason, or the error object."""
    if error is not None:
        yield make_event(None, format_error(error))
        return

    tool_calls = []
    for index in sorted(state.tool_calls):
        call_id, name, arguments = state.tool_calls[index]
        try:
            args = json.loads(arguments) if arguments else {}
        except json.JSONDecodeError:
            args = {"raw": arguments}
        tool_calls.append((call_id, name, args))

    finish = FINISH_REASONS.get(state.finish_reason or "stop", "STOP")
    yield make_event(None, {
        "candidates": [_candidate(_function_call_parts(tool_calls), finish)],
        "usageMetadata": _usage_metadata(state.prompt_tokens, state.candidate_tokens),
        "modelVersion": state.model,
    })


ADAPTER = ProtocolAdapter(
    protocol=Protocol.GEMINI,
    routes=(
        "/v1beta/models/{model}:generateContent",
        "/v1beta/models/{model}" + STREAM_SUFFIX,
    ),
    parse_request=parse_request,
    format_response=format_response,
    new_stream_state=new_stream_state,
    stream_start=stream_start,
    format_stream_chunk=stream_chunk,
    stream_end=stream_end,
    format_error=format_error,
)
