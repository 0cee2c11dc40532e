"""Tests for the Responses API adapter."""

import json

import pytest
from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from llm_gateway.errors import InvalidRequest, UpstreamStreamInterrupted
from llm_gateway.models.catalog import Protocol
from llm_gateway.translation.canonical import CanonicalRequest
from llm_gateway.translation.responses import (
    format_response,
    new_stream_state,
    parse_request,
    stream_chunk,
    stream_end,
    stream_start,
    translate_input,
    translate_tools,
)


def canonical() -> CanonicalRequest:
    return CanonicalRequest(protocol=Protocol.OPENAI, model="gpt-5-codex", messages=[])


def test_translate_string_input():
    """A bare string is one user turn after the instructions."""
    messages = translate_input("Hi", instructions="Be terse")
    assert isinstance(messages[0], SystemMessage)
    assert messages[0].content == "Be terse"
    assert isinstance(messages[1], HumanMessage)
    assert messages[1].content == "Hi"


def test_translate_function_call_items():
    """Consecutive function calls fold into one assistant turn."""
    messages = translate_input(
        [
            {"type": "message", "role": "user", "content": [{"type": "input_text", "text": "ls"}]},
            {"type": "function_call", "call_id": "c1", "name": "shell", "arguments": '{"cmd": "ls"}'},
            {"type": "function_call", "call_id": "c2", "name": "shell", "arguments": "{}"},
            {"type": "function_call_output", "call_id": "c1", "output": "a.txt"},
            {"type": "function_call_output", "call_id": "c2", "output": {"ok": True}},
        ],
        instructions=None,
    )

    user, assistant, out1, out2 = messages
    assert user.content == [{"type": "text", "text": "ls"}]
    assert isinstance(assistant, AIMessage)
    assert [c["id"] for c in assistant.tool_calls] == ["c1", "c2"]
    assert assistant.tool_calls[0]["args"] == {"cmd": "ls"}
    assert isinstance(out1, ToolMessage) and out1.content == "a.txt"
    assert json.loads(out2.content) == {"ok": True}


def test_translate_unknown_item_type():
    with pytest.raises(InvalidRequest):
        translate_input([{"type": "reasoning"}], instructions=None)


def test_translate_tools_keeps_functions_only():
    """Built-in tools are dropped."""
    tools = translate_tools(
        [
            {"type": "function", "name": "shell", "parameters": {"type": "object"}},
            {"type": "web_search"},
        ]
    )
    assert tools == [
        {
            "type": "function",
            "function": {"name": "shell", "description": "", "parameters": {"type": "object"}},
        }
    ]


def test_parse_request():
    request = parse_request(
        {"model": "gpt-5-codex", "input": "Hi", "max_output_tokens": 100, "stream": True},
        {},
        "/v1/responses",
    )
    assert request.protocol is Protocol.OPENAI
    assert request.params == {"max_tokens": 100}
    assert request.stream is True


def test_format_response():
    """Text and function calls become output items."""
    body = format_response(
        AIMessage(
            content="Running it",
            tool_calls=[{"id": "c1", "name": "shell", "args": {"cmd": "ls"}}],
            usage_metadata={"input_tokens": 4, "output_tokens": 2, "total_tokens": 6},
        ),
        canonical(),
    )

    assert body["object"] == "response"
    assert body["status"] == "completed"
    message, call = body["output"]
    assert message["content"][0]["text"] == "Running it"
    assert call["type"] == "function_call"
    assert call["call_id"] == "c1"
    assert json.loads(call["arguments"]) == {"cmd": "ls"}
    assert body["usage"]["total_tokens"] == 6


def test_stream_sequence():
    """created, deltas, then completed with the accumulated output."""
    state = new_stream_state(canonical())
    events = list(stream_start(state))
    events += list(stream_chunk(AIMessageChunk(content="Hel"), state))
    events += list(stream_chunk(AIMessageChunk(content="lo"), state))
    events += list(stream_end(state))

    names = [e["event"] for e in events]
    assert names == [
        "response.created",
        "response.output_text.delta",
        "response.output_text.delta",
        "response.completed",
    ]
    completed = json.loads(events[-1]["data"])["response"]
    assert completed["output"][0]["content"][0]["text"] == "Hello"
    assert completed["id"] == json.loads(events[0]["data"])["response"]["id"]


def test_stream_end_with_error():
    """A mid-stream failure ends with response.failed instead."""
    state = new_stream_state(canonical())
    list(stream_chunk(AIMessageChunk(content="partial"), state))
    events = list(stream_end(state, UpstreamStreamInterrupted("reset")))

    assert [e["event"] for e in events] == ["response.failed"]
    response = json.loads(events[0]["data"])["response"]
    assert response["status"] == "failed"
    assert response["error"]["code"] == "upstream_stream_interrupted"


def test_parse_request_image_model():
    """Responses requests get the same image geometry handling as chat."""
    request = parse_request(
        {"model": "gemini-3-pro-image", "input": "A cat", "size": "1280x720"},
        {},
        "/v1/responses",
    )
    assert request.model == "gemini-3-pro-image"
    assert request.extra_body == {"google": {"image_config": {"aspect_ratio": "16:9"}}}


def test_parse_request_unknown_image_suffix():
    with pytest.raises(InvalidRequest):
        parse_request({"model": "gemini-3-pro-image-99-1", "input": "x"}, {}, "/v1/responses")
