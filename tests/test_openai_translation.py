"""Tests for the OpenAI chat and legacy completions adapters."""

import json

import pytest
from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from llm_gateway.errors import InvalidRequest, UnknownModel, UpstreamStreamInterrupted
from llm_gateway.models.catalog import Protocol
from llm_gateway.translation.canonical import CanonicalRequest
from llm_gateway.translation.openai import (
    chat_stream_chunk,
    chat_stream_end,
    chat_stream_start,
    completion_stream_chunk,
    completion_stream_end,
    format_chat_response,
    format_completion_response,
    format_error,
    new_chat_stream_state,
    new_completion_stream_state,
    parse_chat_request,
    parse_completion_request,
    resolve_image_geometry,
)


def chat_body(**overrides) -> dict:
    body = {"model": "gpt-4", "messages": [{"role": "user", "content": "Hi"}]}
    body.update(overrides)
    return body


def canonical(model: str = "gpt-4") -> CanonicalRequest:
    return CanonicalRequest(protocol=Protocol.OPENAI, model=model, messages=[])


def data_of(events) -> list:
    return [e["data"] if e["data"] == "[DONE]" else json.loads(e["data"]) for e in events]


def test_parse_chat_request_messages():
    """Every chat role maps onto a LangChain message."""
    request = parse_chat_request(
        chat_body(
            messages=[
                {"role": "system", "content": "Be brief"},
                {"role": "user", "content": "Weather?"},
                {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {
                            "id": "call_1",
                            "type": "function",
                            "function": {"name": "weather", "arguments": '{"city": "SF"}'},
                        }
                    ],
                },
                {"role": "tool", "tool_call_id": "call_1", "content": "Sunny"},
            ],
            max_tokens=50,
            stop="END",
        ),
        {},
        "/v1/chat/completions",
    )

    system, user, assistant, tool = request.messages
    assert isinstance(system, SystemMessage)
    assert isinstance(user, HumanMessage)
    assert isinstance(assistant, AIMessage)
    assert assistant.tool_calls[0]["args"] == {"city": "SF"}
    assert isinstance(tool, ToolMessage)
    assert tool.tool_call_id == "call_1"
    assert request.params == {"max_tokens": 50, "stop": ["END"]}
    assert request.extra_body is None


def test_parse_chat_request_prefers_max_completion_tokens():
    request = parse_chat_request(
        chat_body(max_tokens=10, max_completion_tokens=20), {}, "/v1/chat/completions"
    )
    assert request.params["max_tokens"] == 20


def test_parse_chat_request_bad_tool_arguments():
    """Unparseable tool arguments are an InvalidRequest."""
    body = chat_body(
        messages=[
            {
                "role": "assistant",
                "tool_calls": [{"id": "c", "function": {"name": "f", "arguments": "{oops"}}],
            }
        ]
    )
    with pytest.raises(InvalidRequest):
        parse_chat_request(body, {}, "/v1/chat/completions")


def test_parse_chat_request_missing_model():
    with pytest.raises(InvalidRequest):
        parse_chat_request({"messages": []}, {}, "/v1/chat/completions")


@pytest.mark.parametrize(
    "model, size, expected",
    [
        ("gemini-3-pro-image", None, ("gemini-3-pro-image", "1:1")),
        ("gemini-3-pro-image", "1280x720", ("gemini-3-pro-image", "16:9")),
        ("gemini-3-pro-image-9-16", None, ("gemini-3-pro-image", "9:16")),
        ("gemini-3-pro-image-4-3", "1216x896", ("gemini-3-pro-image", "4:3")),
        ("gemini-3-flash", "1280x720", ("gemini-3-flash", None)),
    ],
)
def test_resolve_image_geometry(model, size, expected):
    """Aspect ratio comes from the suffix or the size."""
    assert resolve_image_geometry(model, size) == expected


@pytest.mark.parametrize(
    "model, size",
    [
        ("gemini-3-pro-image-16-9", "720x1280"),
        ("gemini-3-pro-image", "999x999"),
        ("gemini-3-pro-image-2-1", None),
    ],
)
def test_resolve_image_geometry_rejects(model, size):
    """Conflicting or unknown geometry is rejected."""
    with pytest.raises(InvalidRequest):
        resolve_image_geometry(model, size)


def test_parse_chat_request_image_model():
    """The aspect ratio travels as an upstream image config."""
    request = parse_chat_request(
        chat_body(model="gemini-3-pro-image-16-9"), {}, "/v1/chat/completions"
    )
    assert request.model == "gemini-3-pro-image"
    assert request.extra_body == {"google": {"image_config": {"aspect_ratio": "16:9"}}}


def test_format_chat_response():
    """AIMessage becomes a chat.completion object."""
    ai_message = AIMessage(
        content="",
        tool_calls=[{"id": "call_1", "name": "weather", "args": {"city": "SF"}}],
        usage_metadata={"input_tokens": 7, "output_tokens": 3, "total_tokens": 10},
    )
    body = format_chat_response(ai_message, canonical())

    assert body["object"] == "chat.completion"
    assert body["model"] == "gpt-4"
    choice = body["choices"][0]
    assert choice["finish_reason"] == "tool_calls"
    assert choice["message"]["content"] is None
    assert json.loads(choice["message"]["tool_calls"][0]["function"]["arguments"]) == {
        "city": "SF"
    }
    assert body["usage"] == {"prompt_tokens": 7, "completion_tokens": 3, "total_tokens": 10}


def test_format_error():
    """Errors use OpenAI's error envelope."""
    body = format_error(UnknownModel("no such model"))
    assert body["error"]["message"] == "no such model"
    assert body["error"]["code"] == "unknown_model"
    assert body["error"]["type"] == "invalid_request_error"


def test_chat_stream_sequence():
    """Role chunk, content chunks, final chunk, then [DONE]."""
    state = new_chat_stream_state(canonical())
    events = list(chat_stream_start(state))
    events += list(chat_stream_chunk(AIMessageChunk(content="Hel"), state))
    events += list(
        chat_stream_chunk(
            AIMessageChunk(
                content="lo",
                response_metadata={"finish_reason": "stop"},
                usage_metadata={"input_tokens": 3, "output_tokens": 2, "total_tokens": 5},
            ),
            state,
        )
    )
    events += list(chat_stream_end(state))
    data = data_of(events)

    assert data[0]["choices"][0]["delta"] == {"role": "assistant", "content": ""}
    assert [d["choices"][0]["delta"].get("content") for d in data[1:3]] == ["Hel", "lo"]
    assert data[3]["choices"][0]["finish_reason"] == "stop"
    assert data[3]["usage"]["total_tokens"] == 5
    assert data[4] == "[DONE]"
    assert len({d["id"] for d in data[:4]}) == 1


def test_chat_stream_tool_call_deltas():
    """Tool call chunks are forwarded as tool_calls deltas."""
    state = new_chat_stream_state(canonical())
    chunk = AIMessageChunk(
        content="",
        tool_call_chunks=[{"id": "call_1", "name": "weather", "args": '{"c', "index": 0}],
    )
    data = data_of(chat_stream_chunk(chunk, state))

    assert data[0]["choices"][0]["delta"]["tool_calls"] == [
        {
            "index": 0,
            "id": "call_1",
            "type": "function",
            "function": {"name": "weather", "arguments": '{"c'},
        }
    ]
    final = data_of(chat_stream_end(state))
    assert final[0]["choices"][0]["finish_reason"] == "tool_calls"


def test_chat_stream_end_with_error():
    """A mid-stream failure sends the error object, then [DONE]."""
    state = new_chat_stream_state(canonical())
    data = data_of(chat_stream_end(state, UpstreamStreamInterrupted("reset")))

    assert data[0]["error"]["code"] == "upstream_stream_interrupted"
    assert data[1] == "[DONE]"


def test_parse_completion_request():
    """Prompt lists are joined into one user message."""
    request = parse_completion_request(
        {"model": "gpt-3.5-turbo-instruct", "prompt": ["a", "b"], "max_tokens": 5},
        {},
        "/v1/completions",
    )
    assert request.messages[0].content == "a\n\nb"
    assert request.params == {"max_tokens": 5}
    assert request.extra_body is None


def test_parse_completion_request_image_model():
    """The image suffix is split off on legacy completions too."""
    request = parse_completion_request(
        {"model": "gemini-3-pro-image-4-3", "prompt": "A skyline"}, {}, "/v1/completions"
    )
    assert request.model == "gemini-3-pro-image"
    assert request.extra_body == {"google": {"image_config": {"aspect_ratio": "4:3"}}}


def test_parse_completion_request_image_conflict():
    with pytest.raises(InvalidRequest):
        parse_completion_request(
            {"model": "gemini-3-pro-image-16-9", "prompt": "x", "size": "1024x1024"},
            {},
            "/v1/completions",
        )


def test_format_completion_response():
    body = format_completion_response(
        AIMessage(content="done", response_metadata={"finish_reason": "length"}),
        canonical("gpt-3.5-turbo-instruct"),
    )
    assert body["object"] == "text_completion"
    assert body["choices"][0]["text"] == "done"
    assert body["choices"][0]["finish_reason"] == "length"


def test_completion_stream():
    """Legacy completion streaming ends with a final chunk and [DONE]."""
    state = new_completion_stream_state(canonical("gpt-3.5-turbo-instruct"))
    events = list(completion_stream_chunk(AIMessageChunk(content="hi"), state))
    events += list(completion_stream_end(state))
    data = data_of(events)

    assert data[0]["choices"][0]["text"] == "hi"
    assert data[1]["choices"][0]["finish_reason"] == "stop"
    assert data[2] == "[DONE]"
