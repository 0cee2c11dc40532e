"""Tests for the Gemini generateContent adapter."""

import json

import pytest
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage, SystemMessage, ToolMessage

from llm_gateway.errors import InvalidRequest, NoAvailableAccount, Unauthorized
from llm_gateway.models.catalog import Protocol
from llm_gateway.translation.canonical import CanonicalRequest
from llm_gateway.translation.gemini import (
    format_error,
    format_response,
    new_stream_state,
    parse_request,
    stream_chunk,
    stream_end,
)

GENERATE_PATH = "/v1beta/models/gemini-3-flash:generateContent"
STREAM_PATH = "/v1beta/models/gemini-3-flash:streamGenerateContent"


def canonical() -> CanonicalRequest:
    return CanonicalRequest(protocol=Protocol.GEMINI, model="gemini-3-flash", messages=[])


def test_parse_request_basic():
    """camelCase fields map onto the canonical request."""
    request = parse_request(
        {
            "systemInstruction": {"parts": [{"text": "Be brief"}]},
            "contents": [{"role": "user", "parts": [{"text": "Hi"}]}],
            "generationConfig": {"maxOutputTokens": 32, "topP": 0.5, "stopSequences": ["X"]},
        },
        {"model": "gemini-3-flash"},
        GENERATE_PATH,
    )

    assert request.protocol is Protocol.GEMINI
    assert request.model == "gemini-3-flash"
    assert request.stream is False
    assert isinstance(request.messages[0], SystemMessage)
    assert isinstance(request.messages[1], HumanMessage)
    assert request.params == {"max_tokens": 32, "top_p": 0.5, "stop": ["X"]}


def test_parse_request_stream_path():
    """The streaming endpoint is selected by path."""
    request = parse_request(
        {"contents": [{"parts": [{"text": "Hi"}]}]}, {"model": "gemini-3-flash"}, STREAM_PATH
    )
    assert request.stream is True


def test_parse_request_requires_model():
    with pytest.raises(InvalidRequest):
        parse_request({"contents": []}, {}, GENERATE_PATH)


def test_function_call_round_trip():
    """Function responses are paired with the calls they answer."""
    request = parse_request(
        {
            "contents": [
                {"role": "user", "parts": [{"text": "Weather?"}]},
                {
                    "role": "model",
                    "parts": [{"functionCall": {"name": "weather", "args": {"city": "SF"}}}],
                },
                {
                    "role": "user",
                    "parts": [
                        {"functionResponse": {"name": "weather", "response": {"temp": 20}}}
                    ],
                },
            ],
            "tools": [
                {
                    "functionDeclarations": [
                        {"name": "weather", "parameters": {"type": "object"}}
                    ]
                }
            ],
        },
        {"model": "gemini-3-flash"},
        GENERATE_PATH,
    )

    _, call, response = request.messages
    assert isinstance(call, AIMessage)
    assert isinstance(response, ToolMessage)
    assert response.tool_call_id == call.tool_calls[0]["id"]
    assert json.loads(response.content) == {"temp": 20}
    assert request.tools[0]["function"]["name"] == "weather"


def test_inline_data_becomes_image():
    request = parse_request(
        {
            "contents": [
                {
                    "parts": [
                        {"text": "What is this?"},
                        {"inlineData": {"mimeType": "image/png", "data": "AAAA"}},
                    ]
                }
            ]
        },
        {"model": "gemini-3-flash"},
        GENERATE_PATH,
    )
    assert request.messages[0].content[1]["image_url"]["url"] == "data:image/png;base64,AAAA"


def test_format_response():
    """AIMessage becomes a GenerateContentResponse."""
    body = format_response(
        AIMessage(
            content="Hello",
            response_metadata={"finish_reason": "length"},
            usage_metadata={"input_tokens": 3, "output_tokens": 1, "total_tokens": 4},
        ),
        canonical(),
    )

    candidate = body["candidates"][0]
    assert candidate["content"] == {"role": "model", "parts": [{"text": "Hello"}]}
    assert candidate["finishReason"] == "MAX_TOKENS"
    assert body["usageMetadata"] == {
        "promptTokenCount": 3,
        "candidatesTokenCount": 1,
        "totalTokenCount": 4,
    }


@pytest.mark.parametrize(
    "error, status",
    [
        (Unauthorized("bad key"), "UNAUTHENTICATED"),
        (InvalidRequest("bad body"), "INVALID_ARGUMENT"),
        (NoAvailableAccount("none"), "UNAVAILABLE"),
    ],
)
def test_format_error(error, status):
    """Errors use Google's error envelope."""
    body = format_error(error)
    assert body["error"]["code"] == error.status_code
    assert body["error"]["status"] == status


def test_stream_text_then_final_chunk():
    """Text streams as it arrives; tool calls arrive whole at the end."""
    state = new_stream_state(canonical())
    events = list(stream_chunk(AIMessageChunk(content="Hi"), state))
    events += list(
        stream_chunk(
            AIMessageChunk(
                content="",
                tool_call_chunks=[{"id": "c1", "name": "weather", "args": '{"city":', "index": 0}],
            ),
            state,
        )
    )
    events += list(
        stream_chunk(
            AIMessageChunk(
                content="",
                tool_call_chunks=[{"id": None, "name": None, "args": ' "SF"}', "index": 0}],
            ),
            state,
        )
    )
    events += list(stream_end(state))
    data = [json.loads(e["data"]) for e in events]

    assert len(data) == 2
    assert data[0]["candidates"][0]["content"]["parts"] == [{"text": "Hi"}]
    final = data[1]["candidates"][0]
    assert final["finishReason"] == "STOP"
    assert final["content"]["parts"] == [
        {"functionCall": {"id": "c1", "name": "weather", "args": {"city": "SF"}}}
    ]


def test_stream_end_with_error():
    state = new_stream_state(canonical())
    data = [json.loads(e["data"]) for e in stream_end(state, Unauthorized("x"))]
    assert data == [format_error(Unauthorized("x"))]
