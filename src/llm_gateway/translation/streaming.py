"""Drive an upstream chunk stream through a protocol adapter as SSE events."""

import json
import logging
from typing import AsyncGenerator, AsyncIterable

from langchain_core.messages import AIMessageChunk

from llm_gateway.errors import GatewayError
from llm_gateway.translation.canonical import CanonicalRequest, ProtocolAdapter

logger = logging.getLogger(__name__)


def make_event(event: str | None, data: dict | str) -> dict:
    """Create an SSE event dict for sse-starlette."""
    payload = data if isinstance(data, str) else json.dumps(data)
    if event is None:
        return {"data": payload}
    return {"event": event, "data": payload}


async def stream_events(
    adapter: ProtocolAdapter,
    chunks: AsyncIterable[AIMessageChunk],
    request: CanonicalRequest,
) -> AsyncGenerator[dict, None]:
    """Re-frame upstream chunks into the adapter's SSE events.

    Chunks are translated one at a time as they arrive. The adapter's
    terminal events are emitted exactly once, after normal completion or
    after an upstream failure mid-stream. Cancellation (client disconnect)
    propagates without emitting anything further.

    Args:
        adapter: The protocol adapter framing the events.
        chunks: Upstream chunk stream.
        request: The canonical request being served.

    Yields:
        SSE event dicts.
    """
    state = adapter.new_stream_state(request)

    for event in adapter.stream_start(state):
        yield event

    error: GatewayError | None = None
    try:
        async for chunk in chunks:
            for event in adapter.format_stream_chunk(chunk, state):
                yield event
    except GatewayError as e:
        logger.warning(f"Stream for {request.model} ended early: {e.message}")
        error = e

    for event in adapter.stream_end(state, error):
        yield event
