"""Data-plane endpoints for all protocol adapters."""

import logging
import time
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from llm_gateway.backends.dispatcher import UpstreamDispatcher
from llm_gateway.config import ConfigStore
from llm_gateway.errors import GatewayError, InvalidRequest
from llm_gateway.models.catalog import MODEL_CATALOG, Protocol
from llm_gateway.routing.resolver import MappingResolver, select_thinking_variant
from llm_gateway.translation import anthropic, gemini, responses
from llm_gateway.translation import openai as openai_adapter
from llm_gateway.translation.canonical import ProtocolAdapter
from llm_gateway.translation.streaming import stream_events

logger = logging.getLogger(__name__)

ADAPTERS: tuple[ProtocolAdapter, ...] = (
    openai_adapter.CHAT_ADAPTER,
    openai_adapter.COMPLETIONS_ADAPTER,
    responses.ADAPTER,
    anthropic.ADAPTER,
    gemini.ADAPTER,
)

ERROR_FORMATTERS = {
    Protocol.OPENAI: openai_adapter.format_error,
    Protocol.ANTHROPIC: anthropic.format_error,
    Protocol.GEMINI: gemini.format_error,
}


def protocol_for_path(path: str) -> Protocol:
    """Pick the protocol whose error shape a path should answer with."""
    if path.startswith("/v1beta/"):
        return Protocol.GEMINI
    if path.startswith("/v1/messages"):
        return Protocol.ANTHROPIC
    return Protocol.OPENAI


def make_error_response(protocol: Protocol, error: GatewayError) -> JSONResponse:
    """Render a gateway error in the protocol's native shape."""
    return JSONResponse(
        status_code=error.status_code,
        content=ERROR_FORMATTERS[protocol](error),
    )


def create_proxy_router(
    store: ConfigStore,
    dispatcher: UpstreamDispatcher,
    resolver: MappingResolver | None = None,
) -> APIRouter:
    """Create the data-plane router with one endpoint per adapter route."""
    router = APIRouter()
    resolver = resolver or MappingResolver()

    def make_endpoint(adapter: ProtocolAdapter):
        async def endpoint(request: Request):
            # One config snapshot for the whole request
            config = store.snapshot().proxy

            try:
                body = await request.json()
            except ValueError:
                return make_error_response(
                    adapter.protocol, InvalidRequest("Request body is not valid JSON")
                )

            try:
                canonical = adapter.parse_request(
                    body, dict(request.path_params), request.url.path
                )
                logger.info(
                    f">>> REQUEST {request.url.path} model={canonical.model} "
                    f"stream={canonical.stream} tools={len(canonical.tools)} "
                    f"messages={len(canonical.messages)}"
                )

                upstream_model = resolver.resolve(adapter.protocol, canonical.model, config)
                canonical.upstream_model = select_thinking_variant(
                    upstream_model, canonical.thinking
                )
                logger.info(f"Routing {canonical.model} -> {canonical.upstream_model}")

                if canonical.stream:
                    upstream = await dispatcher.stream(canonical, config.request_timeout)
                    return EventSourceResponse(
                        stream_events(adapter, upstream, canonical),
                        background=BackgroundTask(upstream.aclose),
                    )

                ai_message = await dispatcher.invoke(canonical, config.request_timeout)
            except GatewayError as e:
                logger.warning(f"<<< ERROR {e.status_code} {e.code}: {e.message}")
                return make_error_response(adapter.protocol, e)

            payload = adapter.format_response(ai_message, canonical)
            logger.info(
                f"<<< RESPONSE model={canonical.model} "
                f"tool_calls={len(ai_message.tool_calls or [])}"
            )
            return JSONResponse(payload)

        return endpoint

    for adapter in ADAPTERS:
        for path in adapter.routes:
            router.add_api_route(path, make_endpoint(adapter), methods=["POST"])

    @router.get("/v1/models")
    async def list_models() -> dict[str, Any]:
        """OpenAI-style model listing of the static catalog."""
        created = int(time.time())
        return {
            "object": "list",
            "data": [
                {
                    "id": entry.id,
                    "object": "model",
                    "created": created,
                    "owned_by": "llm-gateway",
                    "display_name": entry.display_name,
                    "description": entry.description,
                    "supported_protocols": sorted(p.value for p in entry.supported_protocols),
                }
                for entry in MODEL_CATALOG
            ],
        }

    @router.post("/v1/messages/count_tokens")
    async def count_tokens(request: Request) -> dict[str, Any]:
        """Handle POST /v1/messages/count_tokens.

        Returns estimated token count. Uses rough estimate since
        clients handle inaccurate counts gracefully.
        """
        body = await request.body()
        # Rough estimate: ~4 characters per token
        estimate = max(1, len(body) // 4)
        logger.debug(f"Token count estimate: {estimate}")
        return {"input_tokens": estimate}

    return router
