"""Factory for creating LangChain chat models."""

import httpx
from langchain_openai import ChatOpenAI

from llm_gateway.models.config import UpstreamConfig

HttpClients = tuple[httpx.Client, httpx.AsyncClient]


def create_http_clients(upstream: UpstreamConfig) -> HttpClients | None:
    """
    Build the HTTP clients an upstream needs, if any.

    Returns None when the default clients will do (TLS verification on).
    The caller owns the returned clients and must close them.
    """
    if upstream.verify_ssl:
        return None
    return httpx.Client(verify=False), httpx.AsyncClient(verify=False)


def create_chat_model(
    upstream: UpstreamConfig,
    api_key: str,
    model_name: str,
    timeout: float,
    extra_body: dict | None = None,
    *,
    http_clients: HttpClients | None = None,
) -> ChatOpenAI:
    """
    Create a ChatOpenAI instance bound to one account.

    Args:
        upstream: Upstream provider URL and TLS settings.
        api_key: The selected account's credential.
        model_name: The resolved upstream model id.
        timeout: Per-call timeout in seconds.
        extra_body: Provider-specific fields merged into the request body.
        http_clients: Shared clients from ``create_http_clients``.

    Returns:
        Configured ChatOpenAI instance.
    """
    kwargs: dict = {
        "model": model_name,
        "openai_api_key": api_key,
        "openai_api_base": upstream.base_url,
        "timeout": timeout,
        # Retries are handled by the dispatcher with a different account
        "max_retries": 0,
        "stream_usage": True,
    }

    if extra_body:
        kwargs["extra_body"] = extra_body

    if http_clients is not None:
        kwargs["http_client"], kwargs["http_async_client"] = http_clients

    return ChatOpenAI(**kwargs)
