"""Tests for the upstream chat model factory."""

import httpx
from langchain_openai import ChatOpenAI

from llm_gateway.backends.factory import create_chat_model, create_http_clients
from llm_gateway.models.config import UpstreamConfig


def test_create_chat_model():
    """Create ChatOpenAI bound to one account and model."""
    upstream = UpstreamConfig(base_url="http://localhost:11434/v1")

    model = create_chat_model(upstream, "key-a", "gemini-3-flash", timeout=60)

    assert isinstance(model, ChatOpenAI)
    assert model.model_name == "gemini-3-flash"
    assert str(model.openai_api_base) == "http://localhost:11434/v1"
    assert model.openai_api_key.get_secret_value() == "key-a"
    assert model.max_retries == 0
    assert model.request_timeout == 60


def test_create_chat_model_with_extra_body():
    """Provider-specific fields are passed through."""
    extra = {"google": {"image_config": {"aspect_ratio": "16:9"}}}

    model = create_chat_model(UpstreamConfig(), "key-a", "gemini-3-pro-image", 60, extra)

    assert model.extra_body == extra


def test_create_http_clients_only_without_ssl_verification():
    assert create_http_clients(UpstreamConfig()) is None

    clients = create_http_clients(UpstreamConfig(verify_ssl=False))

    sync_client, async_client = clients
    assert isinstance(sync_client, httpx.Client)
    assert isinstance(async_client, httpx.AsyncClient)
    sync_client.close()


def test_create_chat_model_uses_given_clients():
    """Shared clients are installed instead of building new ones."""
    upstream = UpstreamConfig(base_url="https://self-signed.local/v1", verify_ssl=False)
    clients = create_http_clients(upstream)

    model = create_chat_model(upstream, "key-a", "gemini-3-flash", 60, http_clients=clients)

    assert model.http_client is clients[0]
    assert model.http_async_client is clients[1]
    clients[0].close()
