"""FastAPI application factory."""

import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from llm_gateway import __version__
from llm_gateway.accounts.pool import AccountPool
from llm_gateway.auth import APIKeyAuth
from llm_gateway.backends.dispatcher import UpstreamDispatcher
from llm_gateway.config import ConfigStore
from llm_gateway.routes.proxy import create_proxy_router

DEFAULT_CONFIG_PATH = "config.yaml"


def config_path_from_env() -> Path:
    return Path(os.environ.get("LLM_GATEWAY_CONFIG", DEFAULT_CONFIG_PATH))


def create_app(
    store: ConfigStore | None = None,
    pool: AccountPool | None = None,
    dispatcher: UpstreamDispatcher | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without a store, config is loaded from the LLM_GATEWAY_CONFIG env var or
    "config.yaml" (created with defaults if missing). Adds APIKeyAuth
    middleware reading the configured key, the data-plane router and a
    health endpoint.

    Returns:
        Configured FastAPI application.
    """
    store = store or ConfigStore.open(config_path_from_env())
    config = store.snapshot()
    pool = pool or AccountPool.from_config(
        config.accounts, config.account_policy, config.account_cooldown
    )
    dispatcher = dispatcher or UpstreamDispatcher(pool, config.upstream)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Shared upstream clients belong to this event loop
        await dispatcher.aclose()

    app = FastAPI(
        title="LLM Gateway",
        description="OpenAI, Anthropic and Gemini compatible model-routing gateway",
        version=__version__,
        lifespan=lifespan,
    )

    # Add auth middleware
    auth = APIKeyAuth(key_source=lambda: store.proxy.api_key)
    app.middleware("http")(auth)

    app.include_router(create_proxy_router(store, dispatcher))

    # Add health endpoint
    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
