"""Control-plane operations over the config store, account pool and listener."""

import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI

from llm_gateway.accounts.pool import Account, AccountPool
from llm_gateway.backends.dispatcher import UpstreamDispatcher
from llm_gateway.app import create_app
from llm_gateway.config import ConfigStore, validate_app_config
from llm_gateway.errors import InvalidRequest
from llm_gateway.models.config import (
    AppConfig,
    MappingUpdate,
    ProxyConfig,
    ProxyStatus,
    generate_api_key,
)
from llm_gateway.server import GatewayServer

logger = logging.getLogger(__name__)


class ControlPlane:
    """
    The operations a UI (or the CLI) drives the gateway with.

    One ControlPlane owns one config store, one account pool and one
    listener. The app served by the listener shares the store and pool, so
    mapping and key changes apply to the next request without a restart.
    """

    def __init__(
        self,
        store: ConfigStore,
        pool: AccountPool | None = None,
        dispatcher: UpstreamDispatcher | None = None,
        grace_period: float | None = None,
    ):
        config = store.snapshot()
        self.store = store
        self.pool = pool or AccountPool.from_config(
            config.accounts, config.account_policy, config.account_cooldown
        )
        self.dispatcher = dispatcher or UpstreamDispatcher(self.pool, config.upstream)
        kwargs = {} if grace_period is None else {"grace_period": grace_period}
        self.server = GatewayServer(self._create_app, self.pool, **kwargs)

    @classmethod
    def open(cls, path: Path, **kwargs: Any) -> "ControlPlane":
        """Open (or create on first run) the config at ``path``."""
        return cls(ConfigStore.open(path), **kwargs)

    def _create_app(self) -> FastAPI:
        return create_app(self.store, self.pool, self.dispatcher)

    def boot(self) -> ProxyStatus:
        """Start the gateway if the saved config asks for it."""
        if self.store.proxy.auto_start:
            logger.info("auto_start enabled, starting gateway")
            return self.start_proxy_service()
        return self.get_proxy_status()

    def get_proxy_status(self) -> ProxyStatus:
        return self.server.status()

    def start_proxy_service(self, config: ProxyConfig | dict | None = None) -> ProxyStatus:
        """
        Start the listener, persisting ``config`` first when one is given.

        Raises:
            InvalidConfig: If the settings fail validation. Nothing is saved.
            PortInUse: If the port cannot be bound.
            AlreadyRunning: If the gateway is listening on another port.
        """
        if config is not None:
            data = config.model_dump() if isinstance(config, ProxyConfig) else config
            data = {**self.store.proxy.model_dump(), **data}
            if self.server.running:
                return self.server.start(data)
            self.store.update_proxy(**data)
        return self.server.start(self.store.proxy)

    def stop_proxy_service(self) -> ProxyStatus:
        return self.server.stop()

    def update_model_mapping(self, update: MappingUpdate | dict) -> ProxyConfig:
        """Merge mapping entries; other entries and fields are untouched."""
        if isinstance(update, dict):
            update = MappingUpdate.model_validate(update)
        proxy = self.store.update_mappings(update)
        logger.info("Model mapping updated")
        return proxy

    def reset_model_mapping(self) -> ProxyConfig:
        """Clear all mapping tables so the built-in defaults apply."""
        proxy = self.store.reset_mappings()
        logger.info("Model mapping reset to defaults")
        return proxy

    def generate_api_key(self) -> str:
        """Generate, store and return a new gateway API key."""
        key = generate_api_key()
        self.store.update_proxy(api_key=key)
        logger.info("Generated new gateway API key")
        return key

    def revalidate_account(self, account_id: str) -> ProxyStatus:
        """
        Put a failed account back into rotation without waiting out its cool-down.

        Raises:
            InvalidRequest: If no pooled account has that id.
        """
        if not self.pool.revalidate(account_id):
            raise InvalidRequest(f"Unknown account '{account_id}'")
        return self.get_proxy_status()

    def load_config(self) -> AppConfig:
        return self.store.snapshot()

    def save_config(self, config: AppConfig | dict) -> AppConfig:
        """
        Replace and persist the whole config.

        Account changes apply to the pool immediately. Listener changes
        (port, LAN access) are reported and wait for a restart.

        Raises:
            InvalidConfig: If the config fails validation.
        """
        if isinstance(config, dict):
            config = validate_app_config(config)
        self.server.pending_restart(config.proxy)
        saved = self.store.replace(config)
        self.pool.replace_accounts(
            Account(id=a.id, api_key=a.api_key) for a in saved.accounts if a.enabled
        )
        self.pool.configure(saved.account_policy, saved.account_cooldown)
        self.dispatcher.upstream = saved.upstream
        return saved
