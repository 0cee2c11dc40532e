"""Configuration models for LLM Gateway."""

import secrets
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_PORT = 8045
DEFAULT_REQUEST_TIMEOUT = 120

# Fields marked with this extra affect the listener itself and only take
# effect after Stop + Start.
RESTART_REQUIRED = {"restart_required": True}


def generate_api_key() -> str:
    """Generate a new random API key (128 bits of entropy)."""
    return f"sk-{secrets.token_hex(16)}"


class ProxyConfig(BaseModel):
    """Gateway listener, auth and model mapping settings."""

    model_config = ConfigDict(frozen=True)

    port: int = Field(
        DEFAULT_PORT, ge=1024, le=65535, json_schema_extra=RESTART_REQUIRED
    )
    api_key: str = Field(default_factory=generate_api_key, min_length=1)
    request_timeout: int = Field(DEFAULT_REQUEST_TIMEOUT, ge=30, le=600)
    auto_start: bool = False
    allow_lan_access: bool = Field(False, json_schema_extra=RESTART_REQUIRED)
    anthropic_mapping: dict[str, str] = Field(default_factory=dict)
    openai_mapping: dict[str, str] = Field(default_factory=dict)
    custom_mapping: dict[str, str] = Field(default_factory=dict)

    @field_validator("anthropic_mapping", "openai_mapping", "custom_mapping")
    @classmethod
    def _keys_not_blank(cls, value: dict[str, str]) -> dict[str, str]:
        for key in value:
            if not key.strip():
                raise ValueError("mapping keys must be non-empty")
        return value

    @property
    def bind_host(self) -> str:
        return "0.0.0.0" if self.allow_lan_access else "127.0.0.1"


def restart_required_fields() -> frozenset[str]:
    """Names of ProxyConfig fields that need a listener restart."""
    return frozenset(
        name
        for name, info in ProxyConfig.model_fields.items()
        if isinstance(info.json_schema_extra, dict)
        and info.json_schema_extra.get("restart_required")
    )


def pending_restart_changes(old: ProxyConfig, new: ProxyConfig) -> list[str]:
    """Return restart-required fields whose value differs between configs."""
    return sorted(
        name
        for name in restart_required_fields()
        if getattr(old, name) != getattr(new, name)
    )


class UpstreamConfig(BaseModel):
    """The OpenAI-compatible provider requests are forwarded to."""

    base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    verify_ssl: bool = True


class AccountConfig(BaseModel):
    """A credential in the account pool."""

    id: str
    api_key: str
    enabled: bool = True


class AppConfig(BaseModel):
    """Root configuration persisted to disk."""

    model_config = ConfigDict(frozen=True)

    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    accounts: list[AccountConfig] = Field(default_factory=list)
    account_policy: Literal["round_robin", "least_recently_used"] = "round_robin"
    account_cooldown: float = Field(60.0, ge=0)


class MappingUpdate(BaseModel):
    """Partial mapping update; a None value removes the key."""

    anthropic_mapping: dict[str, str | None] | None = None
    openai_mapping: dict[str, str | None] | None = None
    custom_mapping: dict[str, str | None] | None = None


class ProxyStatus(BaseModel):
    """Live gateway status. Derived on every query, never persisted.

    ``base_url`` names the bind host, so it reads ``0.0.0.0`` with LAN access
    on. ``local_url`` always points at the loopback address and is the one to
    hand to clients on this machine.
    """

    running: bool
    port: int
    base_url: str
    active_accounts: int
    local_url: str = ""
