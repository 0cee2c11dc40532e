"""Configuration loading with environment variable substitution."""

import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from llm_gateway.errors import InvalidConfig
from llm_gateway.models.config import AppConfig, MappingUpdate, ProxyConfig

logger = logging.getLogger(__name__)

ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

MAPPING_TABLES = ("anthropic_mapping", "openai_mapping", "custom_mapping")


def substitute_env_vars(value: str) -> str:
    """Replace ${VAR} patterns with environment variable values."""
    if not isinstance(value, str):
        return value

    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            raise ValueError(f"Environment variable '{var_name}' not set")
        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def substitute_env_vars_recursive(obj: dict | list | str) -> dict | list | str:
    """Recursively substitute env vars in a nested structure."""
    if isinstance(obj, dict):
        return {k: substitute_env_vars_recursive(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [substitute_env_vars_recursive(item) for item in obj]
    elif isinstance(obj, str):
        return substitute_env_vars(obj)
    return obj


def load_config(path: Path) -> AppConfig:
    """Load configuration from YAML file with env var substitution.

    Raises:
        InvalidConfig: If a referenced env var is unset or validation fails.
    """
    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    try:
        # Substitute environment variables
        config_data = substitute_env_vars_recursive(raw_config)
        return AppConfig(**config_data)
    except ValidationError as e:
        raise InvalidConfig(f"Invalid config file {path}: {e}") from e
    except ValueError as e:
        raise InvalidConfig(str(e)) from e


def save_config(config: AppConfig, path: Path) -> None:
    """Write configuration to YAML, replacing the file atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json")
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w") as f:
            yaml.safe_dump(data, f, sort_keys=False)
        os.replace(tmp_name, path)
    except BaseException:
        os.unlink(tmp_name)
        raise


def merge_mapping(
    current: dict[str, str], update: dict[str, str | None]
) -> dict[str, str]:
    """Merge a partial mapping table; None values delete keys."""
    merged = dict(current)
    for key, value in update.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


class ConfigStore:
    """Holds the current AppConfig snapshot and persists changes.

    Readers call ``snapshot()`` once and keep the returned immutable object
    for the rest of their work. Writers build a complete new config, validate
    it, then swap the reference under a lock, so a failed update leaves the
    previous snapshot untouched.
    """

    def __init__(self, config: AppConfig, path: Path | None = None):
        self._config = config
        self._path = path
        self._lock = threading.Lock()

    @classmethod
    def open(cls, path: Path) -> "ConfigStore":
        """Load config from ``path``, creating it with defaults on first run."""
        if path.exists():
            config = load_config(path)
        else:
            config = AppConfig()
            save_config(config, path)
            logger.info(f"Created default config at {path}")
        return cls(config, path)

    @property
    def path(self) -> Path | None:
        return self._path

    def snapshot(self) -> AppConfig:
        return self._config

    @property
    def proxy(self) -> ProxyConfig:
        return self._config.proxy

    def replace(self, config: AppConfig) -> AppConfig:
        """Swap in a whole new config and persist it."""
        with self._lock:
            self._commit(config)
        return config

    def update_proxy(self, **changes: Any) -> ProxyConfig:
        """Apply field changes to the proxy section atomically.

        Raises:
            InvalidConfig: If the resulting config fails validation.
        """
        with self._lock:
            current = self._config
            data = current.proxy.model_dump()
            data.update(changes)
            proxy = validate_proxy_config(data)
            self._commit(current.model_copy(update={"proxy": proxy}))
        return proxy

    def update_mappings(self, update: MappingUpdate) -> ProxyConfig:
        """Merge mapping entries into the three tables in one step."""
        changes = {}
        with self._lock:
            current = self._config.proxy
            for table in MAPPING_TABLES:
                entries = getattr(update, table)
                if entries is not None:
                    changes[table] = merge_mapping(getattr(current, table), entries)
            data = current.model_dump()
            data.update(changes)
            proxy = validate_proxy_config(data)
            self._commit(self._config.model_copy(update={"proxy": proxy}))
        return proxy

    def reset_mappings(self) -> ProxyConfig:
        """Clear all mapping tables so built-in defaults apply."""
        return self.update_proxy(**{table: {} for table in MAPPING_TABLES})

    def _commit(self, config: AppConfig) -> None:
        if self._path is not None:
            save_config(config, self._path)
        self._config = config


def validate_app_config(data: dict) -> AppConfig:
    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise InvalidConfig(str(e)) from e


def validate_proxy_config(data: dict) -> ProxyConfig:
    """Validate proxy settings, raising InvalidConfig on any violation."""
    try:
        return ProxyConfig.model_validate(data)
    except ValidationError as e:
        raise InvalidConfig(str(e)) from e
