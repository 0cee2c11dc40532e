"""Resolve requested model names to upstream model ids.

Resolution runs an ordered list of lookup strategies and returns the first
hit:

1. ``custom_mapping`` keyed by the exact requested id
2. the protocol's group table (``anthropic_mapping`` / ``openai_mapping``)
   keyed by the id's group
3. the built-in default for the group
4. the id itself when it already names a known upstream model

If nothing matches, the requested id is passed through unchanged and the
upstream decides whether it exists.
"""

import logging
import re
from typing import Callable, Sequence

from llm_gateway.errors import UnsupportedCapability
from llm_gateway.models.catalog import Protocol, is_known_model
from llm_gateway.models.config import ProxyConfig

logger = logging.getLogger(__name__)

GROUP_TABLE_VERSION = 1

# First match wins. Catalog ids are never classified.
GROUP_PATTERNS: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"^claude-(?:(?:opus|sonnet|haiku)-)?4"), "claude-4.5-series"),
    (re.compile(r"^claude-(?:(?:opus|sonnet|haiku)-)?3"), "claude-3.5-series"),
    (re.compile(r"^gpt-(?:4o|3\.5)"), "gpt-4o-series"),
    (re.compile(r"^gpt-4"), "gpt-4-series"),
    (re.compile(r"^gpt-5"), "gpt-5-series"),
)

DEFAULT_GROUP_TARGETS: dict[str, str] = {
    "claude-4.5-series": "gemini-3-pro-high",
    "claude-3.5-series": "claude-sonnet-4-5-thinking",
    "gpt-4-series": "gemini-3-pro-high",
    "gpt-4o-series": "gemini-3-flash",
    "gpt-5-series": "gemini-3-flash",
}

PROTOCOL_GROUP_TABLES: dict[Protocol, str] = {
    Protocol.ANTHROPIC: "anthropic_mapping",
    Protocol.OPENAI: "openai_mapping",
}

LookupStrategy = Callable[[Protocol, str, ProxyConfig], str | None]


def classify_model(model_id: str) -> str | None:
    """Return the group key for a model id, or None if unclassified."""
    if is_known_model(model_id):
        return None
    for pattern, group in GROUP_PATTERNS:
        if pattern.match(model_id):
            return group
    return None


def lookup_custom(protocol: Protocol, model_id: str, config: ProxyConfig) -> str | None:
    return config.custom_mapping.get(model_id) or None


def lookup_group(protocol: Protocol, model_id: str, config: ProxyConfig) -> str | None:
    table_name = PROTOCOL_GROUP_TABLES.get(protocol)
    group = classify_model(model_id)
    if table_name is None or group is None:
        return None
    # Empty target means "use the default for this group"
    return getattr(config, table_name).get(group) or None


def lookup_default(protocol: Protocol, model_id: str, config: ProxyConfig) -> str | None:
    group = classify_model(model_id)
    if group is None:
        return None
    return DEFAULT_GROUP_TARGETS.get(group)


def lookup_known(protocol: Protocol, model_id: str, config: ProxyConfig) -> str | None:
    return model_id if is_known_model(model_id) else None


DEFAULT_STRATEGIES: tuple[LookupStrategy, ...] = (
    lookup_custom,
    lookup_group,
    lookup_default,
    lookup_known,
)


def check_capability(protocol: Protocol, model_id: str) -> None:
    """Reject models the protocol cannot serve.

    Raises:
        UnsupportedCapability: For image models under the Anthropic protocol.
    """
    if protocol is Protocol.ANTHROPIC and "image" in model_id:
        raise UnsupportedCapability(
            f"Model '{model_id}' produces images and is not available "
            "over the Anthropic protocol"
        )


class MappingResolver:
    """Applies lookup strategies in order; first match wins."""

    def __init__(self, strategies: Sequence[LookupStrategy] = DEFAULT_STRATEGIES):
        self.strategies = tuple(strategies)

    def resolve(self, protocol: Protocol, model_id: str, config: ProxyConfig) -> str:
        """
        Resolve a requested model id to an upstream model id.

        Args:
            protocol: Protocol the request arrived on.
            model_id: Model id named by the client.
            config: Config snapshot taken at the start of the request.

        Returns:
            The upstream model id (the requested id if nothing applies).

        Raises:
            UnsupportedCapability: If the protocol cannot serve the model.
        """
        check_capability(protocol, model_id)

        resolved = model_id
        for strategy in self.strategies:
            target = strategy(protocol, model_id, config)
            if target:
                logger.debug(f"Resolved {model_id} -> {target} via {strategy.__name__}")
                resolved = target
                break
        else:
            logger.debug(f"No mapping for {model_id}; passing through")

        check_capability(protocol, resolved)
        return resolved


def select_thinking_variant(model_id: str, thinking: bool) -> str:
    """Route thinking requests to the model's dedicated thinking variant.

    Thinking is never forwarded as a flag; a model without a variant is
    served as-is.
    """
    if not thinking or model_id.endswith("-thinking"):
        return model_id
    variant = f"{model_id}-thinking"
    if is_known_model(variant):
        return variant
    logger.debug(f"No thinking variant for {model_id}; ignoring thinking flag")
    return model_id


_default_resolver = MappingResolver()


def resolve_model(protocol: Protocol, model_id: str, config: ProxyConfig) -> str:
    """Resolve with the default strategy chain."""
    return _default_resolver.resolve(protocol, model_id, config)
