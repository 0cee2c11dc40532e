"""Static model catalog and wire protocol tags."""

from dataclasses import dataclass
from enum import Enum


class Protocol(str, Enum):
    """Wire protocols the gateway accepts."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


ALL_PROTOCOLS = frozenset(Protocol)


@dataclass(frozen=True)
class ModelCatalogEntry:
    """An upstream model the gateway knows about."""

    id: str
    display_name: str
    description: str
    supported_protocols: frozenset[Protocol] = ALL_PROTOCOLS


MODEL_CATALOG: tuple[ModelCatalogEntry, ...] = (
    # Gemini 3
    ModelCatalogEntry("gemini-3-flash", "Gemini 3 Flash", "Fast preview model"),
    ModelCatalogEntry("gemini-3-pro-high", "Gemini 3 Pro High", "Highest quality"),
    ModelCatalogEntry("gemini-3-pro-low", "Gemini 3 Pro Low", "Balanced quality and speed"),
    ModelCatalogEntry(
        "gemini-3-pro-image",
        "Gemini 3 Pro (Image)",
        "Image generation",
        frozenset({Protocol.OPENAI, Protocol.GEMINI}),
    ),
    # Gemini 2.5
    ModelCatalogEntry("gemini-2.5-flash", "Gemini 2.5 Flash", "Fast general model"),
    ModelCatalogEntry("gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite", "Lightweight model"),
    ModelCatalogEntry("gemini-2.5-pro", "Gemini 2.5 Pro", "Previous generation pro model"),
    ModelCatalogEntry(
        "gemini-2.5-flash-thinking", "Gemini 2.5 Flash (Thinking)", "Flash with reasoning"
    ),
    # Claude
    ModelCatalogEntry("claude-sonnet-4-5", "Claude 4.5 Sonnet", "Claude Sonnet"),
    ModelCatalogEntry(
        "claude-sonnet-4-5-thinking", "Claude 4.5 Sonnet (Thinking)", "Sonnet with reasoning"
    ),
    ModelCatalogEntry(
        "claude-opus-4-5-thinking", "Claude 4.5 Opus (Thinking)", "Opus with reasoning"
    ),
)

KNOWN_MODELS: dict[str, ModelCatalogEntry] = {entry.id: entry for entry in MODEL_CATALOG}


def is_known_model(model_id: str) -> bool:
    """Return True if the id names an upstream model in the catalog."""
    return model_id in KNOWN_MODELS
