"""LLM Gateway: multi-protocol model routing proxy."""

__version__ = "0.1.0"
