"""API key authentication middleware."""

import hmac
import logging
from typing import Callable

from fastapi import Request, Response

from llm_gateway.errors import Unauthorized
from llm_gateway.routes.proxy import make_error_response, protocol_for_path

logger = logging.getLogger(__name__)

PUBLIC_PATHS = frozenset({"/health"})


def get_api_key(request: Request) -> str | None:
    """Extract API key from request headers or query string."""
    # Try x-api-key header first (Anthropic style)
    api_key = request.headers.get("x-api-key")
    if api_key:
        return api_key

    # Try Authorization Bearer token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]

    # Gemini clients send x-goog-api-key or ?key=
    api_key = request.headers.get("x-goog-api-key")
    if api_key:
        return api_key

    return request.query_params.get("key") or None


class APIKeyAuth:
    """API key authentication middleware.

    The expected key is read from ``key_source`` on every request, so a key
    regenerated through the control plane applies without a restart.
    """

    def __init__(self, key_source: Callable[[], str | None]):
        """
        Initialize auth middleware.

        Args:
            key_source: Returns the expected API key, or None to disable auth.
        """
        self.key_source = key_source

    async def __call__(
        self, request: Request, call_next
    ) -> Response:
        """Check API key on each request."""
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        expected = self.key_source()
        # Skip auth if no key configured
        if expected is None:
            return await call_next(request)

        provided = get_api_key(request) or ""
        if not hmac.compare_digest(provided.encode(), expected.encode()):
            logger.warning(f"Rejected request to {request.url.path}: invalid API key")
            return make_error_response(
                protocol_for_path(request.url.path),
                Unauthorized("Invalid or missing API key"),
            )

        return await call_next(request)
