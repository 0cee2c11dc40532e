"""Dispatch canonical requests to the upstream provider."""

import asyncio
import logging
from typing import AsyncIterator, Callable

import anyio
import httpx
import openai
from langchain_core.messages import AIMessage, AIMessageChunk

from llm_gateway.accounts.pool import Account, AccountPool
from llm_gateway.backends.factory import HttpClients, create_chat_model, create_http_clients
from llm_gateway.errors import (
    AccountFailure,
    GatewayError,
    InvalidRequest,
    NoAvailableAccount,
    UnknownModel,
    UpstreamError,
    UpstreamProtocolError,
    UpstreamStreamInterrupted,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from llm_gateway.models.config import UpstreamConfig
from llm_gateway.translation.canonical import CanonicalRequest

logger = logging.getLogger(__name__)

# One original attempt plus one retry on a different account
MAX_ATTEMPTS = 2


def map_upstream_error(exc: Exception, account: Account) -> GatewayError:
    """Translate an upstream client exception into the gateway taxonomy."""
    if isinstance(exc, GatewayError):
        return exc
    if isinstance(exc, (TimeoutError, openai.APITimeoutError, httpx.TimeoutException)):
        return UpstreamTimeout(f"Upstream did not respond in time: {exc}")
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AccountFailure(str(exc), account_id=account.id, reason="auth")
    if isinstance(exc, openai.RateLimitError):
        return AccountFailure(str(exc), account_id=account.id, reason="quota")
    if isinstance(exc, (openai.APIConnectionError, httpx.TransportError)):
        return UpstreamUnavailable(f"Upstream unreachable: {exc}")
    if isinstance(exc, openai.NotFoundError):
        return UnknownModel(f"Upstream rejected model: {exc}")
    if isinstance(exc, (openai.BadRequestError, openai.UnprocessableEntityError)):
        return InvalidRequest(f"Upstream rejected request: {exc}")
    if isinstance(exc, openai.APIStatusError):
        return UpstreamError(f"Upstream error {exc.status_code}: {exc}")
    if isinstance(exc, (openai.APIResponseValidationError, ValueError)):
        return UpstreamProtocolError(f"Malformed upstream response: {exc}")
    if isinstance(exc, openai.OpenAIError):
        return UpstreamError(str(exc))
    logger.exception(f"Unexpected upstream failure (account={account.id})")
    return UpstreamError(f"Backend error: {type(exc).__name__}: {exc}")


class UpstreamStream:
    """An upstream chunk stream whose first chunk has already arrived.

    Iterating yields the first chunk, then the rest. A stall longer than
    ``idle_timeout`` or an upstream failure after the first chunk raises
    ``UpstreamStreamInterrupted``. ``aclose()`` closes the upstream call and
    is safe to call more than once.
    """

    def __init__(
        self,
        chunks: AsyncIterator[AIMessageChunk],
        first: AIMessageChunk | None,
        idle_timeout: float,
        account_id: str,
    ):
        self._chunks = chunks
        self._first = first
        self._idle_timeout = idle_timeout
        self.account_id = account_id
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[AIMessageChunk]:
        try:
            if self._first is None:
                return
            yield self._first
            while True:
                try:
                    async with asyncio.timeout(self._idle_timeout):
                        chunk = await anext(self._chunks)
                except StopAsyncIteration:
                    return
                except TimeoutError as e:
                    raise UpstreamStreamInterrupted(
                        f"Upstream stalled for more than {self._idle_timeout}s"
                    ) from e
                except GatewayError:
                    raise
                except (openai.OpenAIError, httpx.HTTPError) as e:
                    raise UpstreamStreamInterrupted(f"Upstream stream failed: {e}") from e
                except Exception as e:
                    logger.exception(f"Malformed upstream chunk (account={self.account_id})")
                    raise UpstreamStreamInterrupted(
                        f"Malformed upstream stream: {type(e).__name__}: {e}"
                    ) from e
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is not None:
            # Runs during cancellation on client disconnect
            with anyio.CancelScope(shield=True):
                await aclose()
            logger.debug(f"Closed upstream stream (account={self.account_id})")


class UpstreamDispatcher:
    """
    Issues canonical requests to the upstream provider.

    Each attempt draws an account from the pool. Auth and quota failures mark
    the account unhealthy and the call is retried once on another account;
    every other failure propagates immediately.
    """

    def __init__(
        self,
        pool: AccountPool,
        upstream: UpstreamConfig,
        model_factory: Callable = create_chat_model,
    ):
        self.pool = pool
        self.upstream = upstream
        self.model_factory = model_factory
        self._http_clients: HttpClients | None = None
        self._http_upstream: UpstreamConfig | None = None
        self._retired: list[HttpClients] = []

    def _shared_http_clients(self) -> HttpClients | None:
        """Clients for the current upstream, built once and reused by every call."""
        if self._http_upstream != self.upstream:
            # In-flight calls may still hold the old clients; close them on aclose()
            if self._http_clients is not None:
                self._retired.append(self._http_clients)
            self._http_clients = create_http_clients(self.upstream)
            self._http_upstream = self.upstream
        return self._http_clients

    async def aclose(self) -> None:
        """Close shared HTTP clients. New ones are built on the next call."""
        clients = self._retired
        if self._http_clients is not None:
            clients.append(self._http_clients)
        self._http_clients = self._http_upstream = None
        self._retired = []
        for sync_client, async_client in clients:
            sync_client.close()
            await async_client.aclose()
        if clients:
            logger.debug(f"Closed {len(clients)} upstream HTTP client pair(s)")

    def _build_model(self, account: Account, request: CanonicalRequest, timeout: float):
        chat_model = self.model_factory(
            self.upstream,
            account.api_key,
            request.upstream_model or request.model,
            timeout,
            request.extra_body,
            http_clients=self._shared_http_clients(),
        )
        if request.tools:
            chat_model = chat_model.bind_tools(request.tools)
        return chat_model

    def _on_failure(self, error: GatewayError, attempt: int) -> None:
        """Mark the account and decide whether another attempt is allowed."""
        if isinstance(error, AccountFailure):
            self.pool.mark_unhealthy(error.account_id, error.reason)
            if attempt + 1 < MAX_ATTEMPTS:
                logger.info(f"Retrying on another account after {error.reason} failure")
                return
        raise error

    def _acquire(self, tried: list[str], last_error: GatewayError | None) -> Account:
        try:
            return self.pool.acquire(exclude=tried)
        except NoAvailableAccount:
            # No different account to retry on: surface the original failure
            if last_error is not None:
                raise last_error
            raise

    async def invoke(self, request: CanonicalRequest, timeout: float) -> AIMessage:
        """
        Run a non-streaming call.

        Raises:
            NoAvailableAccount: If the pool has no usable account.
            UpstreamError: Any upstream failure, mapped to the taxonomy.
        """
        tried: list[str] = []
        last_error: GatewayError | None = None
        for attempt in range(MAX_ATTEMPTS):
            account = self._acquire(tried, last_error)
            tried.append(account.id)
            logger.info(
                f"Dispatching model={request.upstream_model} account={account.id} "
                f"attempt={attempt + 1}"
            )
            chat_model = self._build_model(account, request, timeout)
            try:
                async with asyncio.timeout(timeout):
                    return await chat_model.ainvoke(request.messages, **request.params)
            except Exception as e:
                last_error = map_upstream_error(e, account)
                logger.error(f"Upstream error (account={account.id}): {last_error.message}")
                self._on_failure(last_error, attempt)
        raise last_error

    async def stream(self, request: CanonicalRequest, timeout: float) -> UpstreamStream:
        """
        Start a streaming call and wait for its first chunk.

        Failures before the first chunk are handled like ``invoke`` failures
        (including the account retry), so callers can still answer with a
        normal error response.

        Raises:
            UpstreamTimeout: If no chunk arrives within ``timeout``.
        """
        tried: list[str] = []
        last_error: GatewayError | None = None
        for attempt in range(MAX_ATTEMPTS):
            account = self._acquire(tried, last_error)
            tried.append(account.id)
            logger.info(
                f"Streaming model={request.upstream_model} account={account.id} "
                f"attempt={attempt + 1}"
            )
            chat_model = self._build_model(account, request, timeout)
            chunks = aiter(chat_model.astream(request.messages, **request.params))
            try:
                async with asyncio.timeout(timeout):
                    first = await anext(chunks)
            except StopAsyncIteration:
                return UpstreamStream(chunks, None, timeout, account.id)
            except Exception as e:
                await chunks.aclose()
                last_error = map_upstream_error(e, account)
                logger.error(f"Upstream error (account={account.id}): {last_error.message}")
                self._on_failure(last_error, attempt)
                continue
            return UpstreamStream(chunks, first, timeout, account.id)
        raise last_error
