"""Pooled HTTP transport for S3 requests."""

import logging
import socket
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Self

import httpx

from s3simple.configs.transport import S3TransportConfig
from s3simple.documents import parse_error
from s3simple.exceptions import (
    S3ConfigurationClientException,
    S3HTTPClientException,
    S3TransportClientException,
    http_exception_for,
)

logger = logging.getLogger(__name__)


def http_error(response: httpx.Response) -> S3HTTPClientException:
    """Build the exception for a non-2xx response whose body has been read."""
    return http_exception_for(response.status_code, response.text, parse_error(response.content))


class S3Transport:
    """Shared, lazily created `httpx.AsyncClient`.

    One instance is created by the caller and shared by reference between
    buckets. The underlying client is built on first use, exactly once, and
    reused for every request until `aclose()`.
    """

    def __init__(
        self,
        config: S3TransportConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Pool, timeout and TLS settings.
                If None, the default transport config will be used.
            transport: Network layer to use instead of the pooled HTTP transport,
                e.g. `httpx.MockTransport` in tests.

        """
        self._config = config or S3TransportConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def config(self) -> S3TransportConfig:
        """Transport settings."""
        return self._config

    @property
    def is_closed(self) -> bool:
        """Whether `aclose()` has been called."""
        return self._closed

    def _socket_options(self) -> list[tuple[int, int, int]]:
        keepalive = max(1, int(self._config.tcp_keepalive))
        options = [(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)]
        if hasattr(socket, "TCP_KEEPIDLE"):
            options.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, keepalive))
        if hasattr(socket, "TCP_KEEPINTVL"):
            options.append((socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, keepalive))
        return options

    def _build_client(self) -> httpx.AsyncClient:
        verify = not self._config.danger_allow_insecure
        if not verify:
            logger.warning("TLS certificate verification is disabled for S3 requests")
        transport = self._transport or httpx.AsyncHTTPTransport(
            verify=verify,
            limits=httpx.Limits(
                max_connections=self._config.max_connections,
                keepalive_expiry=self._config.pool_idle_timeout,
            ),
            socket_options=self._socket_options(),
        )
        return httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(self._config.read_timeout, connect=self._config.connect_timeout),
        )

    @property
    def client(self) -> httpx.AsyncClient:
        """The pooled client, created on first access.

        Raises:
            S3ConfigurationClientException: If the transport has been closed.

        """
        if self._closed:
            msg = "S3 transport is closed"
            raise S3ConfigurationClientException(msg)
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = self._build_client()
                    logger.debug("Created pooled S3 HTTP client")
        return self._client

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send a request and read the whole response.

        Raises:
            S3HTTPClientException: If the status is not 2xx.
            S3TransportClientException: If no response was received.

        """
        client = self.client
        try:
            response = await client.send(request)
        except httpx.TransportError as e:
            msg = f"{request.method} {request.url} failed: {e!r}"
            raise S3TransportClientException(msg) from e
        if not response.is_success:
            raise http_error(response)
        return response

    @asynccontextmanager
    async def stream(self, request: httpx.Request) -> AsyncIterator[httpx.Response]:
        """Send a request and yield the response before its body is read.

        The response is closed when the context exits. Error bodies are read
        in full before the exception is raised.

        Raises:
            S3HTTPClientException: If the status is not 2xx.
            S3TransportClientException: If no response was received or the body stream broke.

        """
        client = self.client
        try:
            response = await client.send(request, stream=True)
        except httpx.TransportError as e:
            msg = f"{request.method} {request.url} failed: {e!r}"
            raise S3TransportClientException(msg) from e
        try:
            if not response.is_success:
                await response.aread()
                raise http_error(response)
            yield response
        except httpx.TransportError as e:
            msg = f"{request.method} {request.url} body stream failed: {e!r}"
            raise S3TransportClientException(msg) from e
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        """Close the pooled client. The transport cannot be used afterwards."""
        with self._lock:
            client, self._client = self._client, None
            self._closed = True
        if client is not None:
            await client.aclose()
            logger.debug("Closed pooled S3 HTTP client")

    async def __aenter__(self) -> Self:
        """Enter the context manager."""
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_value: BaseException | None, traceback: TracebackType | None
    ) -> None:
        """Exit the context manager."""
        await self.aclose()
