"""Connection-pooling agent built on httpx.

An Agent owns one ``httpx.AsyncClient`` per origin, so the ``connections``
limit applies per scheme/host/port the way it does for a browser. Clients
are created lazily on first use and shared by every request issued through
the agent.

Basic usage:

    pool = agent(connections=10, keepAliveTimeout=30)
    stream = request("https://example.com/data", pool)
    ...
    await pool.aclose()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping

import httpx

from .config import AgentOptions
from .models import BodyTimeoutError, HeadersTimeoutError, TransportError

DEFAULT_HEADERS = {"Accept-Encoding": "gzip, deflate, br"}

_DEFAULT_PORTS = {"http": 80, "https": 443}


class Agent:
    """Reusable pooling handle for GET requests.

    Safe to share between any number of concurrent requests running on the
    same event loop.
    """

    def __init__(
        self,
        options: AgentOptions | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize agent.

        Args:
            options: Pooling, timeout and TLS settings.
            transport: Custom httpx transport used instead of the default
                       connection pool (mainly for tests).
        """
        self._options = options or AgentOptions()
        self._transport = transport
        self._clients: dict[str, httpx.AsyncClient] = {}
        self._closed = False

    @property
    def options(self) -> AgentOptions:
        """Settings this agent was built with."""
        return self._options

    @property
    def is_closed(self) -> bool:
        """Check if agent has been closed."""
        return self._closed

    @property
    def origins(self) -> list[str]:
        """Origins that currently have a connection pool."""
        return list(self._clients)

    @property
    def limits(self) -> httpx.Limits:
        """Pool limits applied to each origin."""
        opts = self._options
        return httpx.Limits(
            max_connections=opts.connections,
            max_keepalive_connections=opts.connections if opts.keep_alive else 0,
            keepalive_expiry=opts.keepalive_expiry,
        )

    @property
    def timeout(self) -> httpx.Timeout:
        """Socket timeouts.

        Only connecting is bounded here. Header and body waits are enforced
        by open_stream() and iter_body() so each reports its own error.
        """
        return httpx.Timeout(None, connect=self._options.connect.timeout)

    def _extensions(self) -> dict[str, Any]:
        if self._options.connect.servername:
            return {"sni_hostname": self._options.connect.servername}
        return {}

    def client_for(self, url: str) -> httpx.AsyncClient:
        """Get or create the client for the URL's origin.

        Raises:
            TransportError: If the URL is not an absolute http(s) URL or the
                            agent is closed.
        """
        if self._closed:
            raise TransportError("Agent is closed")

        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as e:
            raise TransportError(f"Invalid URL {url!r}: {e}", original_error=e) from e

        if parsed.scheme not in _DEFAULT_PORTS:
            raise TransportError(f"Unsupported URL scheme in {url!r}")
        if not parsed.host:
            raise TransportError(f"URL must be absolute: {url!r}")

        port = parsed.port or _DEFAULT_PORTS[parsed.scheme]
        origin = f"{parsed.scheme}://{parsed.host}:{port}"

        client = self._clients.get(origin)
        if client is None:
            client = httpx.AsyncClient(
                limits=self.limits,
                timeout=self.timeout,
                verify=self._options.connect.reject_unauthorized,
                follow_redirects=False,
                transport=self._transport,
            )
            self._clients[origin] = client
        return client

    @asynccontextmanager
    async def open_stream(self, url: str) -> AsyncIterator[httpx.Response]:
        """Send a GET and yield the response once its headers arrive.

        The body is left unread; iterate ``response.aiter_raw()`` to get it
        exactly as sent, without any content decoding. Any status code is
        returned as-is.

        Raises:
            TransportError: On invalid URL or connection/TLS errors.
            HeadersTimeoutError: If headers take longer than headers_timeout.
        """
        client = self.client_for(url)
        request = client.build_request(
            "GET",
            url,
            headers=DEFAULT_HEADERS,
            extensions=self._extensions(),
        )

        try:
            response = await asyncio.wait_for(
                client.send(request, stream=True),
                timeout=self._options.headers_timeout,
            )
        except asyncio.TimeoutError as e:
            raise HeadersTimeoutError(
                f"No response headers from {url} within "
                f"{self._options.headers_timeout}s",
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            raise transport_error(url, e) from e

        try:
            yield response
        finally:
            await response.aclose()

    async def iter_body(self, response: httpx.Response) -> AsyncIterator[bytes]:
        """Yield the raw body of a response from open_stream().

        Raises:
            BodyTimeoutError: If no data arrives for body_timeout seconds.
        """
        timeout = self._options.body_timeout
        chunks = response.aiter_raw()
        while True:
            try:
                raw = await asyncio.wait_for(chunks.__anext__(), timeout=timeout)
            except StopAsyncIteration:
                return
            except asyncio.TimeoutError as e:
                raise BodyTimeoutError(
                    f"Response body from {response.request.url} stalled for "
                    f"more than {timeout}s",
                    original_error=e,
                ) from e
            yield raw

    async def aclose(self) -> None:
        """Close every pooled connection."""
        self._closed = True
        clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            await client.aclose()

    async def __aenter__(self) -> "Agent":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


def transport_error(url: str, exc: httpx.HTTPError) -> TransportError:
    """Wrap an httpx error, naming the URL it happened on."""
    detail = str(exc) or type(exc).__name__
    return TransportError(f"GET {url} failed: {detail}", original_error=exc)


def agent(
    options: AgentOptions | Mapping[str, Any] | None = None,
    /,
    **overrides: Any,
) -> Agent:
    """Build a reusable pooling handle.

    Args:
        options: AgentOptions, or a mapping of option names (snake_case or
                 camelCase, e.g. ``keepAliveTimeout``).
        **overrides: Further options applied on top of ``options``.

    Returns:
        A new Agent.

    Raises:
        ValueError: On unknown options or invalid values.
    """
    if options is None:
        resolved = AgentOptions()
    elif isinstance(options, AgentOptions):
        resolved = options
    else:
        resolved = AgentOptions.from_mapping(options)

    if overrides:
        resolved = resolved.merged(overrides)
    return Agent(resolved)
