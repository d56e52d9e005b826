"""
Async HTTP client for metric providers

Built on httpx; every metric source polls its provider through this client so
transport failures surface uniformly as FetchError subclasses.

Usage:
    from seo_monitor.async_http_client import AsyncSecureHTTPClient

    async with AsyncSecureHTTPClient() as client:
        payload = await client.get_json(url, source="pagespeed", params={"url": site_url})

Security Features:
    - SSL verification always enabled (verify=True)
    - Request timeout on every call (the pipeline also bounds the whole fetch)
    - Connection pooling and HTTP/2 for sources fanned out concurrently
"""

from typing import Any

import httpx

from seo_monitor.errors import FetchTimeout, InvalidResponse, ProviderError


class AsyncSecureHTTPClient:
    """
    Pooled httpx client with enforced SSL verification.

    Use as an async context manager; the underlying AsyncClient lives only
    inside the ``async with`` block.
    """

    DEFAULT_TIMEOUT = 30  # seconds
    DEFAULT_MAX_CONNECTIONS = 10

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        http2: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            timeout: Per-request timeout in seconds
            max_connections: Connection pool size
            http2: Enable HTTP/2 (ignored when a custom transport is given)
            transport: Optional custom transport (httpx.MockTransport in tests)
        """
        self.timeout = httpx.Timeout(timeout)
        self.limits = httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections // 2)
        self.http2 = http2 and transport is None
        self.transport = transport
        self.client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "AsyncSecureHTTPClient":
        self.client = httpx.AsyncClient(
            timeout=self.timeout,
            limits=self.limits,
            verify=True,
            http2=self.http2,
            follow_redirects=True,
            transport=self.transport,
        )
        return self

    async def __aexit__(self, *args):
        if self.client:
            await self.client.aclose()
            self.client = None

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """Raw GET; transport errors propagate as httpx exceptions."""
        if not self.client:
            raise RuntimeError("Client not initialized. Use 'async with AsyncSecureHTTPClient()' context manager")
        return await self.client.get(url, **kwargs)

    async def get_json(self, url: str, source: str, **kwargs) -> Any:
        """
        GET a provider endpoint and decode its JSON body.

        Args:
            url: Provider endpoint
            source: Source name attached to raised errors
            **kwargs: Passed to httpx.AsyncClient.get() (params, headers, ...)

        Returns:
            Decoded JSON payload

        Raises:
            FetchTimeout: The request timed out
            ProviderError: Transport failure or non-200 status (``code`` holds the status)
            InvalidResponse: The body is not valid JSON
        """
        try:
            response = await self.get(url, **kwargs)
        except httpx.TimeoutException as e:
            raise FetchTimeout(f"{source} request timed out: {e}", source=source) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{source} request failed: {e}", source=source) from e

        if response.status_code != 200:
            raise ProviderError(
                f"{source} returned HTTP {response.status_code}", code=response.status_code, source=source
            )

        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponse(f"{source} returned invalid JSON: {e}", source=source) from e
