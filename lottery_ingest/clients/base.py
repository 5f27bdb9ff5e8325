"""
Base API client with connection handling, proxy routing and request metrics.
All source-specific clients inherit from this class.
"""
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
import structlog

from lottery_ingest.config import Settings, get_settings

logger = structlog.get_logger()

# Browser-like header set; the history source blocks obvious bots
BROWSER_HEADERS: dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/144.0.0.0 Safari/537.36 Edg/144.0.0.0"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "max-age=0",
    "Sec-Ch-Ua": '"Not(A:Brand";v="8", "Chromium";v="144", "Microsoft Edge";v="144"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"Windows"',
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
}


class SourceResponseError(Exception):
    """A response that arrived but cannot be used (bad status, body or error code)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BaseAPIClient(ABC):
    """
    Abstract base class for all source clients.
    Owns the httpx client and keeps simple request metrics.
    """

    # Must be set by subclasses
    SOURCE: str = "unknown"
    BASE_URL: str = ""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings or get_settings()
        self._client: Optional[httpx.AsyncClient] = None
        self._timeout = timeout_seconds or self._settings.api_timeout_seconds
        self._transport = transport
        self._connected_proxy: Optional[str] = None
        self._in_flight: dict[httpx.AsyncClient, int] = {}
        self._retired: set[httpx.AsyncClient] = set()

        # Metrics
        self._request_count = 0
        self._error_count = 0
        self._total_latency_ms = 0.0

    @abstractmethod
    def _get_headers(self) -> dict[str, str]:
        """Get headers for requests."""

    def _get_proxy(self) -> Optional[str]:
        """Proxy URL to route requests through, None for direct."""
        return None

    async def __aenter__(self) -> "BaseAPIClient":
        await self.connect()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def connect(self) -> None:
        """Initialize the HTTP client."""
        self._client = self._build_client()

    def _build_client(self) -> httpx.AsyncClient:
        proxy = self._get_proxy()
        kwargs: dict[str, Any] = {
            "base_url": self.BASE_URL,
            "timeout": httpx.Timeout(self._timeout),
            "headers": self._get_headers(),
            "follow_redirects": True,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        elif proxy:
            kwargs["proxy"] = proxy

        client = httpx.AsyncClient(**kwargs)
        self._connected_proxy = proxy
        logger.info(
            "API client connected",
            source=self.SOURCE,
            base_url=self.BASE_URL,
            proxied=bool(proxy),
        )
        return client

    async def close(self) -> None:
        """Close the HTTP client."""
        for retired in list(self._retired):
            await retired.aclose()
        self._retired.clear()
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info(
                "API client closed",
                source=self.SOURCE,
                requests_made=self._request_count,
                errors=self._error_count,
            )

    async def reconnect(self) -> None:
        """
        Swap in a client for the current proxy.

        The old client stays open until its in-flight requests finish.
        """
        old = self._client
        self._client = self._build_client()
        if old is None:
            return
        if self._in_flight.get(old):
            self._retired.add(old)
        else:
            await old.aclose()

    async def _release(self, client: httpx.AsyncClient) -> None:
        remaining = self._in_flight.get(client, 1) - 1
        if remaining > 0:
            self._in_flight[client] = remaining
            return
        self._in_flight.pop(client, None)
        if client in self._retired:
            self._retired.discard(client)
            await client.aclose()

    async def _make_request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        **kwargs,
    ) -> httpx.Response:
        """
        Make a single HTTP request.
        Connects lazily; does not retry (handled by caller).
        """
        if self._client is None:
            await self.connect()
        elif self._get_proxy() != self._connected_proxy:
            await self.reconnect()

        log = logger.bind(source=self.SOURCE, method=method, path=path)
        start = time.monotonic()
        client = self._client
        self._in_flight[client] = self._in_flight.get(client, 0) + 1

        try:
            response = await client.request(method, path, params=params, **kwargs)
        except httpx.HTTPError as e:
            self._error_count += 1
            log.warning("API request failed", error=str(e) or type(e).__name__)
            raise
        finally:
            await self._release(client)

        elapsed_ms = (time.monotonic() - start) * 1000
        self._request_count += 1
        self._total_latency_ms += elapsed_ms

        log.debug(
            "API request completed",
            status=response.status_code,
            latency_ms=round(elapsed_ms, 2),
        )
        return response

    def get_metrics(self) -> dict[str, Any]:
        """Get client metrics."""
        avg_latency = (
            self._total_latency_ms / self._request_count
            if self._request_count > 0
            else 0
        )
        return {
            "source": self.SOURCE,
            "requests": self._request_count,
            "errors": self._error_count,
            "avg_latency_ms": round(avg_latency, 2),
        }
