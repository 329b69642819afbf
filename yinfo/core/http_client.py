"""
Async HTTP client wrapper with retry logic.

Retry policy:
- Retries on network errors: TimeoutException, ConnectError, ReadError,
  WriteError, PoolTimeout, ConnectTimeout.
- Retries on server errors: HTTP 429 (rate-limit), 500, 502, 503, 504.
- Exponential back-off with jitter, capped at 30 s per wait.
- Respects Retry-After header on 429 responses.
- Does NOT retry on 4xx client errors (except 429).

Innertube calls pass ``retries=0``: retrying a client profile is the
orchestrator's decision, not this layer's. Page and player-script fetches
use the configured retry count.
"""

import asyncio
import logging
import random
from typing import Any

import httpx

from ..config import get_settings

logger = logging.getLogger(__name__)

# Maximum back-off wait time (seconds) between retries
_MAX_BACKOFF = 30.0

# HTTP status codes that trigger an automatic retry
_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

# All httpx exception types that represent transient network problems
NETWORK_ERRORS = (
    httpx.TimeoutException,  # base for all timeout variants
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.PoolTimeout,
    httpx.RemoteProtocolError,
    httpx.CloseError,
)


def backoff(attempt: int, response: httpx.Response | None = None) -> float:
    """
    Compute wait time with exponential back-off + jitter, capped.

    If *response* is a 429 with a Retry-After header, that value is
    used as a floor.
    """
    base = min((2**attempt) + random.uniform(0, 1), _MAX_BACKOFF)

    if response is not None and response.status_code == 429:
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                ra = float(retry_after)
                base = max(base, min(ra, _MAX_BACKOFF))
            except ValueError:
                pass

    return base


class HTTPClient:
    """
    Async HTTP client with retry logic and configurable headers.
    Wraps httpx.AsyncClient.

    ``transport`` is handed to httpx as-is, which lets tests plug in an
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        timeout: int | None = None,
        max_retries: int | None = None,
        headers: dict[str, str] | None = None,
        follow_redirects: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self._timeout = timeout or settings.request_timeout
        self._max_retries = settings.max_retries if max_retries is None else max_retries
        self._follow_redirects = follow_redirects
        self._transport = transport

        default_headers: dict[str, str] = {
            "User-Agent": settings.user_agent,
            "Accept-Language": f"{settings.language}-{settings.region},{settings.language};q=0.9",
        }
        if headers:
            default_headers.update(headers)

        self._default_headers = default_headers
        self._client: httpx.AsyncClient | None = None

    @property
    def max_retries(self) -> int:
        return self._max_retries

    # ------------------------------------------------------------------
    # Client lifecycle
    # ------------------------------------------------------------------

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    self._timeout,
                    connect=10.0,
                    read=self._timeout,
                    write=10.0,
                    pool=10.0,
                ),
                follow_redirects=self._follow_redirects,
                headers=self._default_headers,
                http2=self._transport is None,
                transport=self._transport,
                limits=httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=10,
                    keepalive_expiry=30.0,
                ),
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Core request with retry
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        content: bytes | str | None = None,
        json: Any = None,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> httpx.Response:
        """
        Make an HTTP request with automatic retries on transient failures.

        Retries on:
        - Network errors (timeout, connect, read, write, pool).
        - HTTP 429 / 5xx responses.

        Back-off: exponential (2^attempt) + random jitter, capped at 30 s.
        On 429, the Retry-After header is respected if present.
        ``retries`` overrides the client's retry count for this call.
        """
        client = await self._get_client()
        max_retries = self._max_retries if retries is None else retries
        last_error: Exception | None = None

        for attempt in range(max_retries + 1):
            try:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    content=content,
                    json=json,
                    timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
                )

                if response.status_code in _RETRYABLE_STATUS_CODES:
                    if attempt < max_retries:
                        wait = backoff(attempt, response)
                        logger.warning(
                            "HTTP %d from %s %s (attempt %d/%d). Retrying in %.1fs...",
                            response.status_code,
                            method,
                            url,
                            attempt + 1,
                            max_retries + 1,
                            wait,
                        )
                        await asyncio.sleep(wait)
                        continue
                    if max_retries:
                        logger.error(
                            "HTTP %d from %s %s after %d attempts, giving up.",
                            response.status_code,
                            method,
                            url,
                            max_retries + 1,
                        )

                return response

            except NETWORK_ERRORS as exc:
                last_error = exc
                if attempt < max_retries:
                    wait = backoff(attempt)
                    logger.warning(
                        "%s on %s %s (attempt %d/%d). Retrying in %.1fs...",
                        type(exc).__name__,
                        method,
                        url,
                        attempt + 1,
                        max_retries + 1,
                        wait,
                    )
                    await asyncio.sleep(wait)
                elif max_retries:
                    logger.error(
                        "%s on %s %s after %d attempts: %s",
                        type(exc).__name__,
                        method,
                        url,
                        max_retries + 1,
                        exc,
                    )

        if last_error is not None:
            raise last_error
        raise httpx.ReadError("All retries exhausted with no response")

    # ------------------------------------------------------------------
    # Convenience methods
    # ------------------------------------------------------------------

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def get_text(self, url: str, **kwargs) -> str:
        """GET request returning response text."""
        response = await self.get(url, **kwargs)
        response.raise_for_status()
        return response.text

    async def get_json(self, url: str, **kwargs) -> Any:
        """GET request returning parsed JSON."""
        response = await self.get(url, **kwargs)
        response.raise_for_status()
        return response.json()

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()
