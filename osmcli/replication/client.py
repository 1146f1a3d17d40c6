"""HTTP client for replication state files."""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType
from typing import Any

import httpx

from osmcli.errors import StateFetchError, StateNotFoundError
from osmcli.replication.endpoint import ReplicationEndpoint
from osmcli.replication.state import StateRecord

logger = logging.getLogger(__name__)


class ReplicationClient:
    """Fetches and decodes state files of a replication feed.

    One client holds one httpx.AsyncClient for its lifetime; requests are
    made strictly one at a time. Use as an async context manager:

        async with ReplicationClient() as client:
            current = await client.fetch_current(endpoint)
    """

    def __init__(
        self,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        user_agent: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            timeout: HTTP request timeout in seconds. Defaults to settings.
            max_retries: Attempts for 5xx responses and connection errors.
            retry_delay: Base delay in seconds for exponential backoff.
            user_agent: User-Agent header sent with every request.
            http_client: Pre-built httpx client (tests pass one backed by
                httpx.MockTransport). The caller keeps ownership of it.
        """
        from osmcli.config import settings

        self.timeout = timeout if timeout is not None else settings.http_timeout
        self.max_retries = (
            max_retries if max_retries is not None else settings.http_max_retries
        )
        self.retry_delay = (
            retry_delay if retry_delay is not None else settings.http_retry_delay
        )
        self.user_agent = user_agent or settings.user_agent
        self._owns_client = http_client is None
        self._client = http_client

    async def __aenter__(self) -> ReplicationClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
            )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("ReplicationClient used outside 'async with'")
        return self._client

    async def _request_with_retry(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Make an HTTP request, retrying 5xx responses and connection errors.

        Returns:
            httpx.Response with a 2xx status.

        Raises:
            StateNotFoundError: On a 404 response (never retried).
            StateFetchError: On any other 4xx, or once retries are exhausted.
        """
        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            try:
                response = await self.http.request(method, url, **kwargs)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status == 404:
                    raise StateNotFoundError(url) from e
                if status >= 500 and not last_attempt:
                    delay = self.retry_delay * (2**attempt)
                    logger.warning(
                        f"Server error {status}, "
                        f"retrying in {delay}s (attempt {attempt + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise StateFetchError(url, f"HTTP {status}", status_code=status) from e
            except httpx.RequestError as e:
                if not last_attempt:
                    delay = self.retry_delay * (2**attempt)
                    logger.warning(
                        f"Request error: {e}, "
                        f"retrying in {delay}s (attempt {attempt + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise StateFetchError(url, f"request failed: {e}") from e

        # max_retries < 1 leaves the loop without a request
        raise StateFetchError(url, "no request attempted")

    async def _fetch(self, endpoint: ReplicationEndpoint, url: str) -> StateRecord:
        logger.debug(f"GET {url}")
        response = await self._request_with_retry("GET", url)
        return StateRecord.decode(response.text, endpoint.state_encoding)

    async def fetch_current(self, endpoint: ReplicationEndpoint) -> StateRecord:
        """Fetch the feed's current (newest) state."""
        return await self._fetch(endpoint, endpoint.current_state_url)

    async def fetch_state(
        self, endpoint: ReplicationEndpoint, seqno: int
    ) -> StateRecord:
        """Fetch the state file published for one logical seqno.

        Raises:
            StateNotFoundError: If the feed has no (or no longer has) that file.
        """
        return await self._fetch(endpoint, endpoint.state_url(seqno))
