"""OSM API v0.6 client for element and changeset lookups."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# =============================================================================
# OSM API Configuration
# =============================================================================
# Primary documentation: https://wiki.openstreetmap.org/wiki/API_v0.6
#
# Read-only element and changeset calls need no authentication. JSON output
# is available for elements and changeset metadata; changeset diffs
# (/download) are always osmChange XML.
# =============================================================================

API_VERSION = "0.6"

ELEMENT_TYPES = ("node", "way", "relation")


class OutputFormat(str, enum.Enum):
    """Response formats the API can negotiate via the Accept header."""

    XML = "xml"
    JSON = "json"

    @property
    def mimetype(self) -> str:
        if self is OutputFormat.JSON:
            return "application/json"
        return "application/xml"

    def __str__(self) -> str:
        return self.value


@dataclass
class ApiResponse:
    """Raw body of an API response with its media type."""

    url: str
    content_type: str
    content: bytes

    @property
    def is_json(self) -> bool:
        return self.content_type == "application/json"

    def render(self) -> bytes:
        """Body as it should be written to stdout.

        JSON is pretty-printed with a trailing newline; anything else,
        including a JSON-labelled body that does not parse, is passed through
        unchanged.
        """
        if not self.is_json:
            return self.content
        try:
            data = json.loads(self.content)
        except ValueError:
            logger.warning(f"Response from {self.url} is not valid JSON; writing it as is")
            return self.content
        return (json.dumps(data, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


class OSMApiClient:
    """Client for the read-only parts of the OSM API."""

    def __init__(
        self,
        server: str | None = None,
        timeout: float | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the API client.

        Args:
            server: API server base URL. Defaults to settings.api_server.
            timeout: HTTP request timeout in seconds.
            user_agent: User-Agent header.
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        from osmcli.config import settings

        self.server = (server or settings.api_server).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self.user_agent = user_agent or settings.user_agent
        self.transport = transport
        self.max_retries = settings.http_max_retries
        self.retry_delay = settings.http_retry_delay

    @property
    def base_url(self) -> str:
        return f"{self.server}/api/{API_VERSION}"

    def element_url(self, element_type: str, element_id: int, history: bool = False) -> str:
        if element_type not in ELEMENT_TYPES:
            raise ValueError(f"Unknown element type: {element_type}")
        url = f"{self.base_url}/{element_type}/{element_id}"
        return f"{url}/history" if history else url

    def changeset_url(self, changeset_id: int, diff: bool = False) -> str:
        url = f"{self.base_url}/changeset/{changeset_id}"
        return f"{url}/download" if diff else url

    async def _request_with_retry(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make HTTP request with retry logic for 5xx errors.

        Raises:
            httpx.HTTPStatusError: For 4xx, or 5xx after all retries.
            httpx.RequestError: For connection errors after all retries.
        """
        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            try:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as e:
                if e.response.status_code >= 500 and not last_attempt:
                    delay = self.retry_delay * (2**attempt)
                    logger.warning(
                        f"Server error {e.response.status_code}, "
                        f"retrying in {delay}s (attempt {attempt + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise
            except httpx.RequestError as e:
                if not last_attempt:
                    delay = self.retry_delay * (2**attempt)
                    logger.warning(
                        f"Request error: {e}, "
                        f"retrying in {delay}s (attempt {attempt + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise

        raise RuntimeError("Unexpected error in retry logic")

    async def _get(self, url: str, fmt: OutputFormat) -> ApiResponse | None:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            logger.debug(f"GET {url} (Accept: {fmt.mimetype})")
            try:
                response = await self._request_with_retry(
                    client, "GET", url, headers={"Accept": fmt.mimetype}
                )
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 404:
                    logger.warning(f"Not found: {url}")
                    return None
                raise

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        return ApiResponse(url=url, content_type=content_type, content=response.content)

    async def get_element(
        self,
        element_type: str,
        element_id: int,
        fmt: OutputFormat = OutputFormat.XML,
        history: bool = False,
    ) -> ApiResponse | None:
        """Fetch a node, way or relation (optionally its full history).

        Returns:
            ApiResponse, or None if the element does not exist.
        """
        url = self.element_url(element_type, element_id, history=history)
        return await self._get(url, fmt)

    async def get_changeset(
        self,
        changeset_id: int,
        fmt: OutputFormat = OutputFormat.XML,
        diff: bool = False,
    ) -> ApiResponse | None:
        """Fetch a changeset's metadata, or its osmChange diff.

        Returns:
            ApiResponse, or None if the changeset does not exist.
        """
        url = self.changeset_url(changeset_id, diff=diff)
        return await self._get(url, fmt)
