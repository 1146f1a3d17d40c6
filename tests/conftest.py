"""Shared fixtures: an in-memory replication feed served over httpx.MockTransport."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from osmcli.replication.client import ReplicationClient
from osmcli.replication.endpoint import ReplicationEndpoint, StateEncoding, known_feed

SERVER = "https://planet.example.org"
T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def minutely(first: int, last: int, start: datetime = T0) -> dict[int, datetime]:
    """States for seqnos first..last, one per minute, seqno 0 at start."""
    return {s: start + timedelta(minutes=s) for s in range(first, last + 1)}


class FakeFeed:
    """A replication feed held in memory.

    States above `current` are treated as not yet published (404), as are
    seqnos missing from `states` (pruned).
    """

    def __init__(
        self,
        states: dict[int, datetime],
        endpoint: ReplicationEndpoint | None = None,
        current: int | None = None,
    ):
        self.endpoint = endpoint or known_feed("minute", SERVER)
        self.states = dict(states)
        self.current = current if current is not None else max(states)
        self.requests: list[str] = []
        self.fail_with: int | None = None

    def render(self, seqno: int) -> str:
        ts = self.states[seqno]
        if self.endpoint.state_encoding is StateEncoding.YAML:
            return (
                "---\n"
                f"last_run: {ts.strftime('%Y-%m-%d %H:%M:%S')}.123456000 +00:00\n"
                f"sequence: {seqno}\n"
            )
        return (
            f"#{ts.strftime('%a %b %d %H:%M:%S UTC %Y')}\n"
            f"sequenceNumber={seqno}\n"
            "txnMaxQueried=123\n"
            f"timestamp={ts.strftime('%Y-%m-%dT%H')}\\:{ts.strftime('%M')}\\:{ts.strftime('%S')}Z\n"
        )

    @property
    def state_requests(self) -> list[str]:
        """Requests for per-seqno state files (excludes the current pointer)."""
        return [u for u in self.requests if u != self.endpoint.current_state_url]

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, text="error")
        if url == self.endpoint.current_state_url:
            return httpx.Response(200, text=self.render(self.current))
        published = {
            self.endpoint.state_url(s): s for s in self.states if s <= self.current
        }
        if url in published:
            return httpx.Response(200, text=self.render(published[url]))
        return httpx.Response(404, text="Not Found")

    def client(self) -> ReplicationClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return ReplicationClient(http_client=http_client, max_retries=1, retry_delay=0)


@pytest.fixture
def minute_feed() -> FakeFeed:
    """Unpruned minutely feed, seqnos 0..1000."""
    return FakeFeed(minutely(0, 1000))
