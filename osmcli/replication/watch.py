"""Stream newly published replication files."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

from osmcli.replication.client import ReplicationClient
from osmcli.replication.endpoint import ReplicationEndpoint
from osmcli.replication.state import format_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchEntry:
    """One published data file."""

    seqno: int
    timestamp: datetime | None  # None when timestamps were not requested
    url: str

    def format_line(self) -> str:
        """Render as '<url>' or '<seqno> <timestamp> <url>'."""
        if self.timestamp is None:
            return self.url
        return f"{self.seqno} {format_timestamp(self.timestamp)} {self.url}"


async def watch_replication(
    client: ReplicationClient,
    endpoint: ReplicationEndpoint,
    start_seqno: int,
    follow: bool = False,
    with_timestamps: bool = True,
    poll_interval: float | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    log: logging.Logger | None = None,
) -> AsyncIterator[WatchEntry]:
    """Yield every data file published after start_seqno, in order.

    Args:
        client: Open ReplicationClient.
        endpoint: Feed to watch.
        start_seqno: Last seqno already processed; streaming starts after it.
        follow: Keep polling for new files once caught up. The stream then
            only ends on cancellation or a fetch error.
        with_timestamps: Fetch each file's state to report its timestamp.
            When False no per-file request is made.
        poll_interval: Seconds between polls. Defaults to settings.
        sleep: Awaitable sleep, replaceable in tests.
        log: Logger for progress messages. Defaults to this module's.

    Raises:
        StateFetchError: A fetch failed. Errors are not retried here.
        StateDecodeError: A state file was malformed.
    """
    log = log or logger
    if poll_interval is None:
        from osmcli.config import settings

        poll_interval = settings.poll_interval

    seqno = start_seqno
    while True:
        latest = await client.fetch_current(endpoint)
        if latest.seqno > seqno:
            log.debug(f"Frontier at {latest.seqno}, {latest.seqno - seqno} new")

        while seqno < latest.seqno:
            seqno += 1
            timestamp = None
            if with_timestamps:
                if seqno == latest.seqno:
                    timestamp = latest.timestamp
                else:
                    timestamp = (await client.fetch_state(endpoint, seqno)).timestamp
            yield WatchEntry(seqno=seqno, timestamp=timestamp, url=endpoint.data_url(seqno))

        if not follow:
            return

        log.debug(f"Caught up at seqno {seqno}; sleeping {poll_interval}s")
        await sleep(poll_interval)
