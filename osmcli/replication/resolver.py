"""Resolve a point in time to a replication sequence number.

The search runs in two phases against the remote feed:

1. Bracketing. Old state files are pruned, so any given seqno may 404 and a
   plain binary search over [0, current] is unsafe. Probe from seqno 0,
   halving the distance to the upper bound after each miss, until some state
   at or before the target turns up.

2. Interpolation. Feeds publish at a near-constant rate, so estimate the
   target seqno from the rate between the two bracket ends and narrow the
   bracket with each guess. This usually settles in a handful of requests
   where bisection over millions of seqnos would need twenty or more.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator
from datetime import datetime

from osmcli.errors import ResolveError, StateNotFoundError
from osmcli.replication.client import ReplicationClient
from osmcli.replication.endpoint import ReplicationEndpoint
from osmcli.replication.state import StateRecord, format_timestamp

logger = logging.getLogger(__name__)


def interpolate_guess(
    lower: StateRecord, upper: StateRecord, target: datetime
) -> int:
    """Estimate the seqno current at target from the bracket's publish rate.

    The result is clamped into [lower.seqno + 1, upper.seqno - 1] so every
    guess narrows the bracket.
    """
    span = (upper.timestamp - lower.timestamp).total_seconds()
    if span <= 0:
        guess = (lower.seqno + upper.seqno) // 2
    else:
        elapsed = (target - lower.timestamp).total_seconds()
        # elapsed * rate, multiplied first so whole-number estimates stay exact
        guess = lower.seqno + math.ceil(elapsed * (upper.seqno - lower.seqno) / span)
    return min(max(guess, lower.seqno + 1), upper.seqno - 1)


def neighbours(guess: int, low: int, high: int) -> Iterator[int]:
    """Yield seqnos around guess, nearest first, strictly inside (low, high)."""
    for distance in range(1, max(high - guess, guess - low)):
        for candidate in (guess + distance, guess - distance):
            if low < candidate < high:
                yield candidate


class SequenceResolver:
    """Timestamp to seqno search over one feed."""

    def __init__(
        self,
        client: ReplicationClient,
        endpoint: ReplicationEndpoint,
        probe_limit: int | None = None,
        log: logging.Logger | None = None,
    ):
        """Initialize the resolver.

        Args:
            client: Open ReplicationClient used for every fetch.
            endpoint: Feed to search.
            probe_limit: How many neighbours of a missing interpolated seqno
                to try before giving up. Defaults to settings.
            log: Logger for progress messages. Defaults to this module's.
        """
        if probe_limit is None:
            from osmcli.config import settings

            probe_limit = settings.resolver_probe_limit
        self.client = client
        self.endpoint = endpoint
        self.probe_limit = probe_limit
        self.log = log or logger
        self.probes = 0

    async def _probe(self, seqno: int) -> StateRecord | None:
        """Fetch the state for seqno, or None if the feed doesn't have it."""
        self.probes += 1
        try:
            record = await self.client.fetch_state(self.endpoint, seqno)
        except StateNotFoundError:
            self.log.debug(f"seqno {seqno}: not found")
            return None
        self.log.debug(f"seqno {seqno}: {format_timestamp(record.timestamp)}")
        return record

    async def resolve(self, target: datetime) -> int:
        """Return the greatest seqno whose timestamp is at or before target.

        If the feed's newest state is not after target, or the feed has no
        history, the current seqno is returned. If every reachable state is
        after target, the earliest reachable seqno is returned.
        """
        current = await self.client.fetch_current(self.endpoint)
        self.log.info(
            f"{self.endpoint.name} feed is at seqno {current.seqno} "
            f"({format_timestamp(current.timestamp)})"
        )
        if current.timestamp <= target or current.seqno == 0:
            return current.seqno

        self.log.info(f"Searching for the seqno current at {format_timestamp(target)}")
        lower, upper = await self._bracket(target, current)
        if lower is None:
            self.log.info(f"No state before target; starting at seqno {upper.seqno}")
            return upper.seqno

        seqno = await self._interpolate(target, lower, upper)
        self.log.info(f"Resolved seqno {seqno} after {self.probes} probes")
        return seqno

    async def _bracket(
        self, target: datetime, upper: StateRecord
    ) -> tuple[StateRecord | None, StateRecord]:
        """Phase 1: find any state at or before target.

        Returns:
            (lower, upper). lower is None when no such state is reachable;
            upper is then the earliest state found.
        """
        probe = 0
        last_missing: int | None = None

        while True:
            record = await self._probe(probe)

            if record is None:
                last_missing = probe
                step = (upper.seqno - probe) // 2
                if step == 0:
                    return None, upper
                probe += step
                continue

            if record.timestamp <= target:
                return record, upper

            # Found, but already after target: tighten the upper bound and
            # keep looking between it and the last miss.
            upper = record
            if last_missing is None:
                return None, upper
            step = (upper.seqno - last_missing) // 2
            if step == 0:
                return None, upper
            probe = last_missing + step

    async def _interpolate(
        self, target: datetime, lower: StateRecord, upper: StateRecord
    ) -> int:
        """Phase 2: narrow [lower, upper] until they are adjacent."""
        while lower.seqno + 1 < upper.seqno:
            guess = interpolate_guess(lower, upper, target)
            record = await self._probe(guess)
            if record is None:
                record = await self._probe_neighbours(guess, lower, upper)
                if record is None:
                    # Nothing published strictly between the bounds
                    return lower.seqno

            if record.timestamp <= target:
                lower = record
            else:
                upper = record

        return lower.seqno

    async def _probe_neighbours(
        self, guess: int, lower: StateRecord, upper: StateRecord
    ) -> StateRecord | None:
        """Find a state near a missing guess, inside the bracket.

        Returns:
            The nearest state found, or None if every seqno strictly between
            the bounds is missing.

        Raises:
            ResolveError: If probe_limit neighbours were tried without
                exhausting the bracket.
        """
        tried = 0
        for candidate in neighbours(guess, lower.seqno, upper.seqno):
            if tried >= self.probe_limit:
                raise ResolveError(
                    f"seqno {guess} is missing and none of its {tried} nearest "
                    f"neighbours between {lower.seqno} and {upper.seqno} exist"
                )
            tried += 1
            record = await self._probe(candidate)
            if record is not None:
                return record
        return None


async def resolve_seqno(
    client: ReplicationClient,
    endpoint: ReplicationEndpoint,
    target: datetime,
    log: logging.Logger | None = None,
) -> int:
    """Return the greatest seqno of endpoint whose timestamp is <= target."""
    return await SequenceResolver(client, endpoint, log=log).resolve(target)
