"""Replication feed descriptors and URL construction."""

from __future__ import annotations

import enum
from dataclasses import dataclass

import httpx

from osmcli.errors import SeqnoRangeError, UsageError

# =============================================================================
# OSM Replication Configuration
# =============================================================================
# Primary source: https://wiki.openstreetmap.org/wiki/Planet.osm/diffs
# Directory listing: https://planet.openstreetmap.org/replication/
#
# Each feed publishes a "current" state file at its root plus one state file
# and one data file per sequence number, nested three directories deep:
#   {feed}/000/123/456.state.txt
#   {feed}/000/123/456.osc.gz
# Old files are pruned over time, so low sequence numbers may return 404.
# =============================================================================

# HARDCODED ASSUMPTION: Sequence numbers fit in three groups of three digits.
# Source: planet.openstreetmap.org directory layout. The minutely feed passed
#   6,000,000 in 2024; the scheme runs out at 999,999,999.
TRIPLET_MAX = 999_999_999


class StateEncoding(enum.Enum):
    """Wire encoding of a feed's state files."""

    TEXT = "text"  # key=value lines (state.txt)
    YAML = "yaml"  # YAML mapping (changesets/state.yaml)


class SeqnoOffset(enum.Enum):
    """How a feed's logical seqno maps to the number in its file names."""

    IDENTITY = "identity"
    # The changesets feed reports N in state.yaml but has published N + 1.
    NEXT = "next"

    def apply(self, seqno: int) -> int:
        if self is SeqnoOffset.NEXT:
            return seqno + 1
        return seqno


def seqno_to_triplet(seqno: int) -> tuple[int, int, int]:
    """Split a seqno into its (hi, mid, lo) directory groups.

    Args:
        seqno: Sequence number in [0, 999_999_999].

    Returns:
        Tuple of three ints, each in [0, 999].

    Raises:
        SeqnoRangeError: If seqno is outside the encodable range.
    """
    if not 0 <= seqno <= TRIPLET_MAX:
        raise SeqnoRangeError(f"seqno {seqno} outside [0, {TRIPLET_MAX}]")
    hi = seqno // 1_000_000
    mid = (seqno % 1_000_000) // 1000
    lo = seqno % 1000
    return hi, mid, lo


def triplet_to_seqno(hi: int, mid: int, lo: int) -> int:
    """Inverse of seqno_to_triplet."""
    for part in (hi, mid, lo):
        if not 0 <= part <= 999:
            raise ValueError(f"triplet group {part} outside [0, 999]")
    return hi * 1_000_000 + mid * 1000 + lo


def triplet_path(seqno: int) -> str:
    """Return the zero-padded path fragment for a seqno, e.g. '001/234/567'."""
    hi, mid, lo = seqno_to_triplet(seqno)
    return f"{hi:03d}/{mid:03d}/{lo:03d}"


@dataclass(frozen=True)
class ReplicationEndpoint:
    """Everything needed to address one replication feed."""

    name: str
    base_url: str
    current_state_path: str = "state.txt"
    state_encoding: StateEncoding = StateEncoding.TEXT
    state_suffix: str = ".state.txt"
    data_suffix: str = ".osc.gz"
    seqno_offset: SeqnoOffset = SeqnoOffset.IDENTITY

    @property
    def current_state_url(self) -> str:
        return f"{self.base_url}/{self.current_state_path}"

    def url_seqno(self, seqno: int) -> int:
        """Number used in file names for a logical seqno."""
        return self.seqno_offset.apply(seqno)

    def state_url(self, seqno: int) -> str:
        """URL of the state file for a logical seqno."""
        return f"{self.base_url}/{triplet_path(self.url_seqno(seqno))}{self.state_suffix}"

    def data_url(self, seqno: int) -> str:
        """URL of the data (diff) file for a logical seqno."""
        return f"{self.base_url}/{triplet_path(self.url_seqno(seqno))}{self.data_suffix}"


# HARDCODED ASSUMPTION: Layout of the feeds published by the OSMF.
# Source: https://planet.openstreetmap.org/replication/
# Last verified: October 2026
# The minute/hour/day feeds share one layout. The changesets feed uses a YAML
#   state file and .osm.gz data files, and is numbered one ahead.
KNOWN_FEEDS: dict[str, dict[str, object]] = {
    "minute": {},
    "hour": {},
    "day": {},
    "changesets": {
        "current_state_path": "state.yaml",
        "state_encoding": StateEncoding.YAML,
        "data_suffix": ".osm.gz",
        "seqno_offset": SeqnoOffset.NEXT,
    },
}


def known_feed(name: str, server: str) -> ReplicationEndpoint:
    """Build the descriptor of one of the OSMF feeds on the given server."""
    if name not in KNOWN_FEEDS:
        raise UsageError(
            f"Unknown feed {name!r}. Known feeds: {', '.join(KNOWN_FEEDS)}"
        )
    base_url = f"{server.rstrip('/')}/replication/{name}"
    return ReplicationEndpoint(name=name, base_url=base_url, **KNOWN_FEEDS[name])  # type: ignore[arg-type]


def custom_feed(url: str) -> ReplicationEndpoint:
    """Build a descriptor for a feed given by its base URL.

    Custom feeds are assumed to follow the minutely layout (text state files,
    .osc.gz data files, no seqno offset).
    """
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise UsageError(f"Invalid feed URL {url!r}: {e}") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise UsageError(f"Not a feed name or http(s) URL: {url!r}")
    return ReplicationEndpoint(name="custom", base_url=url.rstrip("/"))


def resolve_endpoint(selector: str, server: str) -> ReplicationEndpoint:
    """Turn a feed selector (short name or URL) into a descriptor.

    Args:
        selector: "minute", "hour", "day", "changesets", or a feed base URL.
        server: Replication server used for the short names.

    Returns:
        The ReplicationEndpoint to use for the whole run.
    """
    if selector in KNOWN_FEEDS:
        return known_feed(selector, server)
    return custom_feed(selector)
