"""OSM replication feeds: state files, timestamp search and watching."""

from osmcli.replication.client import ReplicationClient
from osmcli.replication.endpoint import (
    ReplicationEndpoint,
    SeqnoOffset,
    StateEncoding,
    resolve_endpoint,
)
from osmcli.replication.resolver import SequenceResolver, resolve_seqno
from osmcli.replication.state import StateRecord
from osmcli.replication.watch import WatchEntry, watch_replication

__all__ = [
    "ReplicationClient",
    "ReplicationEndpoint",
    "SeqnoOffset",
    "SequenceResolver",
    "StateEncoding",
    "StateRecord",
    "WatchEntry",
    "resolve_endpoint",
    "resolve_seqno",
    "watch_replication",
]
