"""Exceptions raised by osmcli.

Everything the CLI reports to the user derives from OSMCliError, so the
top-level handler can print one line and exit non-zero.
"""

from __future__ import annotations


class OSMCliError(Exception):
    """Base class for all osmcli errors."""


class UsageError(OSMCliError):
    """Invalid user input, detected before any network activity."""


class StateFetchError(OSMCliError):
    """A state file could not be retrieved."""

    def __init__(self, url: str, message: str, status_code: int | None = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status_code = status_code


class StateNotFoundError(StateFetchError):
    """The server answered 404 for a state file.

    Replication feeds are sparse: old state files are pruned, so a missing
    seqno is an expected answer while searching.
    """

    def __init__(self, url: str):
        super().__init__(url, "state file not found", status_code=404)


class StateDecodeError(OSMCliError):
    """A state file was retrieved but its content is malformed or incomplete."""


class ResolveError(OSMCliError):
    """The timestamp search could not settle on a sequence number."""


class SeqnoRangeError(UsageError, ValueError):
    """A seqno falls outside what the three-group directory layout can address."""
