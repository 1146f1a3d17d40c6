"""Replication state records and their two wire encodings.

A state file names the newest sequence number of a feed and the time its data
was cut. Minutely/hourly/daily feeds publish Java-properties style text:

    #Sat Jan 01 00:01:02 UTC 2024
    sequenceNumber=5912345
    timestamp=2024-01-01T00\\:00\\:00Z

The changesets feed publishes a small YAML document instead:

    ---
    last_run: 2024-01-01 00:00:00.123456000 +00:00
    sequence: 5612345
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import yaml

from osmcli.errors import StateDecodeError
from osmcli.replication.endpoint import StateEncoding

SEQNO_KEYS = ("seqno", "sequence")
TIMESTAMP_KEYS = ("timestamp", "last_run")


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 / ISO-8601 or RFC 2822 timestamp into UTC.

    Naive values are taken to be UTC.

    Raises:
        ValueError: If the value matches neither format.
    """
    value = value.strip()
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            raise ValueError(
                f"Timestamp {value!r} is neither RFC 3339 nor RFC 2822"
            ) from None
    return _as_utc(parsed)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_seqno(value: Any) -> int:
    if isinstance(value, bool):
        raise StateDecodeError(f"Invalid sequence number: {value!r}")
    try:
        seqno = int(value)
    except (TypeError, ValueError):
        raise StateDecodeError(f"Invalid sequence number: {value!r}") from None
    if seqno < 0:
        raise StateDecodeError(f"Negative sequence number: {seqno}")
    return seqno


@dataclass(frozen=True)
class StateRecord:
    """One replication state: a sequence number and its UTC timestamp."""

    seqno: int
    timestamp: datetime

    @classmethod
    def from_text(cls, content: str) -> StateRecord:
        """Decode a key=value state file.

        Comment lines (#) and blank lines are skipped; unknown keys are
        ignored. Backslash escapes in the timestamp are stripped.

        Raises:
            StateDecodeError: On a malformed line or a missing/invalid
                sequenceNumber or timestamp.
        """
        seqno: int | None = None
        timestamp: datetime | None = None

        for raw_line in content.splitlines():
            if raw_line.startswith("#"):
                continue
            line = raw_line.strip()
            if not line:
                continue

            key, sep, value = line.partition("=")
            if not sep:
                raise StateDecodeError(f"Malformed state line: {line!r}")
            key = key.strip()
            value = value.strip()

            if key == "sequenceNumber":
                seqno = _parse_seqno(value)
            elif key == "timestamp":
                try:
                    timestamp = parse_timestamp(value.replace("\\", ""))
                except ValueError as e:
                    raise StateDecodeError(str(e)) from e

        if seqno is None:
            raise StateDecodeError("State file has no sequenceNumber")
        if timestamp is None:
            raise StateDecodeError("State file has no timestamp")
        return cls(seqno=seqno, timestamp=timestamp)

    @classmethod
    def from_yaml(cls, content: str) -> StateRecord:
        """Decode a YAML state document.

        Accepts seqno|sequence for the sequence number and timestamp|last_run
        for the timestamp.
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise StateDecodeError(f"Invalid YAML state: {e}") from e
        if not isinstance(data, dict):
            raise StateDecodeError("YAML state is not a mapping")

        raw_seqno = next((data[k] for k in SEQNO_KEYS if k in data), None)
        raw_timestamp = next((data[k] for k in TIMESTAMP_KEYS if k in data), None)
        if raw_seqno is None:
            raise StateDecodeError("State document has no sequence")
        if raw_timestamp is None:
            raise StateDecodeError("State document has no timestamp")

        # PyYAML resolves unquoted timestamps to datetime already
        if isinstance(raw_timestamp, datetime):
            timestamp = _as_utc(raw_timestamp)
        elif isinstance(raw_timestamp, date):
            timestamp = datetime(
                raw_timestamp.year,
                raw_timestamp.month,
                raw_timestamp.day,
                tzinfo=timezone.utc,
            )
        else:
            try:
                timestamp = parse_timestamp(str(raw_timestamp))
            except ValueError as e:
                raise StateDecodeError(str(e)) from e

        return cls(seqno=_parse_seqno(raw_seqno), timestamp=timestamp)

    @classmethod
    def decode(cls, content: str, encoding: StateEncoding) -> StateRecord:
        """Decode content in the given wire encoding."""
        if encoding is StateEncoding.YAML:
            return cls.from_yaml(content)
        return cls.from_text(content)

    def isoformat(self) -> str:
        """Timestamp as ISO-8601 UTC with seconds precision, e.g. 2024-01-01T00:00:00Z."""
        return format_timestamp(self.timestamp)


def format_timestamp(value: datetime) -> str:
    return _as_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")
