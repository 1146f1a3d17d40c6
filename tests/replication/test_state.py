"""Tests for state record decoding."""

from datetime import datetime, timezone

import pytest

from osmcli.errors import StateDecodeError
from osmcli.replication.endpoint import StateEncoding
from osmcli.replication.state import StateRecord, format_timestamp, parse_timestamp

NEW_YEAR = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestParseTimestamp:
    """Tests for parse_timestamp."""

    def test_rfc3339_z(self) -> None:
        assert parse_timestamp("2024-01-01T00:00:00Z") == NEW_YEAR

    def test_rfc3339_offset_converted_to_utc(self) -> None:
        parsed = parse_timestamp("2024-01-01T02:00:00+02:00")

        assert parsed == NEW_YEAR
        assert parsed.tzinfo == timezone.utc

    def test_rfc2822(self) -> None:
        assert parse_timestamp("Mon, 01 Jan 2024 00:00:00 +0000") == NEW_YEAR

    def test_naive_taken_as_utc(self) -> None:
        assert parse_timestamp("2024-01-01T00:00:00") == NEW_YEAR

    def test_garbage(self) -> None:
        with pytest.raises(ValueError, match="neither RFC 3339 nor RFC 2822"):
            parse_timestamp("yesterday")


class TestTextState:
    """Tests for key=value state files."""

    def test_decode_minimal(self) -> None:
        record = StateRecord.from_text("sequenceNumber=42\ntimestamp=2024-01-01T00:00:00Z\n")

        assert record == StateRecord(seqno=42, timestamp=NEW_YEAR)

    def test_decode_real_state_file(self) -> None:
        """Comments, unknown keys and escaped colons as published by planet.osm.org."""
        content = (
            "#Mon Jan 01 00:01:05 UTC 2024\n"
            "sequenceNumber=5912345\n"
            "txnMaxQueried=123456789\n"
            "\n"
            "timestamp=2024-01-01T00\\:00\\:00Z\n"
        )

        record = StateRecord.from_text(content)

        assert record.seqno == 5912345
        assert record.timestamp == NEW_YEAR

    def test_whitespace_around_keys(self) -> None:
        record = StateRecord.from_text("  sequenceNumber = 7 \r\ntimestamp = 2024-01-01T00:00:00Z\r\n")

        assert record.seqno == 7

    def test_missing_seqno(self) -> None:
        with pytest.raises(StateDecodeError, match="sequenceNumber"):
            StateRecord.from_text("timestamp=2024-01-01T00:00:00Z\n")

    def test_missing_timestamp(self) -> None:
        with pytest.raises(StateDecodeError, match="timestamp"):
            StateRecord.from_text("sequenceNumber=42\n")

    def test_invalid_seqno(self) -> None:
        with pytest.raises(StateDecodeError):
            StateRecord.from_text("sequenceNumber=forty-two\ntimestamp=2024-01-01T00:00:00Z\n")

    def test_negative_seqno(self) -> None:
        with pytest.raises(StateDecodeError):
            StateRecord.from_text("sequenceNumber=-1\ntimestamp=2024-01-01T00:00:00Z\n")

    def test_invalid_timestamp(self) -> None:
        with pytest.raises(StateDecodeError):
            StateRecord.from_text("sequenceNumber=42\ntimestamp=soon\n")

    def test_malformed_line(self) -> None:
        with pytest.raises(StateDecodeError, match="Malformed"):
            StateRecord.from_text("<html>Service Unavailable</html>\n")


class TestYamlState:
    """Tests for YAML state documents (changesets feed)."""

    def test_decode_changesets_state(self) -> None:
        content = "---\nlast_run: 2024-01-01 00:00:00.123456000 +00:00\nsequence: 6123456\n"

        record = StateRecord.from_yaml(content)

        assert record.seqno == 6123456
        assert record.timestamp == NEW_YEAR.replace(microsecond=123456)
        assert record.timestamp.tzinfo is not None

    def test_alias_keys(self) -> None:
        record = StateRecord.from_yaml('seqno: 42\ntimestamp: "2024-01-01T00:00:00Z"\n')

        assert record == StateRecord(seqno=42, timestamp=NEW_YEAR)

    def test_naive_yaml_timestamp_taken_as_utc(self) -> None:
        record = StateRecord.from_yaml("sequence: 1\nlast_run: 2024-01-01 00:00:00\n")

        assert record.timestamp == NEW_YEAR

    def test_missing_sequence(self) -> None:
        with pytest.raises(StateDecodeError, match="sequence"):
            StateRecord.from_yaml("last_run: 2024-01-01 00:00:00 +00:00\n")

    def test_missing_timestamp(self) -> None:
        with pytest.raises(StateDecodeError, match="timestamp"):
            StateRecord.from_yaml("sequence: 1\n")

    def test_not_a_mapping(self) -> None:
        with pytest.raises(StateDecodeError, match="mapping"):
            StateRecord.from_yaml("- 1\n- 2\n")

    def test_invalid_yaml(self) -> None:
        with pytest.raises(StateDecodeError):
            StateRecord.from_yaml("sequence: [1\n")


class TestDecode:
    """Tests for encoding dispatch and formatting."""

    def test_decode_dispatches_on_encoding(self) -> None:
        text = StateRecord.decode(
            "sequenceNumber=1\ntimestamp=2024-01-01T00:00:00Z\n", StateEncoding.TEXT
        )
        yaml_record = StateRecord.decode(
            "sequence: 1\nlast_run: 2024-01-01 00:00:00 +00:00\n", StateEncoding.YAML
        )

        assert text == yaml_record

    def test_isoformat_seconds_precision(self) -> None:
        record = StateRecord(seqno=1, timestamp=NEW_YEAR.replace(microsecond=999999))

        assert record.isoformat() == "2024-01-01T00:00:00Z"

    def test_format_timestamp_converts_to_utc(self) -> None:
        value = parse_timestamp("2024-01-01T01:30:00+01:30")

        assert format_timestamp(value) == "2024-01-01T00:00:00Z"
