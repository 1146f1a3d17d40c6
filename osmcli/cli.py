"""Command-line interface for OSM API lookups and replication feeds."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import sys
from datetime import datetime

import httpx

from osmcli import __version__
from osmcli.config import settings
from osmcli.errors import OSMCliError, UsageError
from osmcli.osm_api.client import ELEMENT_TYPES, OSMApiClient, OutputFormat
from osmcli.replication.client import ReplicationClient
from osmcli.replication.endpoint import KNOWN_FEEDS, TRIPLET_MAX, resolve_endpoint
from osmcli.replication.resolver import resolve_seqno
from osmcli.replication.state import parse_timestamp
from osmcli.replication.watch import watch_replication

# Configure logging; stdout is reserved for command output
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(levelname)-5.5s [%(name)s] %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


def _write_line(line: str) -> None:
    """Write one line to stdout and flush so consumers see it immediately."""
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


def _silence_stdout() -> None:
    """Point stdout at devnull so the interpreter's final flush doesn't raise."""
    devnull = os.open(os.devnull, os.O_WRONLY)
    try:
        os.dup2(devnull, sys.stdout.fileno())
    finally:
        os.close(devnull)


def _write_bytes(content: bytes) -> None:
    sys.stdout.flush()
    sys.stdout.buffer.write(content)
    sys.stdout.buffer.flush()


# =============================================================================
# Replication commands
# =============================================================================


async def replication_command(
    feed: str,
    server: str,
    since: datetime | None = None,
    seqno: int | None = None,
    watch: bool = False,
    urls_only: bool = False,
) -> int:
    """Print the data files published after a point in a feed.

    Args:
        feed: Feed name ("minute", "changesets", ...) or feed base URL.
        server: Replication server for named feeds.
        since: Start after the seqno current at this time.
        seqno: Start after this seqno. Exactly one of since/seqno is given.
        watch: Keep polling for new files after catching up.
        urls_only: Print only URLs; skips the per-file state requests.

    Returns:
        0 on success.
    """
    endpoint = resolve_endpoint(feed, server)

    async with ReplicationClient() as client:
        if since is not None:
            seqno = await resolve_seqno(client, endpoint, since)
            logger.info(f"Starting after seqno {seqno}")
        if seqno is None:
            raise UsageError("one of since or seqno is required")

        async for entry in watch_replication(
            client,
            endpoint,
            seqno,
            follow=watch,
            with_timestamps=not urls_only,
        ):
            _write_line(entry.format_line())

    return 0


async def resolve_command(feed: str, server: str, since: datetime) -> int:
    """Print the seqno that was current at a point in time."""
    endpoint = resolve_endpoint(feed, server)
    async with ReplicationClient() as client:
        seqno = await resolve_seqno(client, endpoint, since)
    _write_line(str(seqno))
    return 0


async def state_command(feed: str, server: str, seqno: int | None = None) -> int:
    """Print one state record as '<seqno> <timestamp>'."""
    endpoint = resolve_endpoint(feed, server)
    async with ReplicationClient() as client:
        if seqno is None:
            record = await client.fetch_current(endpoint)
        else:
            record = await client.fetch_state(endpoint, seqno)
    _write_line(f"{record.seqno} {record.isoformat()}")
    return 0


# =============================================================================
# OSM API commands
# =============================================================================


async def element_command(
    server: str,
    element_type: str,
    element_id: int,
    fmt: OutputFormat,
    history: bool = False,
) -> int:
    """Print a node, way or relation."""
    client = OSMApiClient(server=server)
    response = await client.get_element(element_type, element_id, fmt=fmt, history=history)
    if response is None:
        logger.error(f"{element_type.capitalize()} {element_id} not found")
        return 1
    _write_bytes(response.render())
    return 0


async def changeset_command(
    server: str, changeset_id: int, fmt: OutputFormat, diff: bool = False
) -> int:
    """Print a changeset's metadata or diff."""
    client = OSMApiClient(server=server)
    response = await client.get_changeset(changeset_id, fmt=fmt, diff=diff)
    if response is None:
        logger.error(f"Changeset {changeset_id} not found")
        return 1
    _write_bytes(response.render())
    return 0


# =============================================================================
# Argument parsing
# =============================================================================


def timestamp_arg(value: str) -> datetime:
    """argparse type for RFC 2822 / RFC 3339 timestamps."""
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def id_arg(value: str) -> int:
    """argparse type for non-negative integers."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative: {number}")
    return number


def seqno_arg(value: str) -> int:
    """argparse type for seqnos the replication directory layout can address."""
    number = id_arg(value)
    if number > TRIPLET_MAX:
        raise argparse.ArgumentTypeError(f"must be at most {TRIPLET_MAX}: {number}")
    return number


def _add_feed_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--feed",
        default="minute",
        help=f"Feed name ({', '.join(KNOWN_FEEDS)}) or feed base URL (default: minute)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="osmcli",
        description="Query the OpenStreetMap API and replication feeds",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--server",
        default=settings.api_server,
        help=f"OSM API server (default: {settings.api_server})",
    )
    parser.add_argument(
        "--replication-server",
        default=settings.replication_server,
        help=f"Replication server for named feeds (default: {settings.replication_server})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log every request",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Element commands
    for element_type in ELEMENT_TYPES:
        element_parser = subparsers.add_parser(
            element_type, help=f"Get info about a {element_type.capitalize()}"
        )
        element_parser.add_argument(
            "--format",
            "-f",
            type=OutputFormat,
            choices=list(OutputFormat),
            default=OutputFormat.XML,
            help="Output format (default: xml)",
        )
        element_parser.add_argument(
            "--history",
            action="store_true",
            help="Fetch the full history of the element",
        )
        element_parser.add_argument("id", type=id_arg, help=f"{element_type} ID")

    # Changeset command
    changeset_parser = subparsers.add_parser("changeset", help="Get info about a Changeset")
    changeset_parser.add_argument(
        "--format",
        "-f",
        type=OutputFormat,
        choices=list(OutputFormat),
        default=OutputFormat.XML,
        help="Output format (default: xml)",
    )
    changeset_parser.add_argument(
        "--diff",
        action="store_true",
        help="Fetch the full diff instead of the metadata",
    )
    changeset_parser.add_argument("id", type=id_arg, help="Changeset ID")

    # Replication command
    replication_parser = subparsers.add_parser(
        "replication",
        help="List replication files published after a timestamp or seqno",
    )
    _add_feed_argument(replication_parser)
    start = replication_parser.add_mutually_exclusive_group()
    start.add_argument(
        "--since",
        type=timestamp_arg,
        help="Timestamp in RFC 2822 or RFC 3339 format",
    )
    start.add_argument(
        "--seqno",
        type=seqno_arg,
        help="Sequence number to start after",
    )
    replication_parser.add_argument(
        "--watch",
        action="store_true",
        help="Run forever, printing new replication files as they are published",
    )
    replication_parser.add_argument(
        "--urls-only",
        action="store_true",
        help="Print only the data file URLs",
    )

    # Resolve command
    resolve_parser = subparsers.add_parser(
        "resolve", help="Print the seqno that was current at a timestamp"
    )
    _add_feed_argument(resolve_parser)
    resolve_parser.add_argument(
        "since",
        type=timestamp_arg,
        help="Timestamp in RFC 2822 or RFC 3339 format",
    )

    # State command
    state_parser = subparsers.add_parser(
        "state", help="Print a feed's current state, or the state of one seqno"
    )
    _add_feed_argument(state_parser)
    state_parser.add_argument(
        "seqno",
        type=seqno_arg,
        nargs="?",
        help="Sequence number (default: current)",
    )

    return parser


def _dispatch(args: argparse.Namespace) -> int:
    if args.command in ELEMENT_TYPES:
        return asyncio.run(
            element_command(
                server=args.server,
                element_type=args.command,
                element_id=args.id,
                fmt=args.format,
                history=args.history,
            )
        )
    elif args.command == "changeset":
        return asyncio.run(
            changeset_command(
                server=args.server,
                changeset_id=args.id,
                fmt=args.format,
                diff=args.diff,
            )
        )
    elif args.command == "replication":
        return asyncio.run(
            replication_command(
                feed=args.feed,
                server=args.replication_server,
                since=args.since,
                seqno=args.seqno,
                watch=args.watch,
                urls_only=args.urls_only,
            )
        )
    elif args.command == "resolve":
        return asyncio.run(
            resolve_command(
                feed=args.feed,
                server=args.replication_server,
                since=args.since,
            )
        )
    elif args.command == "state":
        return asyncio.run(
            state_command(
                feed=args.feed,
                server=args.replication_server,
                seqno=args.seqno,
            )
        )
    raise AssertionError(f"unhandled command {args.command!r}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 2
    if args.command == "replication" and args.since is None and args.seqno is None:
        parser.error("replication: one of --since or --seqno is required")

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    else:
        logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        return _dispatch(args)
    except BrokenPipeError:
        # Reader went away (e.g. `| head`)
        with contextlib.suppress(OSError, ValueError):
            _silence_stdout()
        return 0
    except KeyboardInterrupt:
        return 130
    except (OSMCliError, httpx.HTTPError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
