"""logs command: print (and optionally follow) a module's log file."""

import asyncio
import logging
import os
from collections import deque

from flotilla.commands import connect, fail, load_cli_config, print_line
from flotilla.errors import FlotillaError, UnknownEntity

logger = logging.getLogger(__name__)

FOLLOW_POLL_INTERVAL = 0.5


def tail_lines(path: str, count: int | None) -> tuple[list[str], int]:
    """Return the last `count` lines of a file (all when None) and the offset read up to."""
    with open(path, "rb") as f:
        if count is None:
            lines = f.read().decode(errors="replace").splitlines()
        else:
            lines = list(deque((raw.decode(errors="replace").rstrip("\r\n") for raw in f), maxlen=count))
        return lines, f.tell()


async def follow(path: str, offset: int, on_line, poll_interval: float = FOLLOW_POLL_INTERVAL) -> None:
    """Print lines appended to path after offset, until cancelled.

    A file that shrinks (the module was redeployed and its log truncated)
    is read again from the start.
    """
    pending = b""
    while True:
        await asyncio.sleep(poll_interval)
        size = os.path.getsize(path) if os.path.exists(path) else 0
        if size < offset:
            offset, pending = 0, b""
        if size == offset:
            continue
        with open(path, "rb") as f:
            f.seek(offset)
            chunk = f.read()
            offset = f.tell()
        *complete, pending = (pending + chunk).split(b"\n")
        for raw in complete:
            on_line(raw.decode(errors="replace").rstrip("\r"))


async def _logs(args):
    config = load_cli_config(args)
    try:
        async with connect(config, args, autostart=False) as client:
            if await client.health() is None:
                raise UnknownEntity(args.name)
            record = await client.module(args.name)
    except FlotillaError as e:
        fail(e)

    path = record["log_file_path"]
    if not os.path.exists(path):
        logger.error(f"Error: Log file {path} does not exist")
        return 1
    lines, offset = tail_lines(path, args.lines)
    for line in lines:
        print_line(line)
    if args.follow:
        await follow(path, offset, print_line)
    return 0


def handle_logs(args):
    """Handle the logs command."""
    try:
        code = asyncio.run(_logs(args))
    except KeyboardInterrupt:
        return
    if code:
        raise SystemExit(code)


def register_logs_command(subparsers):
    """Register the logs subcommand."""
    parser = subparsers.add_parser("logs", help="Show the output of a service or task")
    parser.add_argument("name", help="Module name")
    parser.add_argument("-f", "--follow", action="store_true", help="Keep printing new output")
    parser.add_argument("-n", "--lines", type=int, default=None, help="Only show the last N lines")
    parser.set_defaults(func=handle_logs)
