"""exec command: run a command in a module's working directory and environment."""

import asyncio
import logging
import os
import sys

from flotilla.commands import connect, fail, load_cli_config
from flotilla.errors import FlotillaError, UnknownEntity

logger = logging.getLogger(__name__)


async def run_in_module(record: dict, argv: list[str]) -> int:
    """Run argv with the module's environment layered over ours; output goes to this terminal."""
    env = {**os.environ, **(record.get("environment") or {})}
    working_dir = record.get("working_dir")
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv, cwd=os.path.expanduser(working_dir) if working_dir else None, env=env
        )
    except OSError as e:
        logger.error(f"Error: Failed to run {argv[0]}: {e}")
        return 127
    return await proc.wait()


async def _exec(args):
    config = load_cli_config(args)
    try:
        async with connect(config, args, autostart=False) as client:
            if await client.health() is None:
                raise UnknownEntity(args.name)
            record = await client.module(args.name)
    except FlotillaError as e:
        fail(e)
    return await run_in_module(record, args.argv)


def handle_exec(args):
    """Handle the exec command."""
    if args.argv and args.argv[0] == "--":
        args.argv = args.argv[1:]
    if not args.argv:
        logger.error("Error: No command given")
        sys.exit(2)
    sys.exit(asyncio.run(_exec(args)))


def register_exec_command(subparsers):
    """Register the exec subcommand."""
    parser = subparsers.add_parser("exec", help="Run a command with a module's environment and working directory")
    parser.add_argument("name", help="Module name")
    parser.add_argument("argv", nargs="...", help="Command and arguments")
    parser.set_defaults(func=handle_exec)
