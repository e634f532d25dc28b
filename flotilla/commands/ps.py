"""ps command: table of known modules."""

import asyncio

from flotilla.commands import connect, fail, load_cli_config, print_line
from flotilla.errors import FlotillaError
from flotilla.ledger import format_ps


async def _ps(args):
    config = load_cli_config(args)
    try:
        async with connect(config, args, autostart=False) as client:
            if await client.health() is None:
                return format_ps([])
            return await client.ps()
    except FlotillaError as e:
        fail(e)


def handle_ps(args):
    """Handle the ps command."""
    print_line(asyncio.run(_ps(args)))


def register_ps_command(subparsers):
    """Register the ps subcommand."""
    parser = subparsers.add_parser("ps", help="List services and tasks known to the daemon")
    parser.set_defaults(func=handle_ps)
