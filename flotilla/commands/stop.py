"""stop and down commands."""

import asyncio

from flotilla.commands import connect, exit_on_errors, fail, load_cli_config, print_line
from flotilla.errors import FlotillaError, UnknownEntity


async def _stop(args, names):
    config = load_cli_config(args)
    try:
        async with connect(config, args, autostart=False) as client:
            if await client.health() is None:
                # no daemon, so nothing was ever started
                return [UnknownEntity(name).render() for name in names or []]
            if names is None:
                return await client.down(print_line)
            return await client.stop(names, print_line)
    except FlotillaError as e:
        fail(e)


def handle_stop(args):
    """Handle the stop command."""
    exit_on_errors(asyncio.run(_stop(args, list(args.names))))


def handle_down(args):
    """Stop every module the daemon is running."""
    exit_on_errors(asyncio.run(_stop(args, None)))


def register_stop_command(subparsers):
    """Register stop and down."""
    parser = subparsers.add_parser("stop", help="Stop services or tasks")
    parser.add_argument("names", nargs="+", help="Modules to stop")
    parser.set_defaults(func=handle_stop)

    down_parser = subparsers.add_parser("down", help="Stop every running module")
    down_parser.set_defaults(func=handle_down)
