"""shell command: open a service's interactive shell from its definitions."""

import asyncio
import logging
import sys

from flotilla.commands import add_file_argument, fail, load_cli_config, load_documents
from flotilla.commands.exec import run_in_module
from flotilla.definitions.loader import parse_definitions
from flotilla.definitions.types import Shell
from flotilla.errors import FlotillaError

logger = logging.getLogger(__name__)


def shell_argv(shell: Shell) -> list[str]:
    if shell.run.shell is not None:
        return ["/bin/sh", "-c", shell.run.shell]
    return list(shell.run.command)


def handle_shell(args):
    """Handle the shell command."""
    config = load_cli_config(args)
    try:
        definitions = parse_definitions(load_documents(args, config))
        shell = definitions.shell_for(args.service, args.type or "")
    except FlotillaError as e:
        fail(e)

    logger.debug(f"Opening {shell.name}: {shell.run.display}")
    record = {"environment": shell.environment, "working_dir": shell.run.working_dir}
    sys.exit(asyncio.run(run_in_module(record, shell_argv(shell))))


def register_shell_command(subparsers):
    """Register the shell subcommand."""
    parser = subparsers.add_parser("shell", aliases=["sh"], help="Open a shell for a service")
    parser.add_argument("service", help="Service to open a shell for")
    parser.add_argument("-t", "--type", default=None, help="Shell type, when a service defines several")
    add_file_argument(parser)
    parser.set_defaults(func=handle_shell)
