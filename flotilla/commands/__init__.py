"""Shared CLI plumbing: config, daemon connection, definition discovery, error reporting."""

import logging
import os
import sys
from contextlib import asynccontextmanager

from flotilla.config import FlotillaConfig, load_config
from flotilla.daemon.client import DaemonClient
from flotilla.definitions.loader import find_definition_files, read_definition_documents
from flotilla.errors import FlotillaError

logger = logging.getLogger(__name__)


def load_cli_config(args) -> FlotillaConfig:
    try:
        return load_config(getattr(args, "config", None))
    except ValueError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


@asynccontextmanager
async def connect(config: FlotillaConfig, args, autostart=True):
    """Yield a DaemonClient, starting the daemon first when autostart is set."""
    client = DaemonClient(config.daemon_url)
    try:
        if autostart:
            await client.ensure_running(
                config.client.daemon_start_timeout,
                config_path=getattr(args, "config", None),
                output_file=config.daemon.daemon_output_file,
            )
        yield client
    finally:
        await client.close()


def print_line(line: str) -> None:
    logger.info(line)


def load_documents(args, config: FlotillaConfig) -> list[dict]:
    """Read definition documents from --file paths or the discovered definitions file."""
    logger.info("Looking for module definitions...")
    paths = list(args.file or [])
    if not paths:
        paths = find_definition_files(os.getcwd(), config.client.default_dir)
    if not paths:
        raise FlotillaError(
            "No module definitions found",
            details="Create a flotilla.yml in this directory (or a parent) or pass --file.",
        )
    try:
        return read_definition_documents(paths)
    except FileNotFoundError as e:
        raise FlotillaError(str(e)) from e


def add_file_argument(parser) -> None:
    parser.add_argument(
        "-F",
        "--file",
        action="append",
        default=None,
        help="Definitions file (repeatable). Default: flotilla.yml found from the current directory upwards",
    )


def exit_on_errors(errors: list[str]) -> None:
    """Print rendered errors and exit non-zero if there are any."""
    for error in errors:
        logger.error(error)
    if errors:
        sys.exit(1)


def fail(error: FlotillaError) -> None:
    logger.error(error.render())
    sys.exit(1)
