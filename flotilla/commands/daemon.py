"""daemon command: run the daemon in the foreground, or start/stop/query a background one."""

import asyncio
import logging
import sys

from flotilla.commands import connect, fail, load_cli_config
from flotilla.daemon.api import serve
from flotilla.errors import FlotillaError
from flotilla.logging_setup import setup_daemon_logging

logger = logging.getLogger(__name__)


def handle_daemon_run(args):
    """Serve the daemon API in this process until interrupted."""
    config = load_cli_config(args)
    setup_daemon_logging(config.daemon.daemon_log_file, verbose=args.verbose)
    logger.info(f"Starting daemon on 127.0.0.1:{config.daemon.port} (state in {config.daemon.state_dir})")
    serve(config.daemon)


async def _daemon_start(args):
    config = load_cli_config(args)
    try:
        async with connect(config, args, autostart=False) as client:
            health = await client.health()
            if health is not None:
                logger.info(f"Daemon already running (pid {health['pid']})")
                return
            await client.ensure_running(
                config.client.daemon_start_timeout,
                config_path=args.config,
                output_file=config.daemon.daemon_output_file,
            )
            health = await client.health()
    except FlotillaError as e:
        fail(e)
    logger.info(f"Daemon started (pid {health['pid']})")


async def _daemon_stop(args):
    config = load_cli_config(args)
    try:
        async with connect(config, args, autostart=False) as client:
            if await client.health() is None:
                logger.info("Daemon is not running")
                return
            await client.shutdown()
    except FlotillaError as e:
        fail(e)
    logger.info("Daemon stopped")


async def _daemon_status(args):
    config = load_cli_config(args)
    async with connect(config, args, autostart=False) as client:
        health = await client.health()
    if health is None:
        logger.info(f"Daemon is not running ({config.daemon_url})")
        sys.exit(1)
    logger.info(f"Daemon is running (pid {health['pid']}, {config.daemon_url})")


def handle_daemon(args):
    """Dispatch daemon sub-actions; the default is start."""
    action = args.action or "start"
    if action == "run":
        handle_daemon_run(args)
    elif action == "start":
        asyncio.run(_daemon_start(args))
    elif action == "stop":
        asyncio.run(_daemon_stop(args))
    else:
        asyncio.run(_daemon_status(args))


def register_daemon_command(subparsers):
    """Register the daemon subcommand."""
    parser = subparsers.add_parser("daemon", help="Manage the flotilla daemon")
    parser.add_argument(
        "action",
        nargs="?",
        choices=["start", "stop", "status", "run"],
        help="start (default) launches a background daemon; run serves in the foreground",
    )
    parser.set_defaults(func=handle_daemon)
