#!/usr/bin/env python3
"""Local orchestration daemon: CLI entrypoint."""

import argparse

from flotilla.commands.config import register_config_command
from flotilla.commands.daemon import register_daemon_command
from flotilla.commands.deploy import register_deploy_command
from flotilla.commands.exec import register_exec_command
from flotilla.commands.logs import register_logs_command
from flotilla.commands.ps import register_ps_command
from flotilla.commands.shell import register_shell_command
from flotilla.commands.stop import register_stop_command
from flotilla.logging_setup import setup_cli_logging


def build_parser():
    parser = argparse.ArgumentParser(prog="flotilla", description="Deploy and supervise local services and tasks")
    parser.add_argument("--config", default=None, help="Config file (default: $FLOTILLA_HOME/config.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # deploy, run, restart
    register_deploy_command(subparsers)

    # stop, down, ps, logs, exec, shell
    register_stop_command(subparsers)
    register_ps_command(subparsers)
    register_logs_command(subparsers)
    register_exec_command(subparsers)
    register_shell_command(subparsers)

    register_daemon_command(subparsers)
    register_config_command(subparsers)
    return parser


def main():
    args = build_parser().parse_args()
    setup_cli_logging(verbose=args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
