"""deploy, run and restart commands."""

import asyncio
import logging

from flotilla.commands import (
    add_file_argument,
    connect,
    exit_on_errors,
    fail,
    load_cli_config,
    load_documents,
    print_line,
)
from flotilla.deploy.params import DeployRequest
from flotilla.errors import FlotillaError

logger = logging.getLogger(__name__)


def _request_from_args(args, **overrides) -> DeployRequest:
    request = DeployRequest(
        names=list(args.names),
        force=getattr(args, "force", False),
        only_selected=getattr(args, "only_selected", False),
        skip_checks=args.no_checks,
        skip_readiness=args.no_readiness,
        environment_sets=list(args.env_set or []),
        wait=getattr(args, "wait", False),
        serial=getattr(args, "serial", False),
        apply_fixes=getattr(args, "apply_fixes", False),
    )
    for key, value in overrides.items():
        setattr(request, key, value)
    return request


async def _deploy(args, request: DeployRequest, stop_first=False):
    config = load_cli_config(args)
    try:
        documents = load_documents(args, config)
        async with connect(config, args) as client:
            if stop_first:
                errors = await client.stop(request.names, print_line)
                if errors:
                    return errors
            return await client.deploy(documents, request, print_line)
    except FlotillaError as e:
        fail(e)


def handle_deploy(args):
    """Handle the deploy command."""
    errors = asyncio.run(_deploy(args, _request_from_args(args)))
    exit_on_errors(errors)


def handle_run(args):
    """Run one task on its own, even if it already succeeded."""
    args.names = [args.task]
    request = _request_from_args(args, force=True, only_selected=True)
    exit_on_errors(asyncio.run(_deploy(args, request)))


def handle_restart(args):
    """Stop the named modules, then deploy exactly those again."""
    request = _request_from_args(args, force=True, only_selected=True)
    exit_on_errors(asyncio.run(_deploy(args, request, stop_first=True)))


def _add_common_arguments(parser):
    add_file_argument(parser)
    parser.add_argument("--no-checks", action="store_true", help="Skip checks")
    parser.add_argument("--no-readiness", action="store_true", help="Do not wait for readiness probes")
    parser.add_argument(
        "-e",
        "--env-set",
        action="append",
        default=None,
        help="Environment set to apply (repeatable, later sets win)",
    )


def register_deploy_command(subparsers):
    """Register deploy, run and restart."""
    parser = subparsers.add_parser("deploy", help="Deploy services, tasks, checks and groups with their dependencies")
    parser.add_argument("names", nargs="+", help="Modules to deploy")
    parser.add_argument("-f", "--force", action="store_true", help="Redeploy even if already deployed")
    parser.add_argument(
        "--only-selected",
        action="store_true",
        help="Deploy exactly the named modules, without their dependencies",
    )
    parser.add_argument("--wait", action="store_true", help="Wait for every readiness probe, not only gating ones")
    parser.add_argument("--serial", action="store_true", help="Deploy one module at a time")
    parser.add_argument("--apply-fixes", action="store_true", help="Apply suggested fixes of failing checks")
    _add_common_arguments(parser)
    parser.set_defaults(func=handle_deploy)

    run_parser = subparsers.add_parser("run", help="Run a task alone, without its dependencies")
    run_parser.add_argument("task", help="Task to run")
    _add_common_arguments(run_parser)
    run_parser.set_defaults(func=handle_run)

    restart_parser = subparsers.add_parser("restart", help="Stop and redeploy modules")
    restart_parser.add_argument("names", nargs="+", help="Modules to restart")
    _add_common_arguments(restart_parser)
    restart_parser.set_defaults(func=handle_restart)
