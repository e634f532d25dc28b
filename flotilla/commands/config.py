"""config command: read and write config.yaml values."""

import logging
import sys

import yaml

from flotilla.commands import load_cli_config
from flotilla.config import default_config_path, get_value, save_config, set_value

logger = logging.getLogger(__name__)


def handle_config_get(args):
    config = load_cli_config(args)
    try:
        value = get_value(config, args.key)
    except ValueError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    # scalars dump with a trailing document end marker
    logger.info(yaml.safe_dump(value).strip().removesuffix("...").strip())


def handle_config_set(args):
    config = load_cli_config(args)
    try:
        config = set_value(config, args.key, args.value)
    except (ValueError, TypeError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    path = save_config(config, args.config or default_config_path())
    logger.info(f"Set {args.key} in {path}")


def register_config_command(subparsers):
    """Register config get/set."""
    parser = subparsers.add_parser("config", help="Show or change configuration")
    config_subparsers = parser.add_subparsers(dest="config_action", required=True)

    get_parser = config_subparsers.add_parser("get", help="Print a configuration value")
    get_parser.add_argument("key", help="Dotted key, e.g. daemon.port")
    get_parser.set_defaults(func=handle_config_get)

    set_parser = config_subparsers.add_parser("set", help="Change a configuration value")
    set_parser.add_argument("key", help="Dotted key, e.g. daemon.port")
    set_parser.add_argument("value", help="New value, parsed as YAML")
    set_parser.set_defaults(func=handle_config_set)
