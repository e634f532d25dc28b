"""Daemon: long-lived owner of the ledger, exposed over a local HTTP API."""

from flotilla.daemon.api import create_app, serve, stream_operation
from flotilla.daemon.client import DaemonClient
from flotilla.daemon.core import Daemon

__all__ = [
    "Daemon",
    "DaemonClient",
    "create_app",
    "serve",
    "stream_operation",
]
