"""Logging setup for CLI commands and the daemon process."""

import logging
import os
import sys

from flotilla.redact import SecretRedactingFilter


class _DaemonConsoleFormatter(logging.Formatter):
    """Console formatter for the daemon.

    - ``flotilla.deploy.orchestrate`` → ``[orchestrate]``
    - anything else keeps its full logger name
    """

    def format(self, record):
        if record.name.startswith("flotilla."):
            # copy so the file handler still sees the full name
            record = logging.makeLogRecord(record.__dict__)
            record.name = record.name.rsplit(".", 1)[-1]
        return super().format(record)


def setup_cli_logging(verbose=False):
    """Configure root logger with plain message format for CLI commands.

    Produces output identical to print(), so streamed deploy lines show
    exactly as the daemon produced them.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def setup_daemon_logging(log_file: str | None = None, verbose=False) -> str | None:
    """Console output with short logger names plus an optional timestamped log file.

    Returns:
        Path to the log file, if one was attached.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(_DaemonConsoleFormatter("[%(name)s] %(message)s"))
    root.addHandler(console_handler)

    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s] [%(name)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(file_handler)

    for handler in root.handlers:
        handler.addFilter(SecretRedactingFilter())
    return log_file
