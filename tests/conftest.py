"""Shared pytest fixtures for all test modules."""

import os
import subprocess
import sys

import pytest
import yaml

from flotilla.config import DaemonConfig
from flotilla.definitions import parse_definitions

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def flotilla_home(tmp_path, monkeypatch):
    """Point $FLOTILLA_HOME at a temp dir so no test touches ~/.flotilla."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("FLOTILLA_HOME", str(home))
    return home


@pytest.fixture
def run_cli(project_root, flotilla_home):
    """Return a callable that invokes the flotilla CLI as a subprocess.

    The daemon port is set to one nothing listens on, so commands that
    must not start a daemon see it as not running.
    """
    config_path = flotilla_home / "config.yaml"
    config_path.write_text(yaml.safe_dump({"daemon": {"port": 1}}))

    def _run(*args, cwd=None):
        env = {**os.environ, "FLOTILLA_HOME": str(flotilla_home)}
        result = subprocess.run(
            [sys.executable, "-m", "flotilla.flotilla", "--config", str(config_path), *args],
            capture_output=True,
            text=True,
            cwd=cwd or project_root,
            env={**env, "PYTHONPATH": project_root},
        )
        return result.returncode, result.stdout, result.stderr

    return _run


# ── Unit-test fixtures ──────────────────────────────────────────────


@pytest.fixture
def daemon_config(tmp_path):
    """DaemonConfig with a private state dir and fast probe intervals."""
    return DaemonConfig(
        port=0,
        state_dir=str(tmp_path / "state"),
        readiness_interval=0.05,
        liveness_interval=0.05,
        stop_timeout=2.0,
        net_probe_timeout=0.2,
    )


@pytest.fixture
def make_definitions():
    """Return a factory building a DefinitionSet from definition documents."""

    def _make(*docs):
        return parse_definitions(list(docs))

    return _make


@pytest.fixture
def marker(tmp_path):
    """Return a factory for shell snippets that append a line to a shared file.

    Processes record their start order in ``tmp_path/events``; the
    returned ``events()`` reads it back.
    """
    events_path = tmp_path / "events"

    class Marker:
        path = str(events_path)

        @staticmethod
        def append(label):
            return f"echo {label} >> {events_path}"

        @staticmethod
        def events():
            if not events_path.exists():
                return []
            return events_path.read_text().split()

    return Marker
