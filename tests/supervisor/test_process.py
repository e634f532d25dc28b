"""Tests for flotilla.supervisor — spawning, logging, signalling and stop statuses."""

import asyncio
import os
import signal

import pytest

from flotilla.definitions import CommandSpec, parse_entity
from flotilla.errors import SpawnFailed
from flotilla.ledger import EXITED, RUNNING, STOPPED, Ledger
from flotilla.supervisor import (
    STOP_ALREADY_EXITED,
    STOP_ALREADY_STOPPED,
    STOP_SIGNALLED,
    Supervisor,
    spawn_process,
    terminate_process,
)


def _service(name="web", **kwargs):
    return parse_entity({"kind": "Service", "name": name, "shell": "sleep 30", **kwargs})


# ── spawn_process / terminate_process ──────────────────────────


def test_spawn_writes_output_to_log(tmp_path):
    log = tmp_path / "logs" / "echo.log"

    async def scenario():
        supervised = await spawn_process("echo", CommandSpec(shell="echo out; echo err >&2"), {}, str(log))
        return await supervised.wait()

    assert asyncio.run(scenario()) == 0
    assert log.read_text().split() == ["out", "err"]


def test_spawn_truncates_previous_log(tmp_path):
    log = tmp_path / "a.log"
    log.write_text("old run\n")

    async def scenario():
        supervised = await spawn_process("a", CommandSpec(command=["echo", "new"]), {}, str(log))
        await supervised.wait()

    asyncio.run(scenario())
    assert log.read_text() == "new\n"


def test_spawn_environment_and_working_dir(tmp_path):
    log = tmp_path / "env.log"
    workdir = tmp_path / "work"
    workdir.mkdir()

    async def scenario():
        run = CommandSpec(shell='echo "$GREETING $(pwd)"', working_dir=str(workdir))
        supervised = await spawn_process("env", run, {"GREETING": "hi"}, str(log))
        await supervised.wait()

    asyncio.run(scenario())
    assert log.read_text().strip() == f"hi {workdir}"


def test_spawn_missing_executable(tmp_path):
    with pytest.raises(SpawnFailed, match="Failed to start ghost"):
        asyncio.run(spawn_process("ghost", CommandSpec(command=["/nonexistent/bin"]), {}, str(tmp_path / "g.log")))


def test_terminate_with_configured_signal(tmp_path):
    async def scenario():
        run = CommandSpec(shell="trap 'echo got-term; exit 0' TERM; while true; do sleep 0.05; done")
        supervised = await spawn_process("svc", run, {}, str(tmp_path / "svc.log"), termination_signal=signal.SIGTERM)
        await asyncio.sleep(0.3)
        signalled = await terminate_process(supervised, timeout=5)
        return signalled, supervised.returncode

    signalled, code = asyncio.run(scenario())
    assert signalled is True
    assert code == 0
    assert "got-term" in (tmp_path / "svc.log").read_text()


def test_terminate_escalates_to_kill(tmp_path):
    async def scenario():
        run = CommandSpec(shell="trap '' INT; while true; do sleep 0.05; done")
        supervised = await spawn_process("stubborn", run, {}, str(tmp_path / "s.log"), termination_signal=signal.SIGINT)
        await asyncio.sleep(0.3)
        await terminate_process(supervised, timeout=0.5)
        return supervised.returncode

    assert asyncio.run(scenario()) == -signal.SIGKILL


def test_terminate_already_exited(tmp_path):
    async def scenario():
        supervised = await spawn_process("quick", CommandSpec(command=["true"]), {}, str(tmp_path / "q.log"))
        await supervised.wait()
        return await terminate_process(supervised)

    assert asyncio.run(scenario()) is False


# ── Supervisor ──────────────────────────────────────────────────


def test_supervisor_log_paths(daemon_config):
    supervisor = Supervisor(Ledger(), daemon_config)
    task = parse_entity({"kind": "Task", "name": "migrate", "shell": "true"})
    assert supervisor.log_path_for(_service()) == os.path.join(daemon_config.logs_dir, "web.log")
    assert supervisor.log_path_for(task) == os.path.join(daemon_config.logs_dir, "migrate.task.log")
    assert supervisor.log_path_for(_service(log_file_path="/tmp/custom.log")) == "/tmp/custom.log"


def test_supervisor_stop_statuses(daemon_config):
    ledger = Ledger()
    supervisor = Supervisor(ledger, daemon_config)

    async def scenario():
        await supervisor.start(_service(), {})
        assert ledger.get("web").status == RUNNING
        first = await supervisor.stop("web")
        second = await supervisor.stop("web")
        return first, second

    first, second = asyncio.run(scenario())
    assert first == STOP_SIGNALLED
    assert second == STOP_ALREADY_STOPPED
    assert ledger.get("web").status == STOPPED


def test_supervisor_records_natural_exit(daemon_config):
    ledger = Ledger()
    supervisor = Supervisor(ledger, daemon_config)

    async def scenario():
        await supervisor.start(_service("short", shell="exit 4"), {})
        for _ in range(100):
            if ledger.get("short").status != RUNNING:
                break
            await asyncio.sleep(0.02)
        return await supervisor.stop("short")

    assert asyncio.run(scenario()) == STOP_ALREADY_EXITED
    record = ledger.get("short")
    assert record.status == EXITED
    assert record.exit_code == 4


def test_supervisor_stop_unknown(daemon_config):
    supervisor = Supervisor(Ledger(), daemon_config)
    with pytest.raises(KeyError):
        asyncio.run(supervisor.stop("nobody"))


def test_supervisor_close_stops_everything(daemon_config):
    ledger = Ledger()
    supervisor = Supervisor(ledger, daemon_config)

    async def scenario():
        await supervisor.start(_service("a"), {})
        await supervisor.start(_service("b"), {})
        await supervisor.close()

    asyncio.run(scenario())
    assert {r.status for r in ledger.snapshot()} == {STOPPED}
