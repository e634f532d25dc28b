"""Process supervision: spawn into a new process group, redirect logs, signal and reap."""

import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass, field

from flotilla.definitions.types import CommandSpec
from flotilla.errors import SpawnFailed
from flotilla.redact import redact_environment, register_secrets
from flotilla.shell import create_process

logger = logging.getLogger(__name__)


@dataclass
class SupervisedProcess:
    """A spawned service or task process owned by the daemon."""

    name: str
    process: asyncio.subprocess.Process
    log_file_path: str
    termination_signal: signal.Signals = signal.SIGKILL
    started_at: float = field(default_factory=time.time)
    stop_requested: bool = False

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    async def wait(self) -> int:
        return await self.process.wait()


async def spawn_process(
    name: str,
    run: CommandSpec,
    environment: dict[str, str],
    log_file_path: str,
    termination_signal: signal.Signals = signal.SIGKILL,
) -> SupervisedProcess:
    """Start a process in its own session with stdout and stderr going to log_file_path.

    The log file is truncated so it only holds output of the current run.
    The composed environment is layered over the daemon's own environment.

    Raises:
        SpawnFailed: the executable or working directory does not exist,
            or the log file cannot be opened.
    """
    register_secrets(environment)
    env = {**os.environ, **environment}
    try:
        os.makedirs(os.path.dirname(log_file_path) or ".", exist_ok=True)
        with open(log_file_path, "w") as log_file:
            # the child keeps its own copy of the descriptor
            proc = await create_process(
                run,
                env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=log_file,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
            )
    except OSError as e:
        raise SpawnFailed(name, str(e)) from e

    logger.info(f"Spawned {name} (pid {proc.pid}): {run.display}")
    logger.debug(f"{name} environment: {redact_environment(environment)}")
    return SupervisedProcess(
        name=name,
        process=proc,
        log_file_path=log_file_path,
        termination_signal=termination_signal,
    )


def _signal_group(pid: int, sig: signal.Signals) -> bool:
    try:
        os.killpg(pid, sig)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        # the group leader is gone and the pgid was reused
        os.kill(pid, sig)
        return True


async def terminate_process(supervised: SupervisedProcess, timeout: float = 10.0) -> bool:
    """Send the termination signal to the process group and wait for exit.

    Escalates to SIGKILL when the process outlives ``timeout`` seconds.

    Returns:
        True if a live process was signalled, False if it had already exited.
    """
    if not supervised.running:
        return False

    supervised.stop_requested = True
    sig = supervised.termination_signal
    logger.info(f"Stopping {supervised.name} (pid {supervised.pid}) with {sig.name}")
    if not _signal_group(supervised.pid, sig):
        await supervised.wait()
        return False

    try:
        await asyncio.wait_for(supervised.wait(), timeout=timeout)
    except TimeoutError:
        logger.warning(f"{supervised.name} did not exit within {timeout}s of {sig.name}, sending SIGKILL")
        _signal_group(supervised.pid, signal.SIGKILL)
        await supervised.wait()
    return True
