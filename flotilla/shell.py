"""Short-lived command execution for checks, exec probes and suggested fixes."""

import asyncio
import logging
import os

from flotilla.definitions.types import CommandSpec
from flotilla.errors import SpawnFailed

logger = logging.getLogger(__name__)


def working_dir_of(run: CommandSpec) -> str | None:
    if run.working_dir is None:
        return None
    return os.path.expanduser(run.working_dir)


async def create_process(run: CommandSpec, env: dict[str, str], **kwargs) -> asyncio.subprocess.Process:
    """Start ``run`` through a shell or as a literal argv."""
    if run.shell is not None:
        return await asyncio.create_subprocess_shell(run.shell, cwd=working_dir_of(run), env=env, **kwargs)
    return await asyncio.create_subprocess_exec(*run.command, cwd=working_dir_of(run), env=env, **kwargs)


async def run_command(
    run: CommandSpec,
    environment: dict[str, str] | None = None,
    capture_output: bool = False,
    timeout: float | None = None,
) -> tuple[int, str]:
    """Run a command to completion and return (returncode, output).

    Args:
        run: command or shell string plus working directory
        environment: variables layered over the daemon's environment
        capture_output: return combined stdout/stderr instead of discarding it
        timeout: seconds before the command is killed and reported as failed

    Raises:
        SpawnFailed: the executable or working directory does not exist.
    """
    env = {**os.environ, **(environment or {})}
    try:
        proc = await create_process(
            run,
            env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE if capture_output else asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.STDOUT if capture_output else asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        raise SpawnFailed(run.display, str(e)) from e

    try:
        stdout_bytes, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        logger.error(f"Command timed out after {timeout}s: {run.display}")
        proc.kill()
        await proc.wait()
        return 1, ""
    output = stdout_bytes.decode(errors="replace") if stdout_bytes else ""
    return proc.returncode, output
