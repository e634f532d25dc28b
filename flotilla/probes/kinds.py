"""Single probe attempts for exec, net and log_line probes."""

import asyncio
import functools
import logging
import re
from dataclasses import dataclass, field

from flotilla.definitions.types import ExecProbe, LogLineProbe, NetProbe, Probe
from flotilla.errors import SpawnFailed
from flotilla.shell import run_command

logger = logging.getLogger(__name__)

PROBE_COMMAND_TIMEOUT = 30.0


class ProbeError(Exception):
    """The probe itself is broken (bad regex, missing executable), not the service."""


@dataclass
class ProbeContext:
    """What a probe needs to know about the service it watches."""

    name: str
    log_file_path: str
    environment: dict[str, str] = field(default_factory=dict)
    net_timeout: float = 1.0
    command_timeout: float = PROBE_COMMAND_TIMEOUT


@functools.lru_cache(maxsize=128)
def _compile(line_regex: str) -> re.Pattern:
    try:
        return re.compile(line_regex)
    except re.error as e:
        raise ProbeError(f"invalid line_regex {line_regex!r}: {e}") from e


async def _exec_probe(probe: ExecProbe, ctx: ProbeContext) -> bool:
    try:
        rc, _ = await run_command(probe.run, environment=ctx.environment, timeout=ctx.command_timeout)
    except SpawnFailed as e:
        raise ProbeError(e.message) from e
    return rc == 0


async def _net_probe(probe: NetProbe, ctx: ProbeContext) -> bool:
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(probe.host, probe.port), timeout=ctx.net_timeout)
    except (OSError, TimeoutError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


def _log_line_probe(probe: LogLineProbe, ctx: ProbeContext) -> bool:
    pattern = _compile(probe.line_regex)
    try:
        with open(ctx.log_file_path, errors="replace") as f:
            return any(pattern.search(line) for line in f)
    except FileNotFoundError:
        return False


async def probe_once(probe: Probe, ctx: ProbeContext) -> bool:
    """Run one probe attempt. True means the probe passed."""
    if isinstance(probe, ExecProbe):
        passed = await _exec_probe(probe, ctx)
    elif isinstance(probe, NetProbe):
        passed = await _net_probe(probe, ctx)
    elif isinstance(probe, LogLineProbe):
        passed = _log_line_probe(probe, ctx)
    else:
        raise ProbeError(f"unsupported probe {probe!r}")
    logger.debug(f"{probe.type} probe for {ctx.name}: {'passed' if passed else 'failed'}")
    return passed
